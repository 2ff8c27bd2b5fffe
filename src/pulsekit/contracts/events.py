"""Telemetry event model and query filters.

TelemetryEvent is the unit that flows through the pipeline. Instances are
frozen; plugins and the security layer produce modified copies with
``dataclasses.replace`` instead of mutating in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import Any

from pulsekit.contracts.enums import EventType

DEFAULT_CATEGORY = "unknown"
DEFAULT_ACTION = "unknown"


def coerce_timestamp(value: datetime | int | float) -> datetime:
    """Normalize a timestamp to an aware UTC datetime.

    Naive datetimes are taken to be UTC. Integers and floats are epoch
    milliseconds. Strings are rejected: numeric strings are ambiguous.

    Raises:
        TypeError: If the value is not a datetime or a number.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError(f"timestamp must be a datetime or epoch milliseconds, got {type(value).__name__}")
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def coerce_event_type(value: EventType | str) -> EventType:
    """Convert a string to EventType, raising ValueError on unknown values."""
    if isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError:
        allowed = ", ".join(member.value for member in EventType)
        raise ValueError(f"Invalid event_type {value!r}; expected one of: {allowed}") from None


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    """A single enriched telemetry event.

    Attributes:
        id: Unique event identifier
        session_id: Implicit session this event belongs to
        event_type: Lifecycle position (start, stream, end, error, custom)
        timestamp: Aware UTC time the event was observed
        category: Free-form grouping, e.g. "cart"
        action: Free-form verb, e.g. "add"
        label: Optional human label
        value: Optional numeric measurement
        duration: Optional duration in milliseconds
        metadata: Open bag of caller data, may nest
        context: Environment, version, platform and user fields
    """

    id: str
    session_id: str
    event_type: EventType
    timestamp: datetime
    category: str = DEFAULT_CATEGORY
    action: str = DEFAULT_ACTION
    label: str | None = None
    value: float | None = None
    duration: float | None = None
    metadata: dict[str, Any] | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if not self.session_id:
            raise ValueError("session_id must be a non-empty string")
        if not isinstance(self.event_type, EventType):
            raise TypeError(f"event_type must be EventType, got {type(self.event_type).__name__}")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        if self.duration is not None and self.duration < 0:
            raise ValueError(f"duration must be non-negative, got {self.duration}")

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe representation (timestamp as ISO-8601)."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "action": self.action,
            "label": self.label,
            "value": self.value,
            "duration": self.duration,
            "metadata": self.metadata,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TelemetryEvent:
        """Rebuild an event from ``to_dict`` output."""
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            event_type=coerce_event_type(data["event_type"]),
            timestamp=coerce_timestamp(timestamp),
            category=data.get("category", DEFAULT_CATEGORY),
            action=data.get("action", DEFAULT_ACTION),
            label=data.get("label"),
            value=data.get("value"),
            duration=data.get("duration"),
            metadata=data.get("metadata"),
            context=dict(data.get("context") or {}),
        )


EVENT_FIELDS: frozenset[str] = frozenset(f.name for f in fields(TelemetryEvent))


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Inclusive time window. ``start`` must not be after ``end``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", coerce_timestamp(self.start))
        object.__setattr__(self, "end", coerce_timestamp(self.end))
        if self.start > self.end:
            raise ValueError(f"TimeRange start {self.start.isoformat()} is after end {self.end.isoformat()}")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Criteria for querying stored events.

    All criteria are optional and combined with AND. ``offset`` is applied
    before ``limit``.

    Raises:
        ValueError: If ``limit`` is not a positive integer or ``offset`` is
            not a non-negative integer.
    """

    session_id: str | None = None
    category: str | None = None
    action: str | None = None
    event_type: EventType | None = None
    time_range: TimeRange | None = None
    limit: int | None = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.event_type is not None:
            object.__setattr__(self, "event_type", coerce_event_type(self.event_type))
        if self.limit is not None:
            # bool is an int subclass; True must not mean "limit 1"
            if type(self.limit) is not int or self.limit <= 0:
                raise ValueError(f"limit must be a positive integer, got {self.limit!r}")
        if type(self.offset) is not int or self.offset < 0:
            raise ValueError(f"offset must be a non-negative integer, got {self.offset!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> QueryFilter:
        """Build a filter from a plain mapping, rejecting unknown keys."""
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown query filter keys: {sorted(unknown)}")
        values = dict(data)
        time_range = values.get("time_range")
        if isinstance(time_range, Mapping):
            values["time_range"] = TimeRange(start=time_range["start"], end=time_range["end"])
        if values.get("offset") is None:
            values.pop("offset", None)
        return cls(**values)

    def matches(self, event: TelemetryEvent) -> bool:
        """Return True if the event satisfies every criterion except paging."""
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.category is not None and event.category != self.category:
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        if self.time_range is not None and not self.time_range.contains(event.timestamp):
            return False
        return True

    def paginate(self, events: list[TelemetryEvent]) -> list[TelemetryEvent]:
        """Apply offset then limit to an already-filtered list."""
        window = events[self.offset :]
        if self.limit is not None:
            window = window[: self.limit]
        return window
