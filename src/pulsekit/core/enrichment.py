"""Event enrichment: turn a caller's partial event into a complete one.

Enrichment assigns identity (id, session_id), defaults (event_type,
category, action), a timestamp, and merges service-level context under the
caller's explicit context keys.
"""

from __future__ import annotations

import platform as _platform
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pulsekit.contracts.enums import EventType
from pulsekit.contracts.events import (
    DEFAULT_ACTION,
    DEFAULT_CATEGORY,
    EVENT_FIELDS,
    TelemetryEvent,
    coerce_event_type,
    coerce_timestamp,
)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class ContextDefaults:
    """Service-level context merged into every event.

    Per-event context keys always win over these values.
    """

    environment: str
    version: str
    service: str
    platform: str = field(default_factory=lambda: _platform.system().lower() or "unknown")
    extra: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            **dict(self.extra),
            "service": self.service,
            "environment": self.environment,
            "version": self.version,
            "platform": self.platform,
        }


def enrich_event(
    partial: Mapping[str, Any] | TelemetryEvent,
    defaults: ContextDefaults,
    *,
    now: datetime | None = None,
) -> TelemetryEvent:
    """Complete a partial event.

    Args:
        partial: Mapping with any subset of the TelemetryEvent fields, or an
            already-built event (its context is still merged with defaults).
        defaults: Service context defaults.
        now: Timestamp used when the partial carries none.

    Returns:
        A new TelemetryEvent with non-empty id, session_id, event_type and
        timestamp.

    Raises:
        ValueError: If the mapping has unknown keys or an invalid event_type.
        TypeError: If the timestamp is not a datetime or epoch milliseconds.
    """
    data = partial.to_dict() if isinstance(partial, TelemetryEvent) else dict(partial)
    if isinstance(partial, TelemetryEvent):
        data["timestamp"] = partial.timestamp

    unknown = set(data) - EVENT_FIELDS
    if unknown:
        raise ValueError(f"Unknown event fields: {sorted(unknown)}")

    timestamp = data.get("timestamp")
    event_type = data.get("event_type")
    metadata = data.get("metadata")
    context = {**defaults.as_dict(), **dict(data.get("context") or {})}

    return TelemetryEvent(
        id=data.get("id") or new_id(),
        session_id=data.get("session_id") or new_id(),
        event_type=coerce_event_type(event_type) if event_type else EventType.CUSTOM,
        timestamp=coerce_timestamp(timestamp) if timestamp is not None else (now or datetime.now(UTC)),
        category=data.get("category") or DEFAULT_CATEGORY,
        action=data.get("action") or DEFAULT_ACTION,
        label=data.get("label"),
        value=data.get("value"),
        duration=data.get("duration"),
        metadata=dict(metadata) if metadata is not None else None,
        context=context,
    )
