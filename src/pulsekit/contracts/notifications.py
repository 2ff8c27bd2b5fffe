"""Lifecycle notifications published on the service EventBus.

Subscribers register per notification class:

    service.subscribe(StorageDegraded, lambda n: alert(n.failed))
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from pulsekit.contracts.events import TelemetryEvent


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class ServiceInitialized:
    """Emitted once ``initialize()`` has brought up storage."""

    service_name: str
    providers: tuple[str, ...]
    plugins: tuple[str, ...]
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class EventTracked:
    """Emitted after an event is stored (and optionally streamed/analyzed)."""

    event: TelemetryEvent
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class EventFailed:
    """Emitted when ``track`` aborts. The error is re-raised to the caller."""

    correlation_id: str
    error: BaseException
    category: str | None = None
    action: str | None = None
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class StorageFailed:
    """Emitted for each individual storage provider failure."""

    provider: str
    operation: str
    error: BaseException
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class StorageDegraded:
    """Emitted when some, but not all, providers failed to store an event."""

    event_id: str
    succeeded: tuple[str, ...]
    failed: tuple[str, ...]
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class StorageCritical:
    """Emitted when every provider failed to store an event."""

    event_id: str
    failed: tuple[str, ...]
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class StreamingFailed:
    event_id: str
    error: BaseException
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class AnalyticsFailed:
    event_id: str
    error: BaseException
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class MaintenanceFailed:
    """Emitted when a scheduled retention run fails for a provider."""

    provider: str
    error: BaseException
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True, slots=True)
class ServiceShutdown:
    service_name: str
    timestamp: datetime = field(default_factory=_now)
