"""Enumerations shared across the pipeline.

All enums use StrEnum so values serialize directly into stored rows and
exported payloads.
"""

from enum import StrEnum


class EventType(StrEnum):
    """Lifecycle position of a telemetry event within its session."""

    START = "start"
    STREAM = "stream"
    END = "end"
    ERROR = "error"
    CUSTOM = "custom"


class HookCategory(StrEnum):
    """Pipeline stage a plugin hook belongs to.

    TRACK holds the per-event ``before_track``/``after_track`` hooks that run
    ahead of any storage hook for the same event.
    """

    TRACK = "track"
    STORAGE = "storage"
    QUERY = "query"
    EXPORT = "export"
    ANALYTICS = "analytics"
    CUSTOM = "custom"


class SessionStatus(StrEnum):
    """Derived status of an implicit session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


class CircuitState(StrEnum):
    """State of a per-key circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class HealthStatus(StrEnum):
    """Aggregate health reported by the reliability layer."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ErrorSeverity(StrEnum):
    """Severity assigned to errors recorded by the error tracker."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
