"""pulsekit: plugin-extensible telemetry event pipeline.

Events flow through enrichment, sanitization, rate limiting and plugin
hooks before being fanned out to every configured storage backend.

Usage:
    from pulsekit import TelemetryService, TelemetrySettings

    settings = TelemetrySettings(service_name="checkout", storage=[{"type": "memory"}])
    service = TelemetryService(settings)
    service.initialize()
    service.track({"category": "cart", "action": "add"})
    service.shutdown()
"""

from pulsekit.contracts.enums import EventType, HookCategory
from pulsekit.contracts.events import QueryFilter, TelemetryEvent, TimeRange
from pulsekit.core.config import TelemetrySettings, load_settings
from pulsekit.service import TelemetryService

__version__ = "0.1.0"

__all__ = [
    "EventType",
    "HookCategory",
    "QueryFilter",
    "TelemetryEvent",
    "TelemetryService",
    "TelemetrySettings",
    "TimeRange",
    "load_settings",
]
