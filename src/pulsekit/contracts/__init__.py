"""Shared contracts: event model, enums, errors, hook and result types.

Contracts import nothing from the rest of the package so every layer can
depend on them.
"""

from pulsekit.contracts.enums import (
    CircuitState,
    ErrorSeverity,
    EventType,
    HealthStatus,
    HookCategory,
    SessionStatus,
)
from pulsekit.contracts.errors import (
    CapabilityError,
    CircuitOpenError,
    ConfigurationError,
    DuplicatePluginError,
    HookTimeoutError,
    MaxRetriesExceeded,
    PluginError,
    PluginRejectedError,
    PluginValidationError,
    RateLimitExceededError,
    SecurityConfigurationError,
    ServiceInitializationError,
    ServiceNotInitializedError,
    StorageFailureError,
    TelemetryError,
)
from pulsekit.contracts.events import QueryFilter, TelemetryEvent, TimeRange
from pulsekit.contracts.hooks import HookContext, HookExecutionOptions, HookResult
from pulsekit.contracts.results import ExportResult, SessionSummary, StorageStats

__all__ = [
    "CapabilityError",
    "CircuitOpenError",
    "CircuitState",
    "ConfigurationError",
    "DuplicatePluginError",
    "ErrorSeverity",
    "EventType",
    "ExportResult",
    "HealthStatus",
    "HookCategory",
    "HookContext",
    "HookExecutionOptions",
    "HookResult",
    "HookTimeoutError",
    "MaxRetriesExceeded",
    "PluginError",
    "PluginRejectedError",
    "PluginValidationError",
    "QueryFilter",
    "RateLimitExceededError",
    "SecurityConfigurationError",
    "ServiceInitializationError",
    "ServiceNotInitializedError",
    "SessionStatus",
    "SessionSummary",
    "StorageFailureError",
    "StorageStats",
    "TelemetryError",
    "TelemetryEvent",
    "TimeRange",
]
