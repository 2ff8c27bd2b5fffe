"""Exception taxonomy for the telemetry pipeline.

Every error raised by pulsekit derives from TelemetryError. The ``retryable``
attribute tells the retry layer whether another attempt can succeed.
"""

from collections.abc import Mapping


class TelemetryError(Exception):
    """Base class for pipeline errors.

    Attributes:
        retryable: Whether the retry layer may attempt the operation again.
    """

    retryable: bool = True


class PluginError(TelemetryError):
    """Base class for plugin registration and execution errors."""

    retryable = False


class DuplicatePluginError(PluginError):
    """Raised when a plugin name is already registered."""

    def __init__(self, plugin_name: str) -> None:
        self.plugin_name = plugin_name
        super().__init__(f"Plugin '{plugin_name}' is already registered")


class PluginValidationError(PluginError):
    """Raised when a plugin object does not satisfy the plugin contract."""

    def __init__(self, plugin_name: str, message: str) -> None:
        self.plugin_name = plugin_name
        self.message = message
        super().__init__(f"Invalid plugin '{plugin_name}': {message}")


class PluginRejectedError(PluginError):
    """Raised when a ``before_track`` hook rejects an event by returning None."""

    def __init__(self, plugin_name: str) -> None:
        self.plugin_name = plugin_name
        super().__init__(f"Event rejected by plugin '{plugin_name}'")


class HookTimeoutError(TelemetryError):
    """Raised (or recorded) when a hook exceeds its time budget."""

    def __init__(self, plugin_name: str, hook_name: str, timeout_seconds: float) -> None:
        self.plugin_name = plugin_name
        self.hook_name = hook_name
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Hook {plugin_name}.{hook_name} timed out after {timeout_seconds}s")


class RateLimitExceededError(TelemetryError):
    """Raised when the per ``category:action`` rate limit is exhausted."""

    retryable = False

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Rate limit exceeded for {key}")


class CircuitOpenError(TelemetryError):
    """Raised when a call is refused because its circuit breaker is open."""

    retryable = False

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Circuit breaker is open for {key}")


class StorageFailureError(TelemetryError):
    """Raised when every storage provider failed to persist an event.

    Attributes:
        failures: Provider name mapped to that provider's error message,
            in the order the providers were attempted.
    """

    def __init__(self, failures: Mapping[str, str]) -> None:
        self.failures = dict(failures)
        details = "; ".join(f"{name}: {message}" for name, message in self.failures.items())
        super().__init__(f"All {len(self.failures)} storage providers failed: {details}")


class CapabilityError(TelemetryError):
    """Raised when an operation is not supported by the selected component.

    Covers queries against write-only providers and unknown storage, export
    or streaming types.
    """

    retryable = False


class ServiceNotInitializedError(TelemetryError):
    """Raised when the service is used before ``initialize()``."""

    retryable = False

    def __init__(self) -> None:
        super().__init__("Telemetry service not initialized")


class ServiceInitializationError(TelemetryError):
    """Raised when ``initialize()`` cannot bring up any storage provider."""

    retryable = False


class ConfigurationError(TelemetryError):
    """Raised when a component rejects its configuration options."""

    retryable = False


class SecurityConfigurationError(ConfigurationError):
    """Raised when security settings cannot be honoured (e.g. missing key)."""


class MaxRetriesExceeded(TelemetryError):
    """Raised when all retry attempts are exhausted."""

    retryable = False

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")
