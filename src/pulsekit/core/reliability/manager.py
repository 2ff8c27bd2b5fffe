# src/pulsekit/core/reliability/manager.py
"""ReliabilityManager: rate limiting, circuit breaking, retry and error tracking.

One facade over the four mechanisms so the service holds a single object
configured from ``ReliabilitySettings``. Each mechanism can be disabled
independently; a disabled mechanism calls straight through.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

import structlog

from pulsekit.contracts.enums import CircuitState, ErrorSeverity, HealthStatus
from pulsekit.contracts.errors import RateLimitExceededError
from pulsekit.contracts.events import TelemetryEvent
from pulsekit.core.config import ReliabilitySettings
from pulsekit.core.reliability.circuit_breaker import CircuitBreaker
from pulsekit.core.reliability.errors import ErrorTracker
from pulsekit.core.reliability.rate_limit import RateLimitRegistry
from pulsekit.core.reliability.retry import RetryConfig, RetryManager

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Errors within this window count toward health status
_HEALTH_WINDOW = timedelta(minutes=5)
_DEGRADED_ERROR_COUNT = 10


def rate_limit_key(event: TelemetryEvent) -> str:
    return f"{event.category}:{event.action}"


class ReliabilityManager:
    """Coordinates the reliability mechanisms for a service.

    Example:
        reliability = ReliabilityManager(settings.reliability)
        reliability.check_rate_limit(event)
        reliability.execute_with_circuit_breaker("storage:memory", lambda: provider.store(event))
    """

    def __init__(self, settings: ReliabilitySettings | None = None) -> None:
        self._settings = settings or ReliabilitySettings()
        rate = self._settings.rate_limit
        self._rate_limits = RateLimitRegistry(rate.max_requests, rate.window_seconds) if rate.enabled else None
        self._retry = RetryManager(RetryConfig.from_settings(self._settings.retry))
        self._breakers: dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()
        self.errors = ErrorTracker()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # -- rate limiting -------------------------------------------------------

    def check_rate_limit(self, event: TelemetryEvent) -> None:
        """Consume one request for the event's ``category:action`` key.

        Raises:
            RateLimitExceededError: If the key's window is exhausted.
        """
        if self._rate_limits is None:
            return
        key = rate_limit_key(event)
        if not self._rate_limits.try_acquire(key):
            logger.warning("Rate limit exceeded", key=key)
            raise RateLimitExceededError(key)

    def rate_limiter_stats(self) -> dict[str, dict[str, int]]:
        if self._rate_limits is None:
            return {}
        return self._rate_limits.stats()

    # -- circuit breaking ----------------------------------------------------

    def get_circuit_breaker(self, key: str) -> CircuitBreaker:
        with self._breakers_lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                cb = self._settings.circuit_breaker
                breaker = CircuitBreaker(key, threshold=cb.threshold, reset_timeout_seconds=cb.reset_timeout_seconds)
                self._breakers[key] = breaker
            return breaker

    def execute_with_circuit_breaker(self, key: str, operation: Callable[[], T]) -> T:
        """Run ``operation`` through the breaker for ``key``.

        Raises:
            CircuitOpenError: If the breaker is open; ``operation`` is not called.
        """
        if not self._settings.circuit_breaker.enabled:
            return operation()
        return self.get_circuit_breaker(key).call(operation)

    def circuit_breaker_stats(self) -> dict[str, dict[str, Any]]:
        with self._breakers_lock:
            breakers = dict(self._breakers)
        return {key: breaker.stats() for key, breaker in breakers.items()}

    def reset_circuit_breakers(self) -> None:
        with self._breakers_lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
        logger.info("Circuit breakers reset", count=len(breakers))

    # -- retry ---------------------------------------------------------------

    def execute_with_retry(self, operation: Callable[[], T], context: str = "operation") -> T:
        """Run ``operation`` with exponential backoff.

        Raises:
            MaxRetriesExceeded: If every attempt failed with a retryable error.
        """
        if not self._settings.retry.enabled:
            return operation()

        def on_retry(attempt: int, error: BaseException) -> None:
            logger.debug("Retrying operation", context=context, attempt=attempt, error=str(error))

        return self._retry.execute_with_retry(operation, on_retry=on_retry)

    # -- health --------------------------------------------------------------

    def record_error(self, error: BaseException, *, category: str | None = None) -> None:
        self.errors.record(error, category=category)

    def error_stats(self) -> dict[str, Any]:
        return self.errors.stats()

    def get_health_status(self) -> HealthStatus:
        """Unhealthy on recent critical errors, degraded on open breakers or error bursts."""
        recent = self.errors.recent(_HEALTH_WINDOW)
        if any(r.severity is ErrorSeverity.CRITICAL for r in recent):
            return HealthStatus.UNHEALTHY
        with self._breakers_lock:
            breakers = list(self._breakers.values())
        if any(b.state is not CircuitState.CLOSED for b in breakers):
            return HealthStatus.DEGRADED
        if len(recent) >= _DEGRADED_ERROR_COUNT:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def shutdown(self) -> None:
        if self._rate_limits is not None:
            self._rate_limits.close()
        with self._breakers_lock:
            self._breakers.clear()
        self.errors.clear()
        self._closed = True
