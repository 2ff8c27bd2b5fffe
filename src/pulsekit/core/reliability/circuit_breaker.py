# src/pulsekit/core/reliability/circuit_breaker.py
"""Consecutive-failure circuit breaker.

CLOSED: calls pass through; ``threshold`` consecutive failures open the
circuit. OPEN: calls are refused with CircuitOpenError until
``reset_timeout_seconds`` has elapsed. HALF_OPEN: one trial call is let
through; success closes the circuit, failure re-opens it.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from pulsekit.contracts.enums import CircuitState
from pulsekit.contracts.errors import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Circuit breaker for a single key.

    Thread Safety:
        State transitions are protected by an internal lock. The wrapped
        operation runs outside the lock.
    """

    def __init__(
        self,
        key: str,
        threshold: int = 5,
        reset_timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.key = key
        self._threshold = threshold
        self._reset_timeout = reset_timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._total_failures = 0
        self._total_successes = 0
        self._times_opened = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        # Caller holds the lock
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self._reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
        return self._state

    def call(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (operation not called).
        """
        with self._lock:
            state = self._current_state()
            if state is CircuitState.OPEN:
                raise CircuitOpenError(self.key)
            if state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.key)
                self._trial_in_flight = True

        try:
            result = operation()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            self._total_successes += 1
            self._consecutive_failures = 0
            if self._state is not CircuitState.CLOSED:
                logger.info("Circuit breaker closed", key=self.key)
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False

    def _record_failure(self) -> None:
        with self._lock:
            self._total_failures += 1
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN or self._consecutive_failures >= self._threshold:
                self._trip()

    def _trip(self) -> None:
        # Caller holds the lock
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self._times_opened += 1
        logger.warning(
            "Circuit breaker opened",
            key=self.key,
            consecutive_failures=self._consecutive_failures,
            reset_timeout_seconds=self._reset_timeout,
        )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "state": self._current_state().value,
                "consecutive_failures": self._consecutive_failures,
                "total_failures": self._total_failures,
                "total_successes": self._total_successes,
                "times_opened": self._times_opened,
            }
