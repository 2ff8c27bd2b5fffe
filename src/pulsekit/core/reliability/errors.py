# src/pulsekit/core/reliability/errors.py
"""Bounded in-memory record of recent pipeline errors."""

from __future__ import annotations

import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from pulsekit.contracts.enums import ErrorSeverity
from pulsekit.contracts.errors import (
    CircuitOpenError,
    PluginError,
    RateLimitExceededError,
    StorageFailureError,
)


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    error_type: str
    message: str
    category: str
    severity: ErrorSeverity
    timestamp: datetime


def classify(error: BaseException) -> tuple[str, ErrorSeverity]:
    """Map an exception to (category, severity)."""
    if isinstance(error, StorageFailureError):
        return "storage", ErrorSeverity.CRITICAL
    if isinstance(error, CircuitOpenError):
        return "circuit_breaker", ErrorSeverity.HIGH
    if isinstance(error, RateLimitExceededError):
        return "rate_limit", ErrorSeverity.LOW
    if isinstance(error, PluginError):
        return "plugin", ErrorSeverity.MEDIUM
    if isinstance(error, TimeoutError):
        return "timeout", ErrorSeverity.MEDIUM
    return "unknown", ErrorSeverity.MEDIUM


class ErrorTracker:
    """Keeps the most recent ``max_records`` errors.

    Thread Safety:
        All access goes through an internal lock.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self._records: deque[ErrorRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def record(self, error: BaseException, *, category: str | None = None) -> ErrorRecord:
        default_category, severity = classify(error)
        entry = ErrorRecord(
            error_type=type(error).__name__,
            message=str(error),
            category=category or default_category,
            severity=severity,
            timestamp=datetime.now(UTC),
        )
        with self._lock:
            self._records.append(entry)
        return entry

    def recent(self, window: timedelta) -> list[ErrorRecord]:
        cutoff = datetime.now(UTC) - window
        with self._lock:
            return [r for r in self._records if r.timestamp >= cutoff]

    def stats(self) -> dict[str, Any]:
        with self._lock:
            records = list(self._records)
        return {
            "total": len(records),
            "by_category": dict(Counter(r.category for r in records)),
            "by_severity": dict(Counter(r.severity.value for r in records)),
            "last_error": records[-1].message if records else None,
        }

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
