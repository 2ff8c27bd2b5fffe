# src/pulsekit/core/retention.py
"""Retention maintenance: periodic deletion of events past their max age.

The scheduler runs on its own daemon thread and never blocks event
tracking. A failing run is logged and reported; the next run happens on
schedule.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from time import perf_counter

import structlog

logger = structlog.get_logger(__name__)


def retention_cutoff(retention_days: int, as_of: datetime | None = None) -> datetime:
    """Events with a timestamp before the returned moment are expired."""
    if retention_days <= 0:
        raise ValueError(f"retention_days must be positive, got {retention_days}")
    return (as_of or datetime.now(UTC)) - timedelta(days=retention_days)


@dataclass
class MaintenanceResult:
    """Outcome of one retention run across providers."""

    cutoff: datetime
    deleted: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


class MaintenanceScheduler:
    """Runs ``task`` every ``interval_seconds`` on a background thread.

    Example:
        scheduler = MaintenanceScheduler(service.run_maintenance, interval_seconds=300)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        task: Callable[[], object],
        interval_seconds: float,
        *,
        on_error: Callable[[Exception], None] | None = None,
        name: str = "pulsekit-maintenance",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._task = task
        self._interval = interval_seconds
        self._on_error = on_error
        self._name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def runs(self) -> int:
        return self._runs

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        # wait() returns True once stop() is called
        while not self._stop_event.wait(self._interval):
            self.run_once()

    def run_once(self) -> None:
        started = perf_counter()
        try:
            self._task()
        except Exception as e:
            logger.error("Maintenance run failed", error=str(e), error_type=type(e).__name__)
            if self._on_error is not None:
                self._on_error(e)
        else:
            logger.debug("Maintenance run completed", duration_seconds=round(perf_counter() - started, 3))
        finally:
            self._runs += 1

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread. Safe to call more than once."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
