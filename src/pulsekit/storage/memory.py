# src/pulsekit/storage/memory.py
"""In-memory storage provider.

Events are kept in insertion order. Optionally bounded: once ``max_events``
is reached the oldest events are dropped. Writes are idempotent on event
id: an event whose id is already held is ignored, as in the SQLite backend.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Sequence
from datetime import datetime

from pulsekit.contracts.events import QueryFilter, TelemetryEvent
from pulsekit.contracts.results import StorageStats
from pulsekit.storage.base import StorageProvider


class MemoryProvider(StorageProvider):
    """Thread-safe in-process storage, mainly for tests and development."""

    provider_type = "memory"
    supports_query = True
    supports_batch = True

    def __init__(self, name: str | None = None, max_events: int | None = None) -> None:
        super().__init__(name)
        if max_events is not None and max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self._events: deque[TelemetryEvent] = deque(maxlen=max_events)
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def initialize(self) -> None:
        pass

    def store(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._append(event)

    def store_batch(self, events: Sequence[TelemetryEvent]) -> None:
        with self._lock:
            for event in events:
                self._append(event)

    def _append(self, event: TelemetryEvent) -> None:
        if event.id in self._ids:
            return
        if self._events.maxlen is not None and len(self._events) == self._events.maxlen:
            self._ids.discard(self._events[0].id)
        self._events.append(event)
        self._ids.add(event.id)

    def query(self, query_filter: QueryFilter) -> list[TelemetryEvent]:
        with self._lock:
            matched = [e for e in self._events if query_filter.matches(e)]
        return query_filter.paginate(matched)

    def get_stats(self) -> StorageStats:
        with self._lock:
            events = list(self._events)
        timestamps = [e.timestamp for e in events]
        return StorageStats(
            provider=self.name,
            total_events=len(events),
            total_sessions=len({e.session_id for e in events}),
            oldest_event=min(timestamps) if timestamps else None,
            newest_event=max(timestamps) if timestamps else None,
        )

    def clean(self, before: datetime) -> int:
        with self._lock:
            kept = [e for e in self._events if e.timestamp >= before]
            removed = len(self._events) - len(kept)
            self._events = deque(kept, maxlen=self._events.maxlen)
            self._ids = {e.id for e in kept}
        return removed

    def shutdown(self) -> None:
        with self._lock:
            self._events.clear()
            self._ids.clear()
