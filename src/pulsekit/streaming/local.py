# src/pulsekit/streaming/local.py
"""In-process streaming: broadcast tracked events to subscriber callbacks."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from pulsekit.contracts.errors import ConfigurationError

if TYPE_CHECKING:
    from pulsekit.contracts.events import TelemetryEvent

logger = structlog.get_logger(__name__)

Subscriber = Callable[["TelemetryEvent"], None]


class LocalStreamingProvider:
    """Fan tracked events out to in-process subscribers.

    A failing subscriber is logged and does not stop delivery to the
    others. The most recent ``buffer_size`` events are kept for consumers
    that attach late.

    Example:
        provider = service.streaming
        unsubscribe = provider.subscribe(lambda event: print(event.action))
    """

    provider_type = "local"

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._recent: deque[TelemetryEvent] = deque(maxlen=100)
        self._lock = threading.Lock()
        self._delivered = 0
        self._failed = 0

    def initialize(self, options: dict[str, Any]) -> None:
        buffer_size = options.get("buffer_size", 100)
        if type(buffer_size) is not int or buffer_size <= 0:
            raise ConfigurationError(f"local streaming: buffer_size must be a positive integer, got {buffer_size!r}")
        with self._lock:
            self._recent = deque(self._recent, maxlen=buffer_size)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Add a subscriber. Returns a callable that removes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def stream(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._recent.append(event)
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event)
                self._delivered += 1
            except Exception as e:
                self._failed += 1
                logger.warning("Streaming subscriber failed", event_id=event.id, error=str(e))

    def recent(self) -> list[TelemetryEvent]:
        with self._lock:
            return list(self._recent)

    @property
    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "subscribers": len(self._subscribers),
                "delivered": self._delivered,
                "failed": self._failed,
            }

    def shutdown(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._recent.clear()
