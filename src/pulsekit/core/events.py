"""Notification bus for service lifecycle observability.

A synchronous typed bus: subscribers register per notification class and
are called in subscription order on the emitting thread.
"""

import threading
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class EventBusProtocol(Protocol):
    """Interface shared by EventBus and NullEventBus."""

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None: ...

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None: ...

    def emit(self, event: object) -> None: ...


class EventBus:
    """Synchronous notification bus.

    Handler exceptions propagate to the emitter. Subscription changes are
    lock-protected and ``emit`` iterates over a snapshot, so a handler may
    subscribe or unsubscribe while being called.

    Example:
        bus = EventBus()
        bus.subscribe(StorageDegraded, lambda n: print(n.failed))
        bus.emit(StorageDegraded(event_id="e1", succeeded=("memory",), failed=("sqlite",)))
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: object) -> None:
        """Emit a notification to all subscribers of its exact type.

        Notifications with no subscribers are silently ignored.
        """
        with self._lock:
            handlers = list(self._subscribers.get(type(event), ()))
        for handler in handlers:
            handler(event)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


class NullEventBus:
    """No-op bus for components used without a service.

    Does NOT inherit from EventBus: subscribing here never delivers anything,
    and inheritance would hide that.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        pass

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        pass

    def emit(self, event: object) -> None:
        pass
