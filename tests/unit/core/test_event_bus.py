# tests/unit/core/test_event_bus.py
"""Tests for the notification EventBus."""

from dataclasses import dataclass

import pytest

from pulsekit.core.events import EventBus, NullEventBus


@dataclass(frozen=True)
class Ping:
    value: int


@dataclass(frozen=True)
class Pong:
    value: int


class TestEventBus:
    def test_delivers_to_subscribers_of_exact_type(self) -> None:
        bus = EventBus()
        pings: list[Ping] = []
        pongs: list[Pong] = []
        bus.subscribe(Ping, pings.append)
        bus.subscribe(Pong, pongs.append)

        bus.emit(Ping(1))

        assert pings == [Ping(1)]
        assert pongs == []

    def test_handlers_called_in_subscription_order(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.subscribe(Ping, lambda _: order.append("first"))
        bus.subscribe(Ping, lambda _: order.append("second"))
        bus.emit(Ping(1))
        assert order == ["first", "second"]

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        received: list[Ping] = []
        bus.subscribe(Ping, received.append)
        bus.unsubscribe(Ping, received.append)
        bus.unsubscribe(Ping, received.append)  # unknown handlers are ignored
        bus.emit(Ping(1))
        assert received == []

    def test_handler_may_unsubscribe_during_emit(self) -> None:
        bus = EventBus()
        received: list[int] = []

        def once(event: Ping) -> None:
            received.append(event.value)
            bus.unsubscribe(Ping, once)

        bus.subscribe(Ping, once)
        bus.emit(Ping(1))
        bus.emit(Ping(2))
        assert received == [1]

    def test_handler_exceptions_propagate(self) -> None:
        bus = EventBus()

        def broken(event: Ping) -> None:
            raise RuntimeError("handler failed")

        bus.subscribe(Ping, broken)
        with pytest.raises(RuntimeError, match="handler failed"):
            bus.emit(Ping(1))

    def test_emit_without_subscribers_is_noop(self) -> None:
        EventBus().emit(Ping(1))


class TestNullEventBus:
    def test_never_delivers(self) -> None:
        bus = NullEventBus()
        received: list[Ping] = []
        bus.subscribe(Ping, received.append)
        bus.emit(Ping(1))
        assert received == []
