# src/pulsekit/streaming/protocols.py
"""Streaming provider contract.

A streaming provider pushes each tracked event to live consumers. It is a
non-critical path: the service retries a failed ``stream`` call and then
reports the failure without failing ``track``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pulsekit.contracts.events import TelemetryEvent


@runtime_checkable
class StreamingProviderProtocol(Protocol):
    provider_type: str

    def initialize(self, options: dict[str, Any]) -> None:
        """Validate options and open outputs.

        Raises:
            ConfigurationError: If options are invalid.
        """
        ...

    def stream(self, event: TelemetryEvent) -> None: ...

    def shutdown(self) -> None: ...
