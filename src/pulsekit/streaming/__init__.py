"""Live streaming of tracked events.

Available providers:
- ConsoleStreamingProvider ("console")
- LocalStreamingProvider ("local")

Plugin registration:
    Providers are registered via the pulsekit_get_streaming_providers hook.
    BuiltinStreamingPlugin registers the providers above.
"""

from collections.abc import Iterable
from typing import Any

from pulsekit.plugins.hookspecs import hookimpl
from pulsekit.plugins.registry import ComponentRegistry, discover_components
from pulsekit.streaming.console import ConsoleStreamingProvider
from pulsekit.streaming.local import LocalStreamingProvider
from pulsekit.streaming.protocols import StreamingProviderProtocol


class BuiltinStreamingPlugin:
    """Plugin that registers built-in streaming providers."""

    @hookimpl
    def pulsekit_get_streaming_providers(self) -> list[type]:
        return [ConsoleStreamingProvider, LocalStreamingProvider]


def create_streaming_registry(
    extra_plugins: Iterable[Any] = (),
    *,
    load_entrypoints: bool = False,
) -> ComponentRegistry[StreamingProviderProtocol]:
    discovered = discover_components(
        "pulsekit_get_streaming_providers",
        "provider_type",
        [BuiltinStreamingPlugin(), *extra_plugins],
        load_entrypoints=load_entrypoints,
    )
    return ComponentRegistry("streaming provider", discovered)


__all__ = [
    "BuiltinStreamingPlugin",
    "ConsoleStreamingProvider",
    "LocalStreamingProvider",
    "StreamingProviderProtocol",
    "create_streaming_registry",
]
