# src/pulsekit/plugins/hookspecs.py
"""pluggy hook specifications for built-in component discovery.

Storage providers, exporters and streaming providers register themselves
through these hooks. The built-in implementations are contributed by the
``Builtin*Plugin`` classes in each component package; third-party packages
can add more through the ``pulsekit`` entry point group.

Usage (contributing a storage provider):
    from pulsekit.plugins.hookspecs import hookimpl

    class RedisStoragePlugin:
        @hookimpl
        def pulsekit_get_storage_providers(self):
            return [RedisProvider]

Note: these hooks discover component CLASSES. Per-event behaviour (the
before_store/after_query/... hooks) lives on runtime plugins managed by
PluginManager, not here.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from pulsekit.export.protocols import ExporterProtocol
    from pulsekit.storage.base import StorageProvider
    from pulsekit.streaming.protocols import StreamingProviderProtocol

PROJECT_NAME = "pulsekit"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class PulsekitStorageSpec:
    """Hook specifications for storage provider discovery."""

    @hookspec
    def pulsekit_get_storage_providers(self) -> list[type["StorageProvider"]]:  # type: ignore[empty-body]
        """Return storage provider classes.

        Each class declares its registry key in ``provider_type``.
        """


class PulsekitExportSpec:
    """Hook specifications for exporter discovery."""

    @hookspec
    def pulsekit_get_exporters(self) -> list[type["ExporterProtocol"]]:  # type: ignore[empty-body]
        """Return exporter classes. Each class declares its ``format``."""


class PulsekitStreamingSpec:
    """Hook specifications for streaming provider discovery."""

    @hookspec
    def pulsekit_get_streaming_providers(self) -> list[type["StreamingProviderProtocol"]]:  # type: ignore[empty-body]
        """Return streaming provider classes. Each class declares ``provider_type``."""
