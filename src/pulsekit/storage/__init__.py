"""Storage backends.

Available providers:
- MemoryProvider ("memory"): in-process, insertion ordered
- SQLiteProvider ("sqlite"): SQLAlchemy Core on a SQLite file or memory

Plugin registration:
    Providers are registered via the pulsekit_get_storage_providers hook.
    BuiltinStoragePlugin registers the providers above.
"""

from collections.abc import Iterable
from typing import Any

from pulsekit.plugins.hookspecs import hookimpl
from pulsekit.plugins.registry import ComponentRegistry, discover_components
from pulsekit.storage.base import StorageProvider
from pulsekit.storage.memory import MemoryProvider
from pulsekit.storage.plugin_aware import PluginAwareStorageProvider
from pulsekit.storage.sqlite import SQLiteProvider


class BuiltinStoragePlugin:
    """Plugin that registers built-in storage providers."""

    @hookimpl
    def pulsekit_get_storage_providers(self) -> list[type[StorageProvider]]:
        return [MemoryProvider, SQLiteProvider]


def create_storage_registry(
    extra_plugins: Iterable[Any] = (),
    *,
    load_entrypoints: bool = False,
) -> ComponentRegistry[StorageProvider]:
    """Discover storage provider classes and return a registry keyed by type."""
    discovered = discover_components(
        "pulsekit_get_storage_providers",
        "provider_type",
        [BuiltinStoragePlugin(), *extra_plugins],
        load_entrypoints=load_entrypoints,
    )
    return ComponentRegistry("storage provider", discovered)


__all__ = [
    "BuiltinStoragePlugin",
    "MemoryProvider",
    "PluginAwareStorageProvider",
    "SQLiteProvider",
    "StorageProvider",
    "create_storage_registry",
]
