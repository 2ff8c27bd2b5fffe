"""Plugin system: contract, hook execution, registration and component discovery."""

from pulsekit.plugins.executor import HookExecutor
from pulsekit.plugins.hookspecs import hookimpl
from pulsekit.plugins.manager import PluginManager
from pulsekit.plugins.protocols import (
    HOOK_NAMES,
    PluginProtocol,
    RegisterExporter,
    RegisterStorageProvider,
    StorageFactory,
)
from pulsekit.plugins.registry import ComponentRegistry, discover_components

__all__ = [
    "HOOK_NAMES",
    "ComponentRegistry",
    "HookExecutor",
    "PluginManager",
    "PluginProtocol",
    "RegisterExporter",
    "RegisterStorageProvider",
    "StorageFactory",
    "discover_components",
    "hookimpl",
]
