# src/pulsekit/plugins/protocols.py
"""Plugin contract and hook capability checks.

A plugin is any object with a non-empty ``name``. Hooks are optional
methods looked up by name; the tables below are the complete set of hook
names the pipeline dispatches. Custom hooks are supplied through a
``hooks`` mapping of name to callable.

Example:
    class DropDebugEvents:
        name = "drop-debug"
        version = "1.0.0"

        def before_track(self, event):
            return None if event.category == "debug" else event
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.errors import PluginValidationError

if TYPE_CHECKING:
    from pulsekit.export.protocols import ExporterProtocol
    from pulsekit.storage.base import StorageProvider

HOOK_NAMES: Mapping[HookCategory, tuple[str, ...]] = {
    HookCategory.TRACK: ("before_track", "after_track"),
    HookCategory.STORAGE: (
        "before_store",
        "after_store",
        "on_storage_error",
        "before_delete",
        "after_delete",
    ),
    HookCategory.QUERY: (
        "before_query",
        "after_query",
        "on_query_error",
        "transform_query_result",
    ),
    HookCategory.EXPORT: (
        "before_export",
        "after_export",
        "on_export_error",
        "transform_export_data",
    ),
    HookCategory.ANALYTICS: ("before_analytics", "after_analytics"),
}

LIFECYCLE_METHODS: tuple[str, ...] = (
    "initialize",
    "shutdown",
    "register_storage_provider",
    "register_exporter",
)

HookTable = dict[HookCategory, dict[str, Callable[..., Any]]]

StorageFactory = Callable[..., "StorageProvider"]
RegisterStorageProvider = Callable[[str, StorageFactory], None]
RegisterExporter = Callable[[str, "ExporterProtocol"], None]


class PluginProtocol(Protocol):
    """Minimum surface of a plugin. Every hook method is optional."""

    name: str


def is_transform_hook(hook_name: str) -> bool:
    """Transform hooks may replace the value passed as their first argument."""
    return hook_name.startswith(("before", "after")) or "transform" in hook_name


def plugin_name(plugin: object) -> str:
    """Return the plugin's identity.

    Raises:
        PluginValidationError: If ``name`` is missing or not a non-empty string.
    """
    name = getattr(plugin, "name", None)
    if type(name) is not str or not name.strip():
        raise PluginValidationError(
            type(plugin).__name__,
            f"plugin 'name' must be a non-empty string, got {name!r}",
        )
    return name


def extract_hooks(plugin: object) -> HookTable:
    """Collect the bound hook callables a plugin provides, per category.

    Raises:
        PluginValidationError: If a known hook or lifecycle attribute is
            present but not callable, or ``hooks`` is not a mapping of
            callables.
    """
    name = plugin_name(plugin)

    for method in LIFECYCLE_METHODS:
        attr = getattr(plugin, method, None)
        if attr is not None and not callable(attr):
            raise PluginValidationError(name, f"'{method}' must be callable, got {type(attr).__name__}")

    table: HookTable = {}
    for category, hook_names in HOOK_NAMES.items():
        for hook_name in hook_names:
            fn = getattr(plugin, hook_name, None)
            if fn is None:
                continue
            if not callable(fn):
                raise PluginValidationError(name, f"hook '{hook_name}' must be callable, got {type(fn).__name__}")
            table.setdefault(category, {})[hook_name] = fn

    custom = getattr(plugin, "hooks", None)
    if custom is not None:
        if not isinstance(custom, Mapping):
            raise PluginValidationError(name, f"'hooks' must be a mapping, got {type(custom).__name__}")
        for hook_name, fn in custom.items():
            if type(hook_name) is not str or not hook_name:
                raise PluginValidationError(name, f"custom hook names must be non-empty strings, got {hook_name!r}")
            if not callable(fn):
                raise PluginValidationError(name, f"custom hook '{hook_name}' must be callable")
            table.setdefault(HookCategory.CUSTOM, {})[hook_name] = fn

    return table
