# src/pulsekit/plugins/registry.py
"""Component registries discovered through pluggy hooks.

Replaces a closed ``type -> class`` switch: every storage provider,
exporter and streaming provider is contributed by a pluggy plugin, and
runtime plugins may add more factories through their
``register_storage_provider`` / ``register_exporter`` callbacks.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

import pluggy
import structlog

from pulsekit.contracts.errors import CapabilityError, PluginValidationError
from pulsekit.plugins.hookspecs import (
    PROJECT_NAME,
    PulsekitExportSpec,
    PulsekitStorageSpec,
    PulsekitStreamingSpec,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _resolve_key(component_class: Any, key_attr: str) -> str:
    key = getattr(component_class, key_attr, None)
    if type(key) is not str or key == "":
        raise PluginValidationError(
            getattr(component_class, "__name__", repr(component_class)),
            f"class attribute {key_attr} must be a non-empty string, got {key!r}",
        )
    return key


def discover_components(
    hook_name: str,
    key_attr: str,
    plugins: Iterable[Any],
    *,
    load_entrypoints: bool = False,
) -> dict[str, type]:
    """Call ``hook_name`` on every pluggy plugin and build a key -> class map.

    Args:
        hook_name: Discovery hook, e.g. ``pulsekit_get_storage_providers``
        key_attr: Class attribute holding the registry key
        plugins: Plugin objects implementing the hook (built-ins first)
        load_entrypoints: Also load plugins from the ``pulsekit`` entry point group

    Raises:
        PluginValidationError: If a plugin does not match the hook specs, a
            hook returns something other than an iterable of classes, or
            two classes claim the same key.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(PulsekitStorageSpec)
    plugin_manager.add_hookspecs(PulsekitExportSpec)
    plugin_manager.add_hookspecs(PulsekitStreamingSpec)

    for plugin in plugins:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise PluginValidationError(type(plugin).__name__, f"invalid component plugin: {e}") from e

    if load_entrypoints:
        loaded = plugin_manager.load_setuptools_entrypoints(PROJECT_NAME)
        if loaded:
            logger.debug("Loaded component plugins from entry points", count=loaded)

    registry: dict[str, type] = {}
    hook_caller = getattr(plugin_manager.hook, hook_name)
    for hook_impl in hook_caller.get_hookimpls():
        plugin_label = type(hook_impl.plugin).__name__
        try:
            components = getattr(hook_impl.plugin, hook_name)()
        except Exception as e:
            raise PluginValidationError(plugin_label, f"{hook_name} failed: {e}") from e
        if components is None or isinstance(components, str | bytes):
            raise PluginValidationError(
                plugin_label,
                f"{hook_name} returned {type(components).__name__}; expected an iterable of classes",
            )
        for component_class in components:
            key = _resolve_key(component_class, key_attr)
            if key in registry:
                raise PluginValidationError(
                    plugin_label,
                    f"duplicate {key_attr} {key!r}: {registry[key].__name__} and {component_class.__name__}",
                )
            registry[key] = component_class
    return registry


class ComponentRegistry(Generic[T]):
    """Name -> class map built from discovered components.

    The map is fixed at construction, so lookups need no locking. Plugin
    contributions made at runtime live in the PluginManager side tables.
    """

    def __init__(self, kind: str, discovered: dict[str, type] | None = None) -> None:
        self._kind = kind
        self._discovered: dict[str, Callable[..., T]] = dict(discovered or {})

    def get(self, key: str) -> Callable[..., T]:
        """Return the factory for ``key``.

        Raises:
            CapabilityError: If no factory is registered under ``key``.
        """
        factory = self._discovered.get(key)
        if factory is None:
            raise CapabilityError(f"Unknown {self._kind} type {key!r}; available: {self.keys()}")
        return factory

    def create(self, key: str, *args: Any, **kwargs: Any) -> T:
        return self.get(key)(*args, **kwargs)

    def __contains__(self, key: object) -> bool:
        return key in self._discovered

    def keys(self) -> list[str]:
        return sorted(self._discovered)
