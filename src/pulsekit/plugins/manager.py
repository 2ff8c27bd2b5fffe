# src/pulsekit/plugins/manager.py
"""Plugin manager: registration, lifecycle and typed hook dispatch.

PluginManager owns the plugin set and delegates hook execution to a
HookExecutor. Each ``execute_*_hooks`` wrapper builds the HookContext for
its category, so callers pass only the hook's own arguments.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import structlog

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.errors import DuplicatePluginError, PluginRejectedError
from pulsekit.contracts.events import TelemetryEvent
from pulsekit.contracts.hooks import HookContext, HookExecutionOptions
from pulsekit.plugins.executor import HookExecutor
from pulsekit.plugins.protocols import (
    StorageFactory,
    extract_hooks,
    plugin_name,
)

logger = structlog.get_logger(__name__)


class PluginManager:
    """Manages plugin registration, lookup and hook dispatch.

    Usage:
        manager = PluginManager(service=service)
        manager.register(MyPlugin())

        event = manager.process_event(event)
        events = manager.execute_storage_hooks("before_store", (events, "memory"), provider="memory")

    Thread Safety:
        Registration state is protected by an RLock. Names being registered
        are reserved up front so two concurrent registrations of the same
        name cannot both succeed.
    """

    def __init__(
        self,
        executor: HookExecutor | None = None,
        *,
        service: Any = None,
    ) -> None:
        self._executor = executor or HookExecutor()
        self._service = service
        self._plugins: dict[str, Any] = {}
        self._pending: set[str] = set()
        self._storage_factories: dict[str, StorageFactory] = {}
        self._exporters: dict[str, Any] = {}
        # plugin name -> keys it contributed, for cleanup on unregister
        self._contributed: dict[str, tuple[list[str], list[str]]] = {}
        self._lock = threading.RLock()

    @property
    def executor(self) -> HookExecutor:
        return self._executor

    # -- registration --------------------------------------------------------

    def initialize(self, plugins: Iterable[Any]) -> None:
        """Register each plugin in order. Stops at the first failure."""
        for plugin in plugins:
            self.register(plugin)

    def register(self, plugin: Any) -> None:
        """Register a plugin.

        Order: validate, ``plugin.initialize(service)``, record hooks, then
        collect storage provider and exporter contributions.

        Raises:
            PluginValidationError: If the plugin does not satisfy the contract.
            DuplicatePluginError: If the name is already registered.
            Exception: Whatever ``plugin.initialize`` or a registration
                callback raises; the plugin is not registered.
        """
        name = plugin_name(plugin)
        with self._lock:
            if name in self._plugins or name in self._pending:
                raise DuplicatePluginError(name)
            self._pending.add(name)

        try:
            hooks = extract_hooks(plugin)
            initialize = getattr(plugin, "initialize", None)
            if initialize is not None:
                initialize(self._service)

            self._executor.register_plugin(name, hooks)
            try:
                storage_keys, exporter_keys = self._collect_contributions(name, plugin)
            except Exception:
                self._executor.unregister_plugin(name)
                raise

            with self._lock:
                self._plugins[name] = plugin
                self._contributed[name] = (storage_keys, exporter_keys)
        finally:
            with self._lock:
                self._pending.discard(name)

        logger.info(
            "Plugin registered",
            plugin=name,
            version=getattr(plugin, "version", None),
            hooks=sorted(h for category_hooks in hooks.values() for h in category_hooks),
        )

    def _collect_contributions(self, name: str, plugin: Any) -> tuple[list[str], list[str]]:
        storage: dict[str, StorageFactory] = {}
        exporters: dict[str, Any] = {}

        register_storage_provider = getattr(plugin, "register_storage_provider", None)
        if register_storage_provider is not None:
            register_storage_provider(storage.__setitem__)

        register_exporter = getattr(plugin, "register_exporter", None)
        if register_exporter is not None:
            register_exporter(exporters.__setitem__)

        with self._lock:
            self._storage_factories.update(storage)
            self._exporters.update(exporters)
        if storage or exporters:
            logger.debug(
                "Plugin contributed components",
                plugin=name,
                storage_types=sorted(storage),
                export_formats=sorted(exporters),
            )
        return list(storage), list(exporters)

    def unregister(self, name: str) -> None:
        """Remove a plugin. Unknown names are a no-op.

        ``plugin.shutdown()`` is called best-effort: failures are logged.
        """
        with self._lock:
            plugin = self._plugins.pop(name, None)
            if plugin is None:
                return
            storage_keys, exporter_keys = self._contributed.pop(name, ([], []))
            for key in storage_keys:
                self._storage_factories.pop(key, None)
            for key in exporter_keys:
                self._exporters.pop(key, None)
        self._executor.unregister_plugin(name)
        self._shutdown_plugin(name, plugin)
        logger.info("Plugin unregistered", plugin=name)

    def _shutdown_plugin(self, name: str, plugin: Any) -> None:
        shutdown = getattr(plugin, "shutdown", None)
        if shutdown is None:
            return
        try:
            shutdown()
        except Exception as e:
            logger.warning("Plugin shutdown failed", plugin=name, error=str(e), error_type=type(e).__name__)

    # -- lookup --------------------------------------------------------------

    def plugins(self) -> list[Any]:
        with self._lock:
            return list(self._plugins.values())

    def plugin_names(self) -> list[str]:
        with self._lock:
            return list(self._plugins)

    def get_plugin(self, name: str) -> Any | None:
        with self._lock:
            return self._plugins.get(name)

    def has_plugin(self, name: str) -> bool:
        with self._lock:
            return name in self._plugins

    def custom_storage_providers(self) -> dict[str, StorageFactory]:
        with self._lock:
            return dict(self._storage_factories)

    def custom_exporters(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._exporters)

    def hook_stats(self) -> dict[str, Any]:
        return {
            "plugins": self.plugin_names(),
            "hooks": self._executor.registered_hooks(),
            **self._executor.stats(),
        }

    # -- typed dispatch ------------------------------------------------------
    #
    # ``args`` are the hook's own positional arguments; the HookContext is
    # appended. The value a hook may transform is always args[0].

    def execute_storage_hooks(
        self,
        operation: str,
        args: Sequence[Any],
        provider: str,
        options: HookExecutionOptions | None = None,
    ) -> Any:
        ctx = HookContext(category=HookCategory.STORAGE, operation=operation, metadata={"provider": provider})
        return self._executor.execute_and_reduce(HookCategory.STORAGE, operation, (*args, ctx), options)

    def execute_query_hooks(
        self,
        operation: str,
        args: Sequence[Any],
        provider: str | None = None,
        options: HookExecutionOptions | None = None,
    ) -> Any:
        ctx = HookContext(category=HookCategory.QUERY, operation=operation, metadata={"provider": provider})
        return self._executor.execute_and_reduce(HookCategory.QUERY, operation, (*args, ctx), options)

    def execute_export_hooks(
        self,
        operation: str,
        args: Sequence[Any],
        format: str,
        options: HookExecutionOptions | None = None,
    ) -> Any:
        ctx = HookContext(category=HookCategory.EXPORT, operation=operation, metadata={"format": format})
        return self._executor.execute_and_reduce(HookCategory.EXPORT, operation, (*args, ctx), options)

    def execute_analytics_hooks(
        self,
        operation: str,
        args: Sequence[Any],
        analytics_operation: str,
        options: HookExecutionOptions | None = None,
    ) -> Any:
        ctx = HookContext(
            category=HookCategory.ANALYTICS,
            operation=operation,
            metadata={"analytics_operation": analytics_operation},
        )
        return self._executor.execute_and_reduce(HookCategory.ANALYTICS, operation, (*args, ctx), options)

    def execute_custom_hook(
        self,
        hook_name: str,
        args: Sequence[Any] = (),
        options: HookExecutionOptions | None = None,
    ) -> list[Any]:
        """Run a custom hook and return the successful results in registration order."""
        ctx = HookContext(category=HookCategory.CUSTOM, operation=hook_name)
        results = self._executor.execute_hooks(HookCategory.CUSTOM, hook_name, (*args, ctx), options)
        return [r.result for r in results if r.success]

    # -- track path ----------------------------------------------------------

    def process_event(self, event: TelemetryEvent) -> TelemetryEvent:
        """Run ``before_track`` then ``after_track`` for an event.

        ``before_track`` hooks run in registration order, each receiving the
        previous hook's event. A hook returning None rejects the event. A hook
        that raises or times out is skipped and the event passes on
        unchanged. ``after_track`` hooks only observe.

        Raises:
            PluginRejectedError: Naming the plugin that returned None.
        """
        timeout = self._executor.default_options.timeout_seconds
        for name, hook in self._executor.hooks_for(HookCategory.TRACK, "before_track"):
            result = self._executor.invoke(name, "before_track", hook, (event,), timeout)
            if not result.success:
                continue
            if result.result is None:
                logger.info("Event rejected by plugin", plugin=name, event_id=event.id)
                raise PluginRejectedError(name)
            if not isinstance(result.result, TelemetryEvent):
                logger.warning(
                    "before_track returned a non-event value; ignoring",
                    plugin=name,
                    returned_type=type(result.result).__name__,
                )
                continue
            event = result.result

        for name, hook in self._executor.hooks_for(HookCategory.TRACK, "after_track"):
            self._executor.invoke(name, "after_track", hook, (event,), timeout)

        return event

    # -- shutdown ------------------------------------------------------------

    def shutdown(self) -> None:
        """Shut down every plugin in parallel, then clear all registries.

        Plugin shutdown failures are logged and never raised.
        """
        with self._lock:
            plugins = list(self._plugins.items())
            self._plugins.clear()
            self._contributed.clear()
            self._storage_factories.clear()
            self._exporters.clear()

        if plugins:
            with ThreadPoolExecutor(max_workers=len(plugins), thread_name_prefix="pulsekit-plugin-shutdown") as pool:
                for name, plugin in plugins:
                    pool.submit(self._shutdown_plugin, name, plugin)

        self._executor.shutdown()
        logger.debug("Plugin manager shut down", plugins=[name for name, _ in plugins])
