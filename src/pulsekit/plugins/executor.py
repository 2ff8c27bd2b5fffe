# src/pulsekit/plugins/executor.py
"""HookExecutor: runs a named hook across every plugin that provides it.

Each hook invocation runs on its own daemon worker thread so it can be
given a time budget that starts when the hook starts:
- Sequential dispatch preserves registration order and chains transform
  values (each hook receives the previous hook's result as its first
  argument)
- Parallel dispatch submits every invocation at once and reports results
  in registration order regardless of completion order
- A hook that exceeds its budget is reported as failed with
  HookTimeoutError. Python threads cannot be cancelled, so the abandoned
  hook keeps running and its side effects may still land afterwards
- A plugin with too many abandoned hooks still running fails further
  invocations immediately instead of starting more workers

Thread Safety:
    The registry is guarded by an RLock. Every dispatch works on a
    snapshot taken at call start, so registering or unregistering during a
    dispatch never affects the hooks already selected.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future
from time import perf_counter
from typing import Any

import structlog

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.errors import HookTimeoutError
from pulsekit.contracts.hooks import HookExecutionOptions, HookResult
from pulsekit.plugins.protocols import HookTable, is_transform_hook

logger = structlog.get_logger(__name__)

HookFn = Callable[..., Any]

_DEFAULT_MAX_ABANDONED = 4


class HookExecutor:
    """Registry and dispatcher for plugin hooks.

    Example:
        executor = HookExecutor()
        executor.register_plugin("tagger", {HookCategory.STORAGE: {"before_store": tag}})
        events = executor.execute_and_reduce(HookCategory.STORAGE, "before_store", (events, "memory", ctx))
    """

    def __init__(
        self,
        *,
        default_options: HookExecutionOptions | None = None,
        max_abandoned_per_plugin: int = _DEFAULT_MAX_ABANDONED,
    ) -> None:
        self._default_options = default_options or HookExecutionOptions()
        self._max_abandoned = max_abandoned_per_plugin
        self._registry: dict[HookCategory, dict[str, dict[str, HookFn]]] = {c: {} for c in HookCategory}
        self._lock = threading.RLock()

        # plugin name -> futures of timed-out hooks whose workers are still running
        self._abandoned: dict[str, set[Future[Any]]] = {}
        self._abandoned_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._invocations = 0
        self._failures = 0
        self._timeouts = 0

    @property
    def default_options(self) -> HookExecutionOptions:
        return self._default_options

    def abandoned_count(self, plugin_name: str) -> int:
        """Number of timed-out hooks of ``plugin_name`` still running."""
        with self._abandoned_lock:
            return len(self._abandoned.get(plugin_name, ()))

    def _start(self, plugin_name: str, fn: HookFn, args: Sequence[Any]) -> Future[Any]:
        future: Future[Any] = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                value = fn(*args)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(value)
            finally:
                with self._abandoned_lock:
                    pending = self._abandoned.get(plugin_name)
                    if pending is not None:
                        pending.discard(future)

        threading.Thread(target=run, name=f"pulsekit-hook-{plugin_name}", daemon=True).start()
        return future

    def _abandon(self, plugin_name: str, future: Future[Any]) -> None:
        # cancel() only succeeds if the worker has not picked the call up yet
        if future.cancel():
            return
        with self._abandoned_lock:
            if not future.done():
                self._abandoned.setdefault(plugin_name, set()).add(future)

    def _saturated(self, plugin_name: str) -> bool:
        with self._abandoned_lock:
            return len(self._abandoned.get(plugin_name, ())) >= self._max_abandoned

    def _rejected(self, plugin_name: str, hook_name: str, timeout: float) -> HookResult[Any]:
        self._count(timeout=True)
        logger.warning(
            "Plugin hook skipped; too many abandoned invocations still running",
            plugin=plugin_name,
            hook=hook_name,
            abandoned=self._max_abandoned,
        )
        return HookResult(
            plugin=plugin_name,
            hook=hook_name,
            success=False,
            duration_ms=0.0,
            error=HookTimeoutError(plugin_name, hook_name, timeout),
        )

    # -- registry ------------------------------------------------------------

    def register_plugin(self, plugin_name: str, hooks: HookTable) -> None:
        """Record a plugin's hooks. Registration order is dispatch order."""
        with self._lock:
            for category, named_hooks in hooks.items():
                if named_hooks:
                    self._registry[category][plugin_name] = dict(named_hooks)

    def unregister_plugin(self, plugin_name: str) -> None:
        with self._lock:
            for plugins in self._registry.values():
                plugins.pop(plugin_name, None)

    def hooks_for(
        self,
        category: HookCategory,
        hook_name: str,
        skip_plugins: Iterable[str] = (),
    ) -> list[tuple[str, HookFn]]:
        """Snapshot of ``(plugin_name, hook)`` pairs in registration order."""
        skip = frozenset(skip_plugins)
        with self._lock:
            return [
                (plugin_name, hooks[hook_name])
                for plugin_name, hooks in self._registry[category].items()
                if hook_name in hooks and plugin_name not in skip
            ]

    def has_hooks(self, category: HookCategory, hook_name: str) -> bool:
        return bool(self.hooks_for(category, hook_name))

    def registered_hooks(self) -> dict[str, list[str]]:
        """Debugging view: category -> ["plugin.hook", ...]."""
        with self._lock:
            return {
                category.value: [f"{plugin}.{hook}" for plugin, hooks in plugins.items() for hook in hooks]
                for category, plugins in self._registry.items()
                if plugins
            }

    # -- invocation ----------------------------------------------------------

    def invoke(
        self,
        plugin_name: str,
        hook_name: str,
        fn: HookFn,
        args: Sequence[Any],
        timeout_seconds: float | None = None,
    ) -> HookResult[Any]:
        """Run a single hook with a time budget and capture the outcome."""
        timeout = timeout_seconds if timeout_seconds is not None else self._default_options.timeout_seconds
        if self._saturated(plugin_name):
            return self._rejected(plugin_name, hook_name, timeout)
        started = perf_counter()
        future = self._start(plugin_name, fn, args)
        return self._collect(plugin_name, hook_name, future, started, time.monotonic() + timeout, timeout)

    def _collect(
        self,
        plugin_name: str,
        hook_name: str,
        future: Future[Any],
        started: float,
        deadline: float,
        timeout: float,
    ) -> HookResult[Any]:
        remaining = max(0.0, deadline - time.monotonic())
        try:
            value = future.result(timeout=remaining)
        except TimeoutError as e:
            duration_ms = (perf_counter() - started) * 1000
            # A hook may raise TimeoutError itself; only a pending future is a timeout
            if future.done():
                return self._failed(plugin_name, hook_name, e, duration_ms)
            self._abandon(plugin_name, future)
            self._count(timeout=True)
            logger.warning(
                "Plugin hook timed out",
                plugin=plugin_name,
                hook=hook_name,
                timeout_seconds=timeout,
            )
            return HookResult(
                plugin=plugin_name,
                hook=hook_name,
                success=False,
                duration_ms=duration_ms,
                error=HookTimeoutError(plugin_name, hook_name, timeout),
            )
        except Exception as e:
            return self._failed(plugin_name, hook_name, e, (perf_counter() - started) * 1000)

        self._count()
        return HookResult(
            plugin=plugin_name,
            hook=hook_name,
            success=True,
            duration_ms=(perf_counter() - started) * 1000,
            result=value,
        )

    def _failed(self, plugin_name: str, hook_name: str, error: Exception, duration_ms: float) -> HookResult[Any]:
        self._count(failed=True)
        logger.warning(
            "Plugin hook failed",
            plugin=plugin_name,
            hook=hook_name,
            error=str(error),
            error_type=type(error).__name__,
        )
        return HookResult(plugin=plugin_name, hook=hook_name, success=False, duration_ms=duration_ms, error=error)

    def _count(self, *, failed: bool = False, timeout: bool = False) -> None:
        with self._stats_lock:
            self._invocations += 1
            if failed or timeout:
                self._failures += 1
            if timeout:
                self._timeouts += 1

    # -- dispatch ------------------------------------------------------------

    def execute_hooks(
        self,
        category: HookCategory,
        hook_name: str,
        args: Sequence[Any],
        options: HookExecutionOptions | None = None,
    ) -> list[HookResult[Any]]:
        """Run ``hook_name`` on every plugin registered for it.

        Args:
            category: Hook category to look the hook up in
            hook_name: Hook method name
            args: Positional arguments, context included as the last one
            options: Execution policy; executor defaults when None

        Returns:
            One HookResult per plugin, in registration order.

        Raises:
            Exception: The first failure in registration order, only when
                ``continue_on_error`` is False.
        """
        options = options or self._default_options
        hooks = self.hooks_for(category, hook_name, options.skip_plugins)
        if not hooks:
            return []
        if options.parallel:
            return self._execute_parallel(hook_name, hooks, args, options)
        return self._execute_sequential(hook_name, hooks, args, options)

    def _execute_sequential(
        self,
        hook_name: str,
        hooks: list[tuple[str, HookFn]],
        args: Sequence[Any],
        options: HookExecutionOptions,
    ) -> list[HookResult[Any]]:
        chain = is_transform_hook(hook_name) and len(args) > 0
        current_args = list(args)
        results: list[HookResult[Any]] = []
        for plugin_name, fn in hooks:
            result = self.invoke(plugin_name, hook_name, fn, current_args, options.timeout_seconds)
            results.append(result)
            if not result.success:
                if not options.continue_on_error and result.error is not None:
                    raise result.error
                continue
            if chain and result.result is not None:
                current_args[0] = result.result
        return results

    def _execute_parallel(
        self,
        hook_name: str,
        hooks: list[tuple[str, HookFn]],
        args: Sequence[Any],
        options: HookExecutionOptions,
    ) -> list[HookResult[Any]]:
        timeout = options.timeout_seconds
        started = perf_counter()
        deadline = time.monotonic() + timeout
        submitted = [
            (plugin_name, None if self._saturated(plugin_name) else self._start(plugin_name, fn, args))
            for plugin_name, fn in hooks
        ]
        results = [
            self._rejected(plugin_name, hook_name, timeout)
            if future is None
            else self._collect(plugin_name, hook_name, future, started, deadline, timeout)
            for plugin_name, future in submitted
        ]
        if not options.continue_on_error:
            for result in results:
                if not result.success and result.error is not None:
                    raise result.error
        return results

    def execute_and_reduce(
        self,
        category: HookCategory,
        hook_name: str,
        args: Sequence[Any],
        options: HookExecutionOptions | None = None,
    ) -> Any:
        """Execute and reduce to a single value.

        Transform hooks reduce to the last successful non-None result, or
        to the original first argument when no hook produced one. Observer
        hooks reduce to None.
        """
        results = self.execute_hooks(category, hook_name, args, options)
        return reduce_results(hook_name, results, args[0] if args else None)

    def stats(self) -> dict[str, int]:
        with self._stats_lock:
            return {
                "invocations": self._invocations,
                "failures": self._failures,
                "timeouts": self._timeouts,
            }

    def clear(self) -> None:
        with self._lock:
            for plugins in self._registry.values():
                plugins.clear()

    def shutdown(self) -> None:
        """Clear the registry and forget abandoned hooks.

        Abandoned (timed-out) hooks are not waited for; their daemon workers
        finish on their own. The executor can be used again afterwards.
        """
        self.clear()
        with self._abandoned_lock:
            self._abandoned.clear()


def reduce_results(hook_name: str, results: Sequence[HookResult[Any]], original: Any) -> Any:
    if not is_transform_hook(hook_name):
        return None
    for result in reversed(results):
        if result.success and result.result is not None:
            return result.result
    return original
