# tests/unit/plugins/test_hook_executor.py
"""Tests for HookExecutor dispatch, chaining, timeouts and failure policy."""

import threading
import time
from typing import Any

import pytest

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.errors import HookTimeoutError
from pulsekit.contracts.hooks import HookExecutionOptions
from pulsekit.plugins.executor import HookExecutor, reduce_results

STORAGE = HookCategory.STORAGE


def _appender(tag: str):
    def hook(values: list[str], ctx: Any) -> list[str]:
        return [*values, tag]

    return hook


class TestRegistry:
    def test_hooks_in_registration_order(self, hook_executor: HookExecutor) -> None:
        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})
        assert [name for name, _ in hook_executor.hooks_for(STORAGE, "before_store")] == ["a", "b"]

    def test_skip_plugins(self, hook_executor: HookExecutor) -> None:
        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})
        assert [n for n, _ in hook_executor.hooks_for(STORAGE, "before_store", skip_plugins=["a"])] == ["b"]

    def test_unregister_removes_all_categories(self, hook_executor: HookExecutor) -> None:
        hook_executor.register_plugin(
            "a",
            {STORAGE: {"before_store": _appender("a")}, HookCategory.QUERY: {"before_query": lambda q, ctx: q}},
        )
        hook_executor.unregister_plugin("a")
        assert hook_executor.registered_hooks() == {}

    def test_registered_hooks_view(self, hook_executor: HookExecutor) -> None:
        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        assert hook_executor.registered_hooks() == {"storage": ["a.before_store"]}


class TestSequentialDispatch:
    def test_transform_hooks_chain_in_order(self, hook_executor: HookExecutor) -> None:
        """Each hook receives the previous hook's result."""
        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})

        assert hook_executor.execute_and_reduce(STORAGE, "before_store", ([], "ctx")) == ["a", "b"]

    def test_none_result_does_not_break_chain(self, hook_executor: HookExecutor) -> None:
        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        hook_executor.register_plugin("observer", {STORAGE: {"before_store": lambda values, ctx: None}})
        assert hook_executor.execute_and_reduce(STORAGE, "before_store", ([], "ctx")) == ["a"]

    def test_failure_skipped_with_continue_on_error(self, hook_executor: HookExecutor) -> None:
        def broken(values: list[str], ctx: Any) -> list[str]:
            raise RuntimeError("boom")

        hook_executor.register_plugin("a", {STORAGE: {"before_store": broken}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})

        results = hook_executor.execute_hooks(STORAGE, "before_store", ([], "ctx"))

        assert [r.success for r in results] == [False, True]
        assert str(results[0].error) == "boom"
        assert results[1].result == ["b"]

    def test_first_failure_raised_without_continue_on_error(self, hook_executor: HookExecutor) -> None:
        calls: list[str] = []

        def broken(values: list[str], ctx: Any) -> None:
            raise RuntimeError("boom")

        hook_executor.register_plugin("a", {STORAGE: {"after_store": broken}})
        hook_executor.register_plugin("b", {STORAGE: {"after_store": lambda *args: calls.append("b")}})

        with pytest.raises(RuntimeError, match="boom"):
            hook_executor.execute_hooks(
                STORAGE, "after_store", ([], "ctx"), HookExecutionOptions(continue_on_error=False)
            )
        assert calls == []

    def test_no_hooks_returns_empty(self, hook_executor: HookExecutor) -> None:
        assert hook_executor.execute_hooks(STORAGE, "before_store", ([],)) == []
        assert hook_executor.execute_and_reduce(STORAGE, "before_store", (["x"],)) == ["x"]


class TestParallelDispatch:
    def test_results_in_registration_order(self, hook_executor: HookExecutor) -> None:
        def slow(values: list[str], ctx: Any) -> str:
            time.sleep(0.1)
            return "slow"

        hook_executor.register_plugin("slow", {STORAGE: {"after_store": slow}})
        hook_executor.register_plugin("fast", {STORAGE: {"after_store": lambda values, ctx: "fast"}})

        results = hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"), HookExecutionOptions(parallel=True))

        assert [(r.plugin, r.result) for r in results] == [("slow", "slow"), ("fast", "fast")]

    def test_hooks_run_concurrently(self, hook_executor: HookExecutor) -> None:
        barrier = threading.Barrier(2, timeout=2.0)

        def waits(values: list[str], ctx: Any) -> bool:
            barrier.wait()
            return True

        hook_executor.register_plugin("a", {STORAGE: {"after_store": waits}})
        hook_executor.register_plugin("b", {STORAGE: {"after_store": waits}})

        results = hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"), HookExecutionOptions(parallel=True))
        assert all(r.success for r in results)

    def test_first_failure_in_registration_order_after_all_settle(self, hook_executor: HookExecutor) -> None:
        """The earliest-registered failure is raised even when a later hook fails first."""
        calls: list[str] = []

        def fails_late(values: list[str], ctx: Any) -> None:
            time.sleep(0.1)
            raise RuntimeError("first")

        def fails_early(values: list[str], ctx: Any) -> None:
            raise RuntimeError("second")

        def records(values: list[str], ctx: Any) -> None:
            time.sleep(0.05)
            calls.append("c")

        hook_executor.register_plugin("a", {STORAGE: {"after_store": fails_late}})
        hook_executor.register_plugin("b", {STORAGE: {"after_store": fails_early}})
        hook_executor.register_plugin("c", {STORAGE: {"after_store": records}})

        with pytest.raises(RuntimeError, match="first"):
            hook_executor.execute_hooks(
                STORAGE,
                "after_store",
                ([], "ctx"),
                HookExecutionOptions(parallel=True, continue_on_error=False),
            )
        assert calls == ["c"]

    def test_reduce_takes_last_successful_result(self, hook_executor: HookExecutor) -> None:
        """Parallel transforms do not chain; the last success in registration order wins."""

        def slow_b(values: list[str], ctx: Any) -> list[str]:
            time.sleep(0.1)
            return [*values, "b"]

        def broken(values: list[str], ctx: Any) -> list[str]:
            raise RuntimeError("boom")

        hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": slow_b}})
        hook_executor.register_plugin("c", {STORAGE: {"before_store": broken}})

        reduced = hook_executor.execute_and_reduce(
            STORAGE, "before_store", (["x"], "ctx"), HookExecutionOptions(parallel=True)
        )

        assert reduced == ["x", "b"]


class TestTimeouts:
    def test_timed_out_hook_reported_and_siblings_run(self, hook_executor: HookExecutor) -> None:
        release = threading.Event()

        def hangs(values: list[str], ctx: Any) -> list[str]:
            release.wait(5.0)
            return ["late"]

        hook_executor.register_plugin("slow", {STORAGE: {"before_store": hangs}})
        hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})

        started = time.monotonic()
        results = hook_executor.execute_hooks(
            STORAGE, "before_store", ([], "ctx"), HookExecutionOptions(timeout_seconds=0.1)
        )
        elapsed = time.monotonic() - started
        release.set()

        assert elapsed < 2.0
        assert isinstance(results[0].error, HookTimeoutError)
        assert results[1].result == ["b"]
        assert hook_executor.stats()["timeouts"] == 1

    def test_hook_raising_timeout_error_is_plain_failure(self, hook_executor: HookExecutor) -> None:
        def raises(values: list[str], ctx: Any) -> None:
            raise TimeoutError("upstream timed out")

        hook_executor.register_plugin("a", {STORAGE: {"after_store": raises}})
        [result] = hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"))

        assert not isinstance(result.error, HookTimeoutError)
        assert hook_executor.stats()["timeouts"] == 0

    def test_hung_plugin_does_not_starve_siblings(self, hook_executor: HookExecutor) -> None:
        """Repeated timeouts from one plugin never delay or skip another plugin's hook."""
        release = threading.Event()

        def hangs(values: list[str], ctx: Any) -> list[str]:
            release.wait(10.0)
            return ["late"]

        hook_executor.register_plugin("hanging", {STORAGE: {"before_store": hangs}})
        hook_executor.register_plugin("good", {STORAGE: {"before_store": _appender("good")}})
        options = HookExecutionOptions(timeout_seconds=0.05)

        try:
            outcomes = [
                hook_executor.execute_hooks(STORAGE, "before_store", ([], "ctx"), options) for _ in range(20)
            ]
            good = [results[1].success for results in outcomes]
            hanging = [results[0] for results in outcomes]

            assert good == [True] * 20
            assert all(isinstance(r.error, HookTimeoutError) for r in hanging)
            assert hook_executor.abandoned_count("hanging") == 4
        finally:
            release.set()

    def test_saturated_plugin_fails_fast(self, hook_executor: HookExecutor) -> None:
        release = threading.Event()
        hook_executor.register_plugin("hanging", {STORAGE: {"after_store": lambda values, ctx: release.wait(10.0)}})
        options = HookExecutionOptions(timeout_seconds=0.05)

        try:
            for _ in range(4):
                hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"), options)

            started = time.monotonic()
            [result] = hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"), options)

            assert time.monotonic() - started < 0.05
            assert isinstance(result.error, HookTimeoutError)
        finally:
            release.set()

    def test_abandoned_workers_released_when_hook_finishes(self, hook_executor: HookExecutor) -> None:
        release = threading.Event()
        finished = threading.Event()

        def hangs(values: list[str], ctx: Any) -> None:
            release.wait(5.0)
            finished.set()

        hook_executor.register_plugin("slow", {STORAGE: {"after_store": hangs}})
        hook_executor.execute_hooks(STORAGE, "after_store", ([], "ctx"), HookExecutionOptions(timeout_seconds=0.05))
        assert hook_executor.abandoned_count("slow") == 1

        release.set()
        assert finished.wait(2.0)
        deadline = time.monotonic() + 2.0
        while hook_executor.abandoned_count("slow") and time.monotonic() < deadline:
            time.sleep(0.01)
        assert hook_executor.abandoned_count("slow") == 0


class TestReduceResults:
    def test_observer_hooks_reduce_to_none(self) -> None:
        assert reduce_results("on_storage_error", [], "original") is None

    def test_transform_without_results_returns_original(self) -> None:
        assert reduce_results("transform_query_result", [], "original") == "original"


def test_shutdown_allows_reuse(hook_executor: HookExecutor) -> None:
    hook_executor.register_plugin("a", {STORAGE: {"before_store": _appender("a")}})
    hook_executor.execute_hooks(STORAGE, "before_store", ([], "ctx"))
    hook_executor.shutdown()

    hook_executor.register_plugin("b", {STORAGE: {"before_store": _appender("b")}})
    assert hook_executor.execute_and_reduce(STORAGE, "before_store", ([], "ctx")) == ["b"]
