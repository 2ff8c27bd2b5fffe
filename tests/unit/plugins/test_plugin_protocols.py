# tests/unit/plugins/test_plugin_protocols.py
"""Tests for plugin contract validation and hook extraction."""

from typing import Any

import pytest

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.errors import PluginValidationError
from pulsekit.plugins.protocols import extract_hooks, is_transform_hook, plugin_name
from tests.fixtures.plugins import RecordingPlugin, StorageHookPlugin


class TestPluginName:
    @pytest.mark.parametrize("name", [None, "", "   ", 42])
    def test_invalid_names(self, name: Any) -> None:
        class Plugin:
            pass

        plugin = Plugin()
        plugin.name = name  # type: ignore[attr-defined]
        with pytest.raises(PluginValidationError, match="non-empty string"):
            plugin_name(plugin)

    def test_valid_name(self) -> None:
        assert plugin_name(RecordingPlugin("audit")) == "audit"


class TestExtractHooks:
    def test_hooks_grouped_by_category(self) -> None:
        table = extract_hooks(StorageHookPlugin())
        assert set(table) == {HookCategory.STORAGE, HookCategory.QUERY}
        assert list(table[HookCategory.STORAGE]) == ["before_store", "after_store", "on_storage_error"]
        assert list(table[HookCategory.QUERY]) == ["before_query", "after_query", "on_query_error"]

    def test_track_hooks(self) -> None:
        assert list(extract_hooks(RecordingPlugin("r"))[HookCategory.TRACK]) == ["before_track", "after_track"]

    def test_plugin_with_no_hooks(self) -> None:
        class Bare:
            name = "bare"

        assert extract_hooks(Bare()) == {}

    def test_non_callable_hook_rejected(self) -> None:
        class Broken:
            name = "broken"
            before_store = "not callable"

        with pytest.raises(PluginValidationError, match="before_store"):
            extract_hooks(Broken())

    def test_non_callable_lifecycle_rejected(self) -> None:
        class Broken:
            name = "broken"
            initialize = 3

        with pytest.raises(PluginValidationError, match="initialize"):
            extract_hooks(Broken())

    def test_custom_hooks(self) -> None:
        def audit(*args: Any) -> str:
            return "audited"

        class Custom:
            name = "custom"
            hooks = {"audit": audit}

        assert extract_hooks(Custom())[HookCategory.CUSTOM] == {"audit": audit}

    def test_custom_hooks_must_be_mapping_of_callables(self) -> None:
        class NotMapping:
            name = "custom"
            hooks = ["audit"]

        class NotCallable:
            name = "custom"
            hooks = {"audit": 1}

        with pytest.raises(PluginValidationError, match="mapping"):
            extract_hooks(NotMapping())
        with pytest.raises(PluginValidationError, match="audit"):
            extract_hooks(NotCallable())


@pytest.mark.parametrize(
    ("hook_name", "expected"),
    [
        ("before_store", True),
        ("after_query", True),
        ("transform_export_data", True),
        ("on_storage_error", False),
        ("audit", False),
    ],
)
def test_is_transform_hook(hook_name: str, expected: bool) -> None:
    assert is_transform_hook(hook_name) is expected
