# tests/unit/contracts/test_hook_types.py
"""Tests for hook value types and result types."""

import pytest

from pulsekit.contracts.enums import HookCategory
from pulsekit.contracts.hooks import HookContext, HookExecutionOptions
from pulsekit.contracts.results import ExportResult


class TestHookExecutionOptions:
    def test_defaults(self) -> None:
        options = HookExecutionOptions()
        assert options.continue_on_error is True
        assert options.timeout_seconds == 5.0
        assert options.parallel is False
        assert options.skip_plugins == frozenset()

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout: float) -> None:
        with pytest.raises(ValueError, match="timeout_seconds"):
            HookExecutionOptions(timeout_seconds=timeout)


class TestHookContext:
    def test_timestamp_is_utc_and_metadata_is_independent(self) -> None:
        first = HookContext(category=HookCategory.STORAGE, operation="before_store")
        second = HookContext(category=HookCategory.STORAGE, operation="before_store")
        assert first.timestamp.tzinfo is not None
        first.metadata["provider"] = "memory"
        assert second.metadata == {}


class TestExportResult:
    def test_total_events_reads_metadata(self) -> None:
        result = ExportResult(success=True, format="json", data="{}", metadata={"total_events": 7})
        assert result.total_events == 7
