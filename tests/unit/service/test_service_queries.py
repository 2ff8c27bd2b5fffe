# tests/unit/service/test_service_queries.py
"""Tests for query, export, analytics reads, sessions and maintenance."""

import json
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pulsekit.contracts.enums import SessionStatus
from pulsekit.contracts.errors import CapabilityError
from pulsekit.contracts.events import QueryFilter, TelemetryEvent
from pulsekit.contracts.notifications import MaintenanceFailed, StorageFailed
from pulsekit.contracts.results import ExportResult
from pulsekit.service import TelemetryService
from tests.fixtures.factories import make_event, make_settings
from tests.fixtures.plugins import ExporterContributorPlugin, StorageContributorPlugin, StorageHookPlugin


class UpperExporter:
    format = "json"

    def export(self, events: Sequence[TelemetryEvent]) -> ExportResult:
        data = ",".join(e.action.upper() for e in events)
        return ExportResult(success=True, format=self.format, data=data, metadata={"total_events": len(events)})


class BrokenExporter:
    format = "ndjson"

    def export(self, events: Sequence[TelemetryEvent]) -> ExportResult:
        raise OSError("disk full")


class ExportHooks:
    name = "export-hooks"

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.errors: list[Exception] = []

    def before_export(self, events: list[TelemetryEvent], export_format: str, ctx: Any) -> list[TelemetryEvent]:
        self.calls.append("before_export")
        return [e for e in events if e.category != "internal"]

    def transform_export_data(self, data: str, export_format: str, ctx: Any) -> str:
        self.calls.append("transform_export_data")
        return data + "\n"

    def after_export(self, result: ExportResult, export_format: str, ctx: Any) -> None:
        self.calls.append("after_export")

    def on_export_error(self, error: Exception, events: list[TelemetryEvent], export_format: str, ctx: Any) -> None:
        self.errors.append(error)


def _two_memory_service(service_factory: Any, **kwargs: Any) -> TelemetryService:
    service = service_factory(
        make_settings(storage=[{"type": "memory", "name": "a"}, {"type": "memory", "name": "b"}]), **kwargs
    )
    service.initialize()
    return service


# =============================================================================
# Query
# =============================================================================


class TestQuery:
    def test_results_deduplicated_across_providers(self, service_factory: Any) -> None:
        service = _two_memory_service(service_factory)
        first = service.track({"category": "cart", "action": "add"})
        second = service.track({"category": "cart", "action": "pay"})

        assert service.query() == [first, second]

    def test_first_occurrence_wins(self, service_factory: Any) -> None:
        service = _two_memory_service(service_factory)
        original = make_event(id="dup", label="from-a")
        service.providers[0].store(original)
        service.providers[1].store(make_event(id="dup", label="from-b"))

        assert [e.label for e in service.query()] == ["from-a"]

    def test_limit_applied_after_merge(self, service_factory: Any) -> None:
        service = _two_memory_service(service_factory)
        for action in ("a", "b", "c"):
            service.track({"category": "cart", "action": action})

        assert [e.action for e in service.query(QueryFilter(limit=2))] == ["a", "b"]

    def test_session_filter(self, service: TelemetryService) -> None:
        session_id = service.track_start("agent")
        service.track({"category": "agent", "action": "other"})
        service.track_end(session_id)

        events = service.query(QueryFilter(session_id=session_id))
        assert [e.action for e in events] == ["start", "end"]

    def test_mapping_filter(self, service: TelemetryService) -> None:
        service.track({"category": "cart", "action": "add"})
        service.track({"category": "auth", "action": "login"})

        assert [e.category for e in service.query({"category": "auth"})] == ["auth"]
        with pytest.raises(ValueError, match="Unknown query filter keys"):
            service.query({"sessionId": "x"})

    def test_write_only_providers_skipped(self, service_factory: Any) -> None:
        service = service_factory(
            make_settings(storage=[{"type": "write-only"}, {"type": "memory"}]),
            plugins=[StorageContributorPlugin()],
        )
        service.initialize()
        event = service.track({"category": "cart"})
        assert service.query() == [event]

    def test_no_queryable_provider_returns_empty(self, service_factory: Any) -> None:
        service = service_factory(
            make_settings(storage=[{"type": "write-only"}]), plugins=[StorageContributorPlugin()]
        )
        service.initialize()
        service.track({"category": "cart", "session_id": "s1"})

        assert service.query() == []
        assert service.get_active_sessions() == []
        assert service.get_session("s1") is None

    def test_failing_provider_reported_and_skipped(self, service_factory: Any) -> None:
        hooks = StorageHookPlugin()
        service = service_factory(
            make_settings(storage=[{"type": "failing", "name": "bad"}, {"type": "memory", "name": "good"}]),
            plugins=[StorageContributorPlugin(), hooks],
        )
        service.initialize()
        failures: list[StorageFailed] = []
        service.subscribe(StorageFailed, failures.append)
        event = service.track({"category": "cart"})

        assert service.query() == [event]
        assert [(f.provider, f.operation) for f in failures if f.operation == "query"] == [("bad", "query")]
        assert ("on_query_error", ("bad", "write failed (query)")) in hooks.calls


# =============================================================================
# Export
# =============================================================================


class TestExport:
    def test_builtin_json(self, service: TelemetryService) -> None:
        service.track({"category": "cart", "action": "add"})
        service.track({"category": "cart", "action": "pay"})

        result = service.export("json")

        assert result.success
        assert result.total_events == 2
        assert [e["action"] for e in json.loads(result.data)["events"]] == ["add", "pay"]

    def test_empty_export_is_well_formed(self, service: TelemetryService) -> None:
        result = service.export("json")

        assert result.success
        assert result.total_events == 0
        assert json.loads(result.data)["events"] == []

    def test_write_only_deployment_exports_nothing(self, service_factory: Any) -> None:
        service = service_factory(
            make_settings(storage=[{"type": "write-only"}]), plugins=[StorageContributorPlugin()]
        )
        service.initialize()
        service.track({"category": "cart"})

        result = service.export("json")

        assert result.success
        assert result.total_events == 0
        assert json.loads(result.data)["events"] == []

    def test_builtin_csv_with_filter(self, service: TelemetryService) -> None:
        service.track({"category": "cart", "action": "add"})
        service.track({"category": "auth", "action": "login"})

        result = service.export("csv", {"category": "auth"})

        lines = result.data.strip().splitlines()
        assert lines[0].startswith("id,session_id,event_type,category,action")
        assert len(lines) == 2
        assert ",auth,login," in lines[1]

    def test_unknown_format(self, service: TelemetryService) -> None:
        with pytest.raises(CapabilityError, match="parquet"):
            service.export("parquet")

    def test_plugin_exporter_takes_precedence(self, service_factory: Any) -> None:
        service = service_factory(plugins=[ExporterContributorPlugin(exporter=UpperExporter())])
        service.initialize()
        service.track({"category": "cart", "action": "add"})

        assert service.export("json").data == "ADD"

    def test_hooks_run_in_order(self, service_factory: Any) -> None:
        hooks = ExportHooks()
        service = service_factory(plugins=[ExporterContributorPlugin(exporter=UpperExporter()), hooks])
        service.initialize()
        service.track({"category": "cart", "action": "add"})
        service.track({"category": "internal", "action": "sync"})

        result = service.export("json")

        assert result.data == "ADD\n"
        assert result.total_events == 1
        assert hooks.calls == ["before_export", "transform_export_data", "after_export"]

    def test_exporter_failure_runs_error_hooks(self, service_factory: Any) -> None:
        hooks = ExportHooks()
        service = service_factory(plugins=[ExporterContributorPlugin(exporter=BrokenExporter()), hooks])
        service.initialize()

        with pytest.raises(OSError, match="disk full"):
            service.export("ndjson")

        assert [str(e) for e in hooks.errors] == ["disk full"]


# =============================================================================
# Analytics
# =============================================================================


class TestAnalyticsReads:
    def test_disabled(self, service: TelemetryService) -> None:
        with pytest.raises(CapabilityError, match="Analytics is not enabled"):
            service.get_metrics()
        with pytest.raises(CapabilityError, match="Analytics is not enabled"):
            service.get_insights()

    def test_analytics_hooks_wrap_reads(self, service_factory: Any) -> None:
        operations: list[tuple[str, str]] = []

        class AnalyticsHooks:
            name = "analytics-hooks"

            def before_analytics(self, params: dict[str, Any], operation: str, ctx: Any) -> dict[str, Any]:
                operations.append(("before", ctx.metadata["analytics_operation"]))
                return params

            def after_analytics(self, result: Any, operation: str, ctx: Any) -> None:
                operations.append(("after", operation))

        service = service_factory(make_settings(analytics={"enabled": True}), plugins=[AnalyticsHooks()])
        service.initialize()
        session_id = service.track_start("agent")
        service.track_error(session_id, "boom")

        metrics = service.get_metrics()
        insights = service.get_insights()

        assert metrics.total_events == 2
        assert metrics.errored_sessions == 1
        assert insights.metrics.total_events == 2
        assert operations == [
            ("before", "get_metrics"),
            ("after", "get_metrics"),
            ("before", "get_insights"),
            ("after", "get_insights"),
        ]


# =============================================================================
# Sessions
# =============================================================================


class TestSessions:
    def test_status_derived_from_events(self, service: TelemetryService) -> None:
        active = service.track_start("agent")
        completed = service.track_start("agent")
        service.track_end(completed)
        errored = service.track_start("agent")
        service.track_error(errored, "boom")

        assert [s.session_id for s in service.get_active_sessions()] == [active]
        assert service.get_session(completed).status == SessionStatus.COMPLETED  # type: ignore[union-attr]
        assert service.get_session(errored).status == SessionStatus.ERROR  # type: ignore[union-attr]

    def test_session_summary(self, service: TelemetryService) -> None:
        start = datetime(2026, 1, 30, 12, 0, tzinfo=UTC)
        service.track({"session_id": "s1", "event_type": "start", "category": "agent", "timestamp": start})
        service.track({"session_id": "s1", "category": "agent", "timestamp": start + timedelta(minutes=5)})

        summary = service.get_session("s1")

        assert summary is not None
        assert summary.event_count == 2
        assert summary.started_at == start
        assert summary.last_event_at == start + timedelta(minutes=5)

    def test_unknown_session(self, service: TelemetryService) -> None:
        assert service.get_session("missing") is None


# =============================================================================
# Maintenance
# =============================================================================


class TestMaintenance:
    def test_expired_events_removed(self, service: TelemetryService) -> None:
        old = datetime.now(UTC) - timedelta(days=45)
        service.track({"category": "cart", "action": "old", "timestamp": old})
        service.track({"category": "cart", "action": "new"})

        result = service.run_maintenance()

        assert result.deleted == {"memory": 1}
        assert result.failed == {}
        assert [e.action for e in service.query()] == ["new"]

    def test_failures_reported_per_provider(self, service_factory: Any) -> None:
        service = service_factory(
            make_settings(storage=[{"type": "memory"}, {"type": "failing"}]), plugins=[StorageContributorPlugin()]
        )
        service.initialize()
        failures: list[MaintenanceFailed] = []
        service.subscribe(MaintenanceFailed, failures.append)

        result = service.run_maintenance()

        assert result.deleted == {"memory": 0}
        assert result.failed == {"failing": "write failed (clean)"}
        assert [f.provider for f in failures] == ["failing"]
