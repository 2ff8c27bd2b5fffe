# src/pulsekit/service.py
"""TelemetryService: the public entry point of the pipeline.

Per event:
    enrich -> sanitize -> rate limit -> track hooks -> store (fan-out)
    -> stream (optional, retried) -> analytics (optional) -> EventTracked

Any failure before or during storage aborts the event: ``EventFailed`` is
emitted and the original exception is re-raised with a correlation id note.
Streaming and analytics failures are reported but never fail ``track``.
"""

from __future__ import annotations

import dataclasses
import importlib
import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from time import perf_counter
from typing import Any, TypeVar

import structlog

from pulsekit.analytics.engine import AnalyticsEngine, Insights, Metrics
from pulsekit.contracts.enums import EventType, HealthStatus, SessionStatus
from pulsekit.contracts.errors import (
    CapabilityError,
    ConfigurationError,
    ServiceInitializationError,
    ServiceNotInitializedError,
    StorageFailureError,
)
from pulsekit.contracts.events import QueryFilter, TelemetryEvent, TimeRange
from pulsekit.contracts.hooks import HookExecutionOptions
from pulsekit.contracts.notifications import (
    AnalyticsFailed,
    EventFailed,
    EventTracked,
    MaintenanceFailed,
    ServiceInitialized,
    ServiceShutdown,
    StorageCritical,
    StorageDegraded,
    StorageFailed,
    StreamingFailed,
)
from pulsekit.contracts.results import ExportResult, SessionSummary
from pulsekit.core.config import PluginSettings, TelemetrySettings
from pulsekit.core.enrichment import ContextDefaults, enrich_event, new_id
from pulsekit.core.events import EventBus
from pulsekit.core.reliability import ReliabilityManager
from pulsekit.core.retention import MaintenanceResult, MaintenanceScheduler, retention_cutoff
from pulsekit.core.security import SecurityProvider
from pulsekit.export import ExporterProtocol, create_exporter_registry
from pulsekit.plugins.executor import HookExecutor
from pulsekit.plugins.manager import PluginManager
from pulsekit.storage import PluginAwareStorageProvider, StorageProvider, create_storage_registry
from pulsekit.streaming import StreamingProviderProtocol, create_streaming_registry

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ConfigurationReport:
    valid: bool
    errors: tuple[str, ...]


def load_plugin(spec: PluginSettings) -> Any:
    """Import and build a plugin from a ``module:Attribute`` path.

    Classes are instantiated with ``spec.options`` as keyword arguments;
    any other object is used as the plugin itself.

    Raises:
        ConfigurationError: If the path cannot be imported, or options are
            given for an object that is not a class.
    """
    module_name, _, attribute = spec.path.partition(":")
    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load plugin {spec.path!r}: {e}") from e

    if isinstance(target, type):
        return target(**spec.options)
    if spec.options:
        raise ConfigurationError(f"Plugin {spec.path!r} is not a class; options cannot be applied")
    return target


def _run_parallel(tasks: Mapping[str, Callable[[], object]], *, thread_name_prefix: str) -> dict[str, Exception]:
    """Run named tasks concurrently and return the failures by name."""
    failures: dict[str, Exception] = {}
    if not tasks:
        return failures
    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix=thread_name_prefix) as pool:
        futures = {name: pool.submit(task) for name, task in tasks.items()}
    for name, future in futures.items():
        error = future.exception()
        if isinstance(error, Exception):
            failures[name] = error
    return failures


class TelemetryService:
    """Coordinates plugins, storage, reliability, security and analytics.

    Usage:
        service = TelemetryService(settings, plugins=[AuditPlugin()])
        service.initialize()

        session_id = service.track_start("agent", "run")
        service.track({"session_id": session_id, "category": "agent", "action": "step"})
        service.track_end(session_id, "completed")

        events = service.query(QueryFilter(session_id=session_id))
        service.shutdown()

    Thread Safety:
        ``track`` and the read operations may be called from several threads.
        ``initialize`` and ``shutdown`` are serialized by a lock.
    """

    def __init__(
        self,
        settings: TelemetrySettings,
        plugins: Iterable[Any] = (),
        *,
        event_bus: EventBus | None = None,
        component_plugins: Iterable[Any] = (),
        load_entrypoints: bool = False,
    ) -> None:
        """
        Args:
            settings: Service configuration
            plugins: Pipeline plugin objects registered at ``initialize()``,
                after the plugins named in ``settings.plugins``
            event_bus: Bus for lifecycle notifications (a private one by default)
            component_plugins: Extra pluggy plugins contributing storage,
                exporter or streaming classes
            load_entrypoints: Also discover component plugins from the
                ``pulsekit`` entry point group
        """
        self._settings = settings
        self._initial_plugins = list(plugins)
        self._bus = event_bus or EventBus()
        self._lock = threading.RLock()
        self._initialized = False

        component_plugins = list(component_plugins)
        self._storage_registry = create_storage_registry(component_plugins, load_entrypoints=load_entrypoints)
        self._exporter_registry = create_exporter_registry(component_plugins, load_entrypoints=load_entrypoints)
        self._streaming_registry = create_streaming_registry(component_plugins, load_entrypoints=load_entrypoints)

        executor = HookExecutor(default_options=HookExecutionOptions(timeout_seconds=settings.hook_timeout_seconds))
        self._plugins = PluginManager(executor, service=self)
        self._reliability = ReliabilityManager(settings.reliability)
        self._security = SecurityProvider(settings.security)
        self._context = ContextDefaults(
            environment=settings.environment,
            version=settings.service_version,
            service=settings.service_name,
            extra=settings.default_context,
            **({"platform": settings.platform} if settings.platform else {}),
        )

        self._providers: list[StorageProvider] = []
        self._streaming: StreamingProviderProtocol | None = None
        self._analytics: AnalyticsEngine | None = None
        self._scheduler: MaintenanceScheduler | None = None

    # -- properties ----------------------------------------------------------

    @property
    def settings(self) -> TelemetrySettings:
        return self._settings

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def plugin_manager(self) -> PluginManager:
        return self._plugins

    @property
    def reliability(self) -> ReliabilityManager:
        return self._reliability

    @property
    def security(self) -> SecurityProvider:
        return self._security

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def providers(self) -> list[StorageProvider]:
        return list(self._providers)

    @property
    def streaming(self) -> StreamingProviderProtocol | None:
        return self._streaming

    @property
    def analytics(self) -> AnalyticsEngine | None:
        return self._analytics

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ServiceNotInitializedError()

    # -- lifecycle -----------------------------------------------------------

    def initialize(self) -> None:
        """Bring up plugins, storage, streaming, analytics and maintenance.

        Plugins are registered first so their storage factories can back
        configured providers. No-op if already initialized.

        Raises:
            ServiceInitializationError: If no storage provider initialized.
            CapabilityError: If a configured storage or streaming type is unknown.
            ConfigurationError: If a configured plugin cannot be loaded.
        """
        with self._lock:
            if self._initialized:
                return
            if self._reliability.closed:
                self._reliability = ReliabilityManager(self._settings.reliability)

            try:
                configured = [load_plugin(spec) for spec in self._settings.plugins]
                self._plugins.initialize([*configured, *self._initial_plugins])
                self._providers = self._initialize_storage()
                self._streaming = self._initialize_streaming()
                if self._settings.analytics.enabled:
                    self._analytics = AnalyticsEngine()
                    self._analytics.initialize()
            except Exception:
                self._teardown()
                raise

            self._scheduler = MaintenanceScheduler(
                self.run_maintenance,
                self._settings.maintenance_interval_seconds,
                on_error=lambda e: self._reliability.record_error(e, category="maintenance"),
            )
            self._scheduler.start()
            self._initialized = True

        logger.info(
            "Telemetry service initialized",
            service=self._settings.service_name,
            providers=[p.name for p in self._providers],
            plugins=self._plugins.plugin_names(),
            streaming=self._settings.streaming.type if self._streaming else None,
            analytics=self._analytics is not None,
        )
        self._bus.emit(
            ServiceInitialized(
                service_name=self._settings.service_name,
                providers=tuple(p.name for p in self._providers),
                plugins=tuple(self._plugins.plugin_names()),
            )
        )

    def _storage_factory(self, storage_type: str) -> Callable[..., StorageProvider]:
        plugin_factory = self._plugins.custom_storage_providers().get(storage_type)
        if plugin_factory is not None:
            return plugin_factory
        return self._storage_registry.get(storage_type)

    def _initialize_storage(self) -> list[StorageProvider]:
        providers: list[StorageProvider] = []
        for storage in self._settings.storage:
            if not storage.enabled:
                continue
            factory = self._storage_factory(storage.type)
            name = storage.instance_name
            try:
                provider = PluginAwareStorageProvider(factory(name=name, **storage.options), self._plugins)
                provider.initialize()
            except Exception as e:
                logger.error("Storage provider failed to initialize", provider=name, type=storage.type, error=str(e))
                self._bus.emit(StorageFailed(provider=name, operation="initialize", error=e))
                continue
            providers.append(provider)

        if not providers:
            raise ServiceInitializationError("No storage providers could be initialized")
        return providers

    def _initialize_streaming(self) -> StreamingProviderProtocol | None:
        streaming = self._settings.streaming
        if not streaming.enabled:
            return None
        provider = self._streaming_registry.create(streaming.type)
        options = dict(streaming.options)
        if streaming.port is not None:
            options.setdefault("port", streaming.port)
        provider.initialize(options)
        return provider

    def flush(self) -> None:
        """Flush every provider in parallel. Failures are reported per provider."""
        self._require_initialized()
        self._flush()

    def _flush(self) -> None:
        failures = _run_parallel({p.name: p.flush for p in self._providers}, thread_name_prefix="pulsekit-flush")
        for name, error in failures.items():
            logger.warning("Storage flush failed", provider=name, error=str(error))
            self._bus.emit(StorageFailed(provider=name, operation="flush", error=error))

    def shutdown(self) -> None:
        """Stop maintenance, flush, then shut every component down.

        Component shutdowns run in parallel and are best-effort. Safe to call
        on a service that is not initialized.
        """
        with self._lock:
            if not self._initialized:
                return
            self._initialized = False
            if self._scheduler is not None:
                self._scheduler.stop()
                self._scheduler = None
            self._flush()
            self._teardown()

        logger.info("Telemetry service shut down", service=self._settings.service_name)
        self._bus.emit(ServiceShutdown(service_name=self._settings.service_name))

    def _teardown(self) -> None:
        tasks: dict[str, Callable[[], object]] = {f"storage:{p.name}": p.shutdown for p in self._providers}
        if self._streaming is not None:
            tasks["streaming"] = self._streaming.shutdown
        if self._analytics is not None:
            tasks["analytics"] = self._analytics.shutdown
        tasks["plugins"] = self._plugins.shutdown
        tasks["reliability"] = self._reliability.shutdown

        failures = _run_parallel(tasks, thread_name_prefix="pulsekit-shutdown")
        for component, error in failures.items():
            logger.warning("Component shutdown failed", component=component, error=str(error))

        self._providers = []
        self._streaming = None
        self._analytics = None

    def use(self, plugin: Any) -> None:
        """Register a pipeline plugin at runtime.

        Storage types a plugin contributes only back providers configured at
        the next ``initialize()``; the active provider set is fixed.
        """
        self._plugins.register(plugin)

    def subscribe(self, notification_type: type[T], handler: Callable[[T], None]) -> None:
        self._bus.subscribe(notification_type, handler)

    # -- tracking ------------------------------------------------------------

    def track(self, event: Mapping[str, Any] | TelemetryEvent) -> TelemetryEvent:
        """Run one event through the pipeline.

        Args:
            event: Partial event mapping (any subset of TelemetryEvent fields)
                or a complete TelemetryEvent.

        Returns:
            The event as stored, after sanitization and plugin transforms.

        Raises:
            ServiceNotInitializedError: Before ``initialize()``.
            ValueError: Unknown fields or an invalid event type.
            RateLimitExceededError: The ``category:action`` window is exhausted.
            PluginRejectedError: A ``before_track`` hook returned None.
            StorageFailureError: Every storage provider failed.
        """
        self._require_initialized()
        supplied_id = event.id if isinstance(event, TelemetryEvent) else event.get("id")
        correlation_id = supplied_id if isinstance(supplied_id, str) and supplied_id else new_id()

        try:
            enriched = enrich_event(event, self._context)
            sanitized = self._security.sanitize(enriched)
            self._reliability.check_rate_limit(sanitized)
            processed = self._plugins.process_event(sanitized)
            self.store_event(processed)
        except Exception as e:
            e.add_note(f"correlation_id: {correlation_id}")
            self._reliability.record_error(e, category="track")
            category = event.category if isinstance(event, TelemetryEvent) else event.get("category")
            action = event.action if isinstance(event, TelemetryEvent) else event.get("action")
            logger.error(
                "Event tracking failed",
                correlation_id=correlation_id,
                category=category,
                action=action,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._bus.emit(EventFailed(correlation_id=correlation_id, error=e, category=category, action=action))
            raise

        self._stream(processed)
        self._analyze(processed)
        self._bus.emit(EventTracked(event=processed))
        return processed

    def _stream(self, event: TelemetryEvent) -> None:
        streaming = self._streaming
        if streaming is None:
            return
        try:
            self._reliability.execute_with_retry(lambda: streaming.stream(event), "streaming")
        except Exception as e:
            logger.warning("Event streaming failed", event_id=event.id, error=str(e), error_type=type(e).__name__)
            self._reliability.record_error(e, category="streaming")
            self._bus.emit(StreamingFailed(event_id=event.id, error=e))

    def _analyze(self, event: TelemetryEvent) -> None:
        analytics = self._analytics
        if analytics is None:
            return
        try:
            analytics.update(event)
        except Exception as e:
            logger.warning("Analytics update failed", event_id=event.id, error=str(e), error_type=type(e).__name__)
            self._reliability.record_error(e, category="analytics")
            self._bus.emit(AnalyticsFailed(event_id=event.id, error=e))

    def store_event(self, event: TelemetryEvent) -> None:
        """Write an event to every provider, each behind its circuit breaker.

        Succeeds if at least one provider accepted the event.

        Raises:
            StorageFailureError: If every provider failed; lists each message.
        """
        self._require_initialized()
        succeeded: list[str] = []
        failures: dict[str, str] = {}

        for provider in self._providers:
            try:
                self._reliability.execute_with_circuit_breaker(f"storage:{provider.name}", partial(provider.store, event))
            except Exception as e:
                failures[provider.name] = str(e)
                logger.warning("Storage provider failed", provider=provider.name, event_id=event.id, error=str(e))
                self._reliability.record_error(e, category="storage")
                self._bus.emit(StorageFailed(provider=provider.name, operation="store", error=e))
            else:
                succeeded.append(provider.name)

        if not succeeded:
            logger.error("All storage providers failed", event_id=event.id, providers=list(failures))
            self._bus.emit(StorageCritical(event_id=event.id, failed=tuple(failures)))
            raise StorageFailureError(failures)
        if failures:
            self._bus.emit(StorageDegraded(event_id=event.id, succeeded=tuple(succeeded), failed=tuple(failures)))

    def track_start(
        self,
        category: str,
        action: str = "start",
        label: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Open a session with a ``start`` event and return its id."""
        session_id = new_id()
        self.track(
            {
                "session_id": session_id,
                "event_type": EventType.START,
                "category": category,
                "action": action,
                "label": label,
                "metadata": metadata,
            }
        )
        return session_id

    def track_end(
        self,
        session_id: str,
        status: str = "completed",
        metadata: dict[str, Any] | None = None,
        *,
        category: str = "session",
    ) -> TelemetryEvent:
        return self.track(
            {
                "session_id": session_id,
                "event_type": EventType.END,
                "category": category,
                "action": "end",
                "label": status,
                "metadata": metadata,
            }
        )

    def track_error(
        self,
        session_id: str,
        error: BaseException | str,
        metadata: dict[str, Any] | None = None,
        *,
        category: str = "session",
    ) -> TelemetryEvent:
        """Record an ``error`` event; exceptions contribute their type and message."""
        if isinstance(error, BaseException):
            details = {"type": type(error).__name__, "message": str(error)}
        else:
            details = {"message": error}
        return self.track(
            {
                "session_id": session_id,
                "event_type": EventType.ERROR,
                "category": category,
                "action": "error",
                "label": details["message"],
                "metadata": {**(metadata or {}), "error": details},
            }
        )

    # -- reads ---------------------------------------------------------------

    def query(self, query_filter: QueryFilter | Mapping[str, Any] | None = None) -> list[TelemetryEvent]:
        """Query every queryable provider and merge the results.

        Results keep provider order and are deduplicated by event id, first
        occurrence wins. ``limit`` applies to the merged list. With no
        provider that supports queries the result is empty.
        """
        self._require_initialized()
        if query_filter is None:
            query_filter = QueryFilter()
        elif not isinstance(query_filter, QueryFilter):
            query_filter = QueryFilter.from_mapping(query_filter)

        queryable = [p for p in self._providers if p.supports_query]
        if not queryable:
            logger.debug("No active storage provider supports queries")
            return []

        merged: list[TelemetryEvent] = []
        seen: set[str] = set()
        for provider in queryable:
            try:
                events = provider.query(query_filter)
            except Exception as e:
                logger.warning("Storage query failed", provider=provider.name, error=str(e))
                self._bus.emit(StorageFailed(provider=provider.name, operation="query", error=e))
                continue
            for event in events:
                if event.id not in seen:
                    seen.add(event.id)
                    merged.append(event)

        if query_filter.limit is not None:
            merged = merged[: query_filter.limit]
        return merged

    def _resolve_exporter(self, export_format: str) -> ExporterProtocol:
        exporter: ExporterProtocol | None = self._plugins.custom_exporters().get(export_format)
        if exporter is not None:
            return exporter
        return self._exporter_registry.create(export_format)

    def export(
        self,
        export_format: str,
        query_filter: QueryFilter | Mapping[str, Any] | None = None,
    ) -> ExportResult:
        """Export matching events through plugin or built-in exporters.

        Hook order: before_export -> export -> transform_export_data ->
        after_export, with on_export_error on failure.

        Raises:
            CapabilityError: If the format is unknown.
        """
        self._require_initialized()
        exporter = self._resolve_exporter(export_format)
        events = self.query(query_filter)
        events = self._plugins.execute_export_hooks("before_export", (events, export_format), export_format)
        try:
            result = exporter.export(events)
            data = self._plugins.execute_export_hooks(
                "transform_export_data", (result.data, export_format), export_format
            )
            if data is not result.data:
                result = dataclasses.replace(result, data=data)
            result = self._plugins.execute_export_hooks("after_export", (result, export_format), export_format)
        except Exception as e:
            self._plugins.execute_export_hooks("on_export_error", (e, events, export_format), export_format)
            logger.error("Export failed", format=export_format, error=str(e))
            raise
        logger.debug("Export completed", format=export_format, total_events=len(events))
        return result

    def _require_analytics(self) -> AnalyticsEngine:
        self._require_initialized()
        if self._analytics is None:
            raise CapabilityError("Analytics is not enabled")
        return self._analytics

    def get_metrics(self, time_range: TimeRange | None = None) -> Metrics:
        """Aggregate metrics over the recent-event window.

        Raises:
            CapabilityError: If analytics is disabled.
        """
        analytics = self._require_analytics()
        params = self._plugins.execute_analytics_hooks(
            "before_analytics", ({"time_range": time_range}, "get_metrics"), "get_metrics"
        )
        metrics = analytics.get_metrics(params.get("time_range"))
        result: Metrics = self._plugins.execute_analytics_hooks(
            "after_analytics", (metrics, "get_metrics"), "get_metrics"
        )
        return result

    def get_insights(self, time_range: TimeRange | None = None) -> Insights:
        analytics = self._require_analytics()
        params = self._plugins.execute_analytics_hooks(
            "before_analytics", ({"time_range": time_range}, "get_insights"), "get_insights"
        )
        insights = analytics.get_insights(params.get("time_range"))
        result: Insights = self._plugins.execute_analytics_hooks(
            "after_analytics", (insights, "get_insights"), "get_insights"
        )
        return result

    # -- sessions ------------------------------------------------------------

    def _summarize_sessions(self, events: list[TelemetryEvent]) -> dict[str, SessionSummary]:
        grouped: dict[str, list[TelemetryEvent]] = {}
        for event in events:
            grouped.setdefault(event.session_id, []).append(event)

        summaries = {}
        for session_id, session_events in grouped.items():
            types = {e.event_type for e in session_events}
            if EventType.END in types:
                status = SessionStatus.COMPLETED
            elif EventType.ERROR in types:
                status = SessionStatus.ERROR
            else:
                status = SessionStatus.ACTIVE
            timestamps = [e.timestamp for e in session_events]
            summaries[session_id] = SessionSummary(
                session_id=session_id,
                status=status,
                event_count=len(session_events),
                started_at=min(timestamps),
                last_event_at=max(timestamps),
            )
        return summaries

    def get_active_sessions(self) -> list[SessionSummary]:
        summaries = self._summarize_sessions(self.query())
        return [s for s in summaries.values() if s.status == SessionStatus.ACTIVE]

    def get_session(self, session_id: str) -> SessionSummary | None:
        return self._summarize_sessions(self.query(QueryFilter(session_id=session_id))).get(session_id)

    # -- operations ----------------------------------------------------------

    def run_maintenance(self) -> MaintenanceResult:
        """Delete events older than the retention window from every provider."""
        self._require_initialized()
        started = perf_counter()
        result = MaintenanceResult(cutoff=retention_cutoff(self._security.retention_days))
        for provider in list(self._providers):
            try:
                result.deleted[provider.name] = provider.clean(result.cutoff)
            except Exception as e:
                result.failed[provider.name] = str(e)
                logger.error("Retention cleanup failed", provider=provider.name, error=str(e))
                self._reliability.record_error(e, category="maintenance")
                self._bus.emit(MaintenanceFailed(provider=provider.name, error=e))
        result.duration_seconds = perf_counter() - started
        logger.info(
            "Retention maintenance completed",
            cutoff=result.cutoff.isoformat(),
            deleted=result.total_deleted,
            failed=sorted(result.failed),
        )
        return result

    def reset_circuit_breakers(self) -> None:
        logger.info("Circuit breaker state before reset", breakers=self._reliability.circuit_breaker_stats())
        self._reliability.reset_circuit_breakers()

    def get_health_status(self) -> dict[str, Any]:
        status = self._reliability.get_health_status() if self._initialized else HealthStatus.UNHEALTHY
        return {
            "status": status,
            "initialized": self._initialized,
            "providers": {
                "storage": [
                    {
                        "name": p.name,
                        "type": p.provider_type,
                        "supports_query": p.supports_query,
                        "supports_batch": p.supports_batch,
                    }
                    for p in self._providers
                ],
                "streaming": {"enabled": self._streaming is not None},
                "analytics": {"enabled": self._analytics is not None},
            },
            "reliability": {
                "circuit_breakers": self._reliability.circuit_breaker_stats(),
                "rate_limiters": self._reliability.rate_limiter_stats(),
                "errors": self._reliability.error_stats(),
            },
            "plugins": self._plugins.hook_stats(),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def validate_configuration(self) -> ConfigurationReport:
        """Check the running configuration for gaps and unreachable providers."""
        errors: list[str] = []
        if not self._providers:
            errors.append("No storage providers configured")

        reliability = self._settings.reliability
        if not (reliability.circuit_breaker.enabled or reliability.rate_limit.enabled or reliability.retry.enabled):
            errors.append("Reliability features are disabled")
        if not self._settings.security.pii.enabled:
            errors.append("PII redaction is disabled")

        for provider in self._providers:
            try:
                provider.get_stats()
            except Exception as e:
                errors.append(f"Storage provider {provider.name} is not accessible: {e}")

        return ConfigurationReport(valid=not errors, errors=tuple(errors))
