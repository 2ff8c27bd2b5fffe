# src/pulsekit/storage/plugin_aware.py
"""PluginAwareStorageProvider: wraps a provider with storage and query hooks.

Write path:  before_store -> store/store_batch -> after_store
             (on_storage_error, then re-raise, on failure)
Read path:   before_query -> query -> after_query -> transform_query_result
             (on_query_error, then re-raise, on failure)
Delete path: before_delete -> clean -> after_delete
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog

from pulsekit.contracts.events import QueryFilter, TelemetryEvent
from pulsekit.contracts.results import StorageStats
from pulsekit.plugins.manager import PluginManager
from pulsekit.storage.base import StorageProvider

logger = structlog.get_logger(__name__)


def _event_list(value: object, fallback: list[TelemetryEvent], provider: str, hook: str) -> list[TelemetryEvent]:
    """Keep a hook's reduced value only if it is a list of events."""
    if isinstance(value, list):
        return value
    logger.warning(
        "Plugin hook returned a non-list; keeping the original events",
        provider=provider,
        hook=hook,
        returned_type=type(value).__name__,
    )
    return fallback


class PluginAwareStorageProvider(StorageProvider):
    """Decorates a StorageProvider with plugin hook dispatch.

    Capability flags, name and type mirror the wrapped provider.
    """

    def __init__(self, provider: StorageProvider, plugin_manager: PluginManager) -> None:
        super().__init__(provider.name)
        self._provider = provider
        self._plugins = plugin_manager
        self.provider_type = provider.provider_type
        self.supports_query = provider.supports_query
        self.supports_batch = provider.supports_batch

    @property
    def wrapped(self) -> StorageProvider:
        return self._provider

    def initialize(self) -> None:
        self._provider.initialize()

    def store(self, event: TelemetryEvent) -> None:
        self._store([event])

    def store_batch(self, events: Sequence[TelemetryEvent]) -> None:
        self._store(list(events))

    def _store(self, events: list[TelemetryEvent]) -> None:
        reduced = self._plugins.execute_storage_hooks("before_store", (events, self.name), self.name)
        events = _event_list(reduced, events, self.name, "before_store")
        if not events:
            logger.debug("Storage write filtered out by plugins", provider=self.name)
            return
        try:
            if len(events) == 1:
                self._provider.store(events[0])
            else:
                self._provider.store_batch(events)
        except Exception as e:
            self._plugins.execute_storage_hooks("on_storage_error", (e, events, self.name), self.name)
            raise
        self._plugins.execute_storage_hooks("after_store", (events, self.name, None), self.name)

    def query(self, query_filter: QueryFilter) -> list[TelemetryEvent]:
        query_filter = self._plugins.execute_query_hooks("before_query", (query_filter, self.name), self.name)
        try:
            results = self._provider.query(query_filter)
        except Exception as e:
            self._plugins.execute_query_hooks("on_query_error", (e, query_filter, self.name), self.name)
            raise
        reduced = self._plugins.execute_query_hooks("after_query", (results, query_filter, self.name), self.name)
        results = _event_list(reduced, results, self.name, "after_query")
        transformed = self._plugins.execute_query_hooks("transform_query_result", (results, query_filter), self.name)
        return _event_list(transformed, results, self.name, "transform_query_result")

    def clean(self, before: datetime) -> int:
        cutoff = self._plugins.execute_storage_hooks("before_delete", (before, self.name), self.name)
        count = self._provider.clean(cutoff)
        self._plugins.execute_storage_hooks("after_delete", (count, cutoff, self.name), self.name)
        return count

    def get_stats(self) -> StorageStats:
        return self._provider.get_stats()

    def flush(self) -> None:
        self._provider.flush()

    def compact(self) -> None:
        self._provider.compact()

    def shutdown(self) -> None:
        self._provider.shutdown()
