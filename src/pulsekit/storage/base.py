# src/pulsekit/storage/base.py
"""StorageProvider: the contract every storage backend implements.

Providers are constructed as ``ProviderClass(name=..., **options)`` from a
``StorageSettings`` entry. A provider that cannot query leaves
``supports_query`` False and inherits the refusing ``query``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from pulsekit.contracts.errors import CapabilityError
from pulsekit.contracts.events import QueryFilter, TelemetryEvent
from pulsekit.contracts.results import StorageStats


class StorageProvider(ABC):
    """Abstract storage backend.

    Attributes:
        provider_type: Registry key (class attribute), e.g. "memory"
        name: Instance name, unique within a service
        supports_query: Whether ``query`` is implemented
        supports_batch: Whether ``store_batch`` is natively batched
    """

    provider_type: str = ""
    supports_query: bool = False
    supports_batch: bool = False

    def __init__(self, name: str | None = None) -> None:
        self.name = name or self.provider_type

    @abstractmethod
    def initialize(self) -> None:
        """Open connections or create schema. Called once by the service."""

    @abstractmethod
    def store(self, event: TelemetryEvent) -> None:
        """Persist one event."""

    def store_batch(self, events: Sequence[TelemetryEvent]) -> None:
        for event in events:
            self.store(event)

    def query(self, query_filter: QueryFilter) -> list[TelemetryEvent]:
        """Return matching events in insertion order.

        Raises:
            CapabilityError: If this provider does not support queries.
        """
        raise CapabilityError(f"Storage provider {self.name!r} does not support queries")

    @abstractmethod
    def get_stats(self) -> StorageStats: ...

    @abstractmethod
    def clean(self, before: datetime) -> int:
        """Delete events with a timestamp before ``before``. Returns the count."""

    def flush(self) -> None:
        """Push buffered writes to durable storage. No-op by default."""

    def compact(self) -> None:
        """Reclaim space after deletions. No-op by default."""

    @abstractmethod
    def shutdown(self) -> None: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
