"""Result types returned by storage, export and health operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Serialized export payload.

    ``metadata`` always carries ``total_events`` and ``exported_at``.
    """

    success: bool
    format: str
    data: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_events(self) -> int:
        count: int = self.metadata["total_events"]
        return count


@dataclass(frozen=True, slots=True)
class StorageStats:
    """Snapshot of what a storage provider holds."""

    provider: str
    total_events: int
    total_sessions: int
    oldest_event: datetime | None = None
    newest_event: datetime | None = None
    size_bytes: int | None = None


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Derived view of an implicit session."""

    session_id: str
    status: str
    event_count: int
    started_at: datetime | None
    last_event_at: datetime | None
