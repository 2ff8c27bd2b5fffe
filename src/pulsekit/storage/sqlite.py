# src/pulsekit/storage/sqlite.py
"""SQLite storage provider on SQLAlchemy Core.

Timestamps are stored as integer microseconds since the epoch so range
filters and retention deletes compare exactly. Insertion order is the
autoincrement ``seq`` column. Writes are idempotent on event id. Metadata
and context are stored as JSON; values JSON cannot represent (datetimes,
for example) are stored as their ``str()`` form and come back as strings.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import event as sa_event
from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from pulsekit.contracts.events import QueryFilter, TelemetryEvent, coerce_event_type
from pulsekit.contracts.results import StorageStats
from pulsekit.storage.base import StorageProvider

logger = structlog.get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROSECOND = timedelta(microseconds=1)

metadata = MetaData()

events_table = Table(
    "telemetry_events",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("session_id", String(64), nullable=False),
    Column("event_type", String(16), nullable=False),
    Column("category", String(255), nullable=False),
    Column("action", String(255), nullable=False),
    Column("label", Text),
    Column("value", Float),
    Column("duration", Float),
    Column("timestamp_us", BigInteger, nullable=False),
    Column("metadata_json", Text),
    Column("context_json", Text, nullable=False),
    Index("ix_telemetry_events_session", "session_id"),
    Index("ix_telemetry_events_timestamp", "timestamp_us"),
    Index("ix_telemetry_events_category_action", "category", "action"),
)


def _to_micros(moment: datetime) -> int:
    return (moment - _EPOCH) // _MICROSECOND


def _from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


def _to_row(event: TelemetryEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "session_id": event.session_id,
        "event_type": event.event_type.value,
        "category": event.category,
        "action": event.action,
        "label": event.label,
        "value": event.value,
        "duration": event.duration,
        "timestamp_us": _to_micros(event.timestamp),
        "metadata_json": json.dumps(event.metadata, default=str) if event.metadata is not None else None,
        "context_json": json.dumps(event.context, default=str),
    }


def _from_row(row: Any) -> TelemetryEvent:
    return TelemetryEvent(
        id=row.id,
        session_id=row.session_id,
        event_type=coerce_event_type(row.event_type),
        timestamp=_from_micros(row.timestamp_us),
        category=row.category,
        action=row.action,
        label=row.label,
        value=row.value,
        duration=row.duration,
        metadata=json.loads(row.metadata_json) if row.metadata_json is not None else None,
        context=json.loads(row.context_json),
    )


class SQLiteProvider(StorageProvider):
    """Durable single-file storage.

    Args:
        name: Instance name
        path: Database file path, or ":memory:" for a private in-memory database
        wal: Enable WAL journal mode (file databases only)
    """

    provider_type = "sqlite"
    supports_query = True
    supports_batch = True

    def __init__(self, name: str | None = None, path: str = ":memory:", wal: bool = True) -> None:
        super().__init__(name)
        self._path = path
        self._wal = wal and path != ":memory:"
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(f"SQLite provider {self.name!r} is not initialized")
        return self._engine

    def initialize(self) -> None:
        if self._engine is not None:
            return
        if self._path == ":memory:":
            # One shared connection, otherwise every pooled connection gets its own empty database
            engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
        else:
            directory = os.path.dirname(os.path.abspath(self._path))
            os.makedirs(directory, exist_ok=True)
            engine = create_engine(f"sqlite:///{self._path}", echo=False)
        self._configure_sqlite(engine, wal=self._wal)
        metadata.create_all(engine)
        self._engine = engine
        logger.debug("SQLite storage initialized", provider=self.name, path=self._path)

    @staticmethod
    def _configure_sqlite(engine: Engine, *, wal: bool) -> None:
        @sa_event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            if wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    def store(self, event: TelemetryEvent) -> None:
        self.store_batch([event])

    def store_batch(self, events: Sequence[TelemetryEvent]) -> None:
        if not events:
            return
        statement = sqlite_insert(events_table).on_conflict_do_nothing(index_elements=["id"])
        with self.engine.begin() as conn:
            conn.execute(statement, [_to_row(e) for e in events])

    def query(self, query_filter: QueryFilter) -> list[TelemetryEvent]:
        statement = select(events_table)
        if query_filter.session_id is not None:
            statement = statement.where(events_table.c.session_id == query_filter.session_id)
        if query_filter.category is not None:
            statement = statement.where(events_table.c.category == query_filter.category)
        if query_filter.action is not None:
            statement = statement.where(events_table.c.action == query_filter.action)
        if query_filter.event_type is not None:
            statement = statement.where(events_table.c.event_type == query_filter.event_type.value)
        if query_filter.time_range is not None:
            statement = statement.where(
                events_table.c.timestamp_us >= _to_micros(query_filter.time_range.start),
                events_table.c.timestamp_us <= _to_micros(query_filter.time_range.end),
            )
        statement = statement.order_by(events_table.c.seq)
        if query_filter.offset:
            statement = statement.offset(query_filter.offset)
        if query_filter.limit is not None:
            statement = statement.limit(query_filter.limit)
        with self.engine.connect() as conn:
            return [_from_row(row) for row in conn.execute(statement)]

    def get_stats(self) -> StorageStats:
        statement = select(
            func.count(),
            func.count(events_table.c.session_id.distinct()),
            func.min(events_table.c.timestamp_us),
            func.max(events_table.c.timestamp_us),
        )
        with self.engine.connect() as conn:
            total, sessions, oldest, newest = conn.execute(statement).one()
        size = os.path.getsize(self._path) if self._path != ":memory:" and os.path.exists(self._path) else None
        return StorageStats(
            provider=self.name,
            total_events=total,
            total_sessions=sessions,
            oldest_event=_from_micros(oldest) if oldest is not None else None,
            newest_event=_from_micros(newest) if newest is not None else None,
            size_bytes=size,
        )

    def clean(self, before: datetime) -> int:
        statement = delete(events_table).where(events_table.c.timestamp_us < _to_micros(before))
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        deleted: int = result.rowcount
        if deleted:
            logger.info("Deleted expired events", provider=self.name, count=deleted)
        return deleted

    def compact(self) -> None:
        # VACUUM cannot run inside a transaction
        with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.exec_driver_sql("VACUUM")

    def shutdown(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
