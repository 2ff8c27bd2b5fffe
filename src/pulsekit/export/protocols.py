# src/pulsekit/export/protocols.py
"""Exporter contract.

An exporter turns a list of events into one serialized payload. Built-in
exporters are discovered via the ``pulsekit_get_exporters`` hook; plugins
may contribute instances through ``register_exporter``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pulsekit.contracts.events import TelemetryEvent
    from pulsekit.contracts.results import ExportResult


@runtime_checkable
class ExporterProtocol(Protocol):
    """Serializes events into one export format.

    ``export`` may raise; the service runs ``on_export_error`` hooks and
    re-raises to the caller.
    """

    format: str

    def export(self, events: Sequence[TelemetryEvent]) -> ExportResult: ...


def export_metadata(events: Sequence[TelemetryEvent]) -> dict[str, object]:
    """Standard metadata block carried by every ExportResult."""
    return {
        "total_events": len(events),
        "exported_at": datetime.now(UTC).isoformat(),
    }
