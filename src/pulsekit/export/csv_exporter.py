# src/pulsekit/export/csv_exporter.py
"""CSV exporter: one row per event, nested fields JSON-encoded."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence

from pulsekit.contracts.events import TelemetryEvent
from pulsekit.contracts.results import ExportResult
from pulsekit.export.protocols import export_metadata

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "session_id",
    "event_type",
    "category",
    "action",
    "label",
    "value",
    "duration",
    "timestamp",
    "metadata",
    "context",
)


class CSVExporter:
    """Export events as CSV with a fixed header row.

    ``metadata`` and ``context`` columns hold JSON; absent values are empty.
    """

    format = "csv"

    def export(self, events: Sequence[TelemetryEvent]) -> ExportResult:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for event in events:
            row = event.to_dict()
            row["metadata"] = json.dumps(event.metadata, default=str) if event.metadata is not None else ""
            row["context"] = json.dumps(event.context, default=str)
            writer.writerow({k: "" if row[k] is None else row[k] for k in CSV_COLUMNS})
        return ExportResult(
            success=True,
            format=self.format,
            data=buffer.getvalue(),
            metadata=export_metadata(events),
        )
