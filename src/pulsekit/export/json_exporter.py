# src/pulsekit/export/json_exporter.py
"""JSON exporter: one document with ``events`` and ``metadata`` keys."""

from __future__ import annotations

import json
from collections.abc import Sequence

from pulsekit.contracts.events import TelemetryEvent
from pulsekit.contracts.results import ExportResult
from pulsekit.export.protocols import export_metadata


class JSONExporter:
    """Export events as a JSON document.

    Options:
        indent: Indentation passed to ``json.dumps`` (None for compact)
    """

    format = "json"

    def __init__(self, indent: int | None = 2) -> None:
        self._indent = indent

    def export(self, events: Sequence[TelemetryEvent]) -> ExportResult:
        metadata = export_metadata(events)
        document = {
            "events": [event.to_dict() for event in events],
            "metadata": metadata,
        }
        return ExportResult(
            success=True,
            format=self.format,
            data=json.dumps(document, indent=self._indent, default=str),
            metadata=metadata,
        )
