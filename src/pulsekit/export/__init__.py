"""Built-in exporters.

Available exporters:
- JSONExporter ("json")
- CSVExporter ("csv")

Plugin registration:
    Exporters are registered via the pulsekit_get_exporters hook.
    BuiltinExportersPlugin registers the exporters above.
"""

from collections.abc import Iterable
from typing import Any

from pulsekit.export.csv_exporter import CSVExporter
from pulsekit.export.json_exporter import JSONExporter
from pulsekit.export.protocols import ExporterProtocol
from pulsekit.plugins.hookspecs import hookimpl
from pulsekit.plugins.registry import ComponentRegistry, discover_components


class BuiltinExportersPlugin:
    """Plugin that registers built-in exporters."""

    @hookimpl
    def pulsekit_get_exporters(self) -> list[type]:
        return [JSONExporter, CSVExporter]


def create_exporter_registry(
    extra_plugins: Iterable[Any] = (),
    *,
    load_entrypoints: bool = False,
) -> ComponentRegistry[ExporterProtocol]:
    """Discover exporter classes and return a registry keyed by format."""
    discovered = discover_components(
        "pulsekit_get_exporters",
        "format",
        [BuiltinExportersPlugin(), *extra_plugins],
        load_entrypoints=load_entrypoints,
    )
    return ComponentRegistry("export format", discovered)


__all__ = [
    "BuiltinExportersPlugin",
    "CSVExporter",
    "ExporterProtocol",
    "JSONExporter",
    "create_exporter_registry",
]
