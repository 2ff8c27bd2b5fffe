# src/pulsekit/streaming/console.py
"""Console streaming provider.

Writes each tracked event to stdout or stderr in JSON or human-readable
form. Primarily used for local debugging.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, Literal, TextIO, TypeGuard

import structlog

from pulsekit.contracts.errors import ConfigurationError

if TYPE_CHECKING:
    from pulsekit.contracts.events import TelemetryEvent

logger = structlog.get_logger(__name__)


def _is_valid_format(v: str) -> TypeGuard[Literal["json", "pretty"]]:
    return v in {"json", "pretty"}


def _is_valid_output(v: str) -> TypeGuard[Literal["stdout", "stderr"]]:
    return v in {"stdout", "stderr"}


class ConsoleStreamingProvider:
    """Stream events to the console.

    Options:
        format: "json" (default, one object per line) or "pretty"
        output: "stdout" (default) or "stderr"

    Example configuration:
        streaming:
          enabled: true
          type: console
          options:
            format: pretty
    """

    provider_type = "console"

    _VALID_FORMATS: frozenset[str] = frozenset({"json", "pretty"})
    _VALID_OUTPUTS: frozenset[str] = frozenset({"stdout", "stderr"})

    def __init__(self) -> None:
        self._format: Literal["json", "pretty"] = "json"
        self._stream: TextIO = sys.stdout

    def initialize(self, options: dict[str, Any]) -> None:
        format_value = options.get("format", "json")
        if not isinstance(format_value, str) or not _is_valid_format(format_value):
            raise ConfigurationError(
                f"console streaming: invalid format {format_value!r}. "
                f"Must be one of: {', '.join(sorted(self._VALID_FORMATS))}"
            )
        output_value = options.get("output", "stdout")
        if not isinstance(output_value, str) or not _is_valid_output(output_value):
            raise ConfigurationError(
                f"console streaming: invalid output {output_value!r}. "
                f"Must be one of: {', '.join(sorted(self._VALID_OUTPUTS))}"
            )
        self._format = format_value
        self._stream = sys.stdout if output_value == "stdout" else sys.stderr
        logger.debug("Console streaming configured", format=self._format, output=output_value)

    def stream(self, event: TelemetryEvent) -> None:
        if self._format == "json":
            line = json.dumps(event.to_dict(), default=str)
        else:
            line = self._format_pretty(event)
        print(line, file=self._stream)

    def _format_pretty(self, event: TelemetryEvent) -> str:
        """Format: [TIMESTAMP] TYPE category/action session=... (details)"""
        details = []
        for field_name in ("label", "value", "duration"):
            value = getattr(event, field_name)
            if value is not None:
                details.append(f"{field_name}={value}")
        head = (
            f"[{event.timestamp.isoformat()}] {event.event_type.value.upper()} "
            f"{event.category}/{event.action} session={event.session_id}"
        )
        return f"{head} ({', '.join(details)})" if details else head

    def shutdown(self) -> None:
        self._stream.flush()
