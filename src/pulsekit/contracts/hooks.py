"""Value types passed to and returned from plugin hooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pulsekit.contracts.enums import HookCategory

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class HookContext:
    """Per-invocation context appended as the last argument of every hook.

    Attributes:
        category: Hook category being executed
        operation: Operation name, e.g. "before_store"
        timestamp: When the dispatch started
        metadata: Extra details such as ``{"provider": "memory"}``
    """

    category: HookCategory
    operation: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class HookResult(Generic[T]):
    """Outcome of a single hook invocation on a single plugin."""

    plugin: str
    hook: str
    success: bool
    duration_ms: float
    result: T | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class HookExecutionOptions:
    """Execution policy for a hook dispatch.

    Attributes:
        continue_on_error: Keep going after a hook fails. When False the first
            failure (in registration order) is raised.
        timeout_seconds: Per-invocation time budget.
        parallel: Run all invocations concurrently instead of in order.
        skip_plugins: Plugin names to leave out of this dispatch.
    """

    continue_on_error: bool = True
    timeout_seconds: float = 5.0
    parallel: bool = False
    skip_plugins: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
