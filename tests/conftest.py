# tests/conftest.py
"""Shared test fixtures and Hypothesis configuration.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/

Test doubles (plugins, storage providers) live in tests/fixtures/ so test
modules can import them directly.
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from pulsekit.contracts.hooks import HookExecutionOptions
from pulsekit.core.config import TelemetrySettings
from pulsekit.plugins.executor import HookExecutor
from pulsekit.plugins.manager import PluginManager
from pulsekit.service import TelemetryService
from tests.fixtures.factories import make_settings

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _capture_structlog() -> Iterator[None]:
    """Keep structlog's default stdout logger out of captured test output."""
    with structlog.testing.capture_logs():
        yield


@pytest.fixture
def base_timestamp() -> datetime:
    """Fixed timestamp for deterministic tests."""
    return datetime(2026, 1, 30, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def hook_executor() -> Iterator[HookExecutor]:
    executor = HookExecutor()
    yield executor
    executor.shutdown()


@pytest.fixture
def plugin_manager() -> Iterator[PluginManager]:
    """PluginManager with a short hook timeout, shut down after the test."""
    manager = PluginManager(HookExecutor(default_options=HookExecutionOptions(timeout_seconds=1.0)))
    yield manager
    manager.shutdown()


@pytest.fixture
def memory_settings() -> TelemetrySettings:
    return make_settings()


@pytest.fixture
def service_factory() -> Iterator[Any]:
    """Build services and make sure every one is shut down after the test.

    Usage:
        service = service_factory(make_settings(...), plugins=[...])
        service.initialize()
    """
    created: list[TelemetryService] = []

    def factory(settings: TelemetrySettings | None = None, **kwargs: Any) -> TelemetryService:
        service = TelemetryService(settings or make_settings(), **kwargs)
        created.append(service)
        return service

    yield factory
    for service in created:
        service.shutdown()


@pytest.fixture
def service(service_factory: Any) -> TelemetryService:
    """Initialized service with one memory provider."""
    service = service_factory()
    service.initialize()
    return service
