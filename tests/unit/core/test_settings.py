# tests/unit/core/test_settings.py
"""Tests for configuration models and the Dynaconf loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pulsekit.core.config import (
    PIISettings,
    PluginSettings,
    RetrySettings,
    StorageSettings,
    TelemetrySettings,
    load_settings,
    settings_from_mapping,
)

# =============================================================================
# Models
# =============================================================================


class TestTelemetrySettings:
    def test_minimal_settings_use_defaults(self) -> None:
        settings = TelemetrySettings(service_name="checkout")
        assert [s.type for s in settings.storage] == ["memory"]
        assert settings.environment == "development"
        assert settings.reliability.rate_limit.max_requests == 100
        assert settings.reliability.rate_limit.window_seconds == 60.0
        assert settings.reliability.circuit_breaker.threshold == 5
        assert settings.reliability.retry.max_retries == 3
        assert settings.security.retention.max_age_days == 30
        assert settings.security.pii.enabled is True
        assert settings.security.encryption.enabled is False
        assert settings.analytics.enabled is False
        assert settings.maintenance_interval_seconds == 300.0
        assert settings.hook_timeout_seconds == 5.0

    def test_service_name_required(self) -> None:
        with pytest.raises(ValidationError):
            TelemetrySettings()  # type: ignore[call-arg]

    def test_settings_are_frozen(self) -> None:
        settings = TelemetrySettings(service_name="checkout")
        with pytest.raises(ValidationError):
            settings.environment = "production"  # type: ignore[misc]

    def test_duplicate_storage_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate storage provider names"):
            TelemetrySettings(service_name="s", storage=[{"type": "memory"}, {"type": "memory"}])

    def test_named_instances_of_same_type_allowed(self) -> None:
        settings = TelemetrySettings(
            service_name="s",
            storage=[{"type": "memory", "name": "primary"}, {"type": "memory", "name": "replica"}],
        )
        assert [s.instance_name for s in settings.storage] == ["primary", "replica"]

    def test_disabled_duplicates_are_ignored(self) -> None:
        settings = TelemetrySettings(
            service_name="s",
            storage=[{"type": "memory"}, {"type": "memory", "enabled": False}],
        )
        assert len(settings.storage) == 2


class TestSectionValidation:
    def test_storage_instance_name_defaults_to_type(self) -> None:
        assert StorageSettings(type="sqlite").instance_name == "sqlite"

    def test_invalid_custom_pii_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid PII pattern"):
            PIISettings(custom_patterns=("([unclosed",))

    def test_retry_backoff_bounds(self) -> None:
        with pytest.raises(ValidationError, match="max_backoff_seconds"):
            RetrySettings(backoff_seconds=10.0, max_backoff_seconds=1.0)

    @pytest.mark.parametrize("path", ["module", "module:", ":Attr", "pkg.mod:Attr.sub"])
    def test_plugin_path_format(self, path: str) -> None:
        with pytest.raises(ValidationError, match="module:Attribute"):
            PluginSettings(path=path)

    def test_plugin_path_accepted(self) -> None:
        assert PluginSettings(path="my_pkg.plugins:AuditPlugin").path == "my_pkg.plugins:AuditPlugin"


# =============================================================================
# Loading
# =============================================================================


class TestSettingsFromMapping:
    def test_expands_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PULSEKIT_TEST_DB", "/tmp/telemetry.db")
        settings = settings_from_mapping(
            {
                "service_name": "s",
                "storage": [{"type": "sqlite", "options": {"path": "${PULSEKIT_TEST_DB}"}}],
                "environment": "${PULSEKIT_TEST_UNSET:-staging}",
            }
        )
        assert settings.storage[0].options["path"] == "/tmp/telemetry.db"
        assert settings.environment == "staging"

    def test_missing_variable_without_default_fails(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PULSEKIT_TEST_MISSING", raising=False)
        with pytest.raises(ValueError, match="PULSEKIT_TEST_MISSING"):
            settings_from_mapping({"service_name": "${PULSEKIT_TEST_MISSING}"})


class TestLoadSettings:
    def test_loads_yaml(self, tmp_path: Path) -> None:
        config = tmp_path / "telemetry.yaml"
        config.write_text(
            "service_name: checkout\n"
            "environment: production\n"
            "storage:\n"
            "  - type: memory\n"
            "    options:\n"
            "      max_events: 500\n"
            "analytics:\n"
            "  enabled: true\n"
        )
        settings = load_settings(config)
        assert settings.service_name == "checkout"
        assert settings.environment == "production"
        assert settings.storage[0].options == {"max_events": 500}
        assert settings.analytics.enabled is True

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config = tmp_path / "telemetry.yaml"
        config.write_text("service_name: checkout\nenvironment: development\n")
        monkeypatch.setenv("PULSEKIT_ENVIRONMENT", "production")
        assert load_settings(config).environment == "production"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_non_mapping_document_rejected(self, tmp_path: Path) -> None:
        config = tmp_path / "telemetry.yaml"
        config.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            load_settings(config)

    def test_example_configuration_is_valid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEPLOY_ENV", raising=False)
        monkeypatch.delenv("TELEMETRY_DB_PATH", raising=False)
        settings = load_settings(Path(__file__).parents[3] / "examples" / "pulsekit.yaml")

        assert settings.environment == "development"
        assert [s.instance_name for s in settings.storage] == ["recent", "durable"]
        assert settings.storage[1].options == {"path": "telemetry.db"}
        assert settings.security.pii.custom_patterns == (r"ACCT-\d{8}",)
        assert settings.security.retention.max_age_days == 14
