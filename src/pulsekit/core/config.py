"""
Configuration schema and loading for the telemetry service.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

_PLUGIN_PATH_PATTERN = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class StorageSettings(BaseModel):
    """One storage backend.

    Example YAML:
        storage:
          - type: memory
          - type: sqlite
            options:
              path: telemetry.db
    """

    model_config = {"frozen": True}

    type: str = Field(..., min_length=1, description="Registered storage provider type")
    enabled: bool = Field(default=True, description="Disabled providers are not constructed")
    name: str | None = Field(default=None, description="Instance name; defaults to the type")
    options: dict[str, Any] = Field(default_factory=dict, description="Provider-specific options")

    @property
    def instance_name(self) -> str:
        return self.name or self.type


class StreamingSettings(BaseModel):
    """Live streaming of tracked events."""

    model_config = {"frozen": True}

    enabled: bool = Field(default=False)
    type: str = Field(default="console", description="Registered streaming provider type")
    port: int | None = Field(default=None, gt=0, lt=65536)
    options: dict[str, Any] = Field(default_factory=dict)


class PIISettings(BaseModel):
    """PII detection and redaction."""

    model_config = {"frozen": True}

    enabled: bool = Field(default=True)
    replacement: str = Field(default="[REDACTED]")
    sensitive_fields: tuple[str, ...] = Field(
        default=("password", "secret", "token", "api_key", "apikey", "authorization"),
        description="Keys whose values are always replaced, matched case-insensitively",
    )
    custom_patterns: tuple[str, ...] = Field(default=(), description="Extra regexes treated as PII")
    hash_user_ids: bool = Field(default=False, description="Replace context.user_id with an HMAC fingerprint")
    fingerprint_key: str | None = Field(default=None, description="HMAC key; falls back to PULSEKIT_FINGERPRINT_KEY")

    @field_validator("custom_patterns")
    @classmethod
    def validate_patterns(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid PII pattern {pattern!r}: {e}") from e
        return v


class EncryptionSettings(BaseModel):
    """Fernet encryption of selected metadata fields."""

    model_config = {"frozen": True}

    enabled: bool = Field(default=False)
    key: str | None = Field(default=None, description="Fernet key; falls back to PULSEKIT_ENCRYPTION_KEY")
    fields: tuple[str, ...] = Field(default=(), description="Metadata keys to encrypt")


class RetentionSettings(BaseModel):
    model_config = {"frozen": True}

    max_age_days: int = Field(default=30, gt=0)


class SecuritySettings(BaseModel):
    model_config = {"frozen": True}

    pii: PIISettings = Field(default_factory=PIISettings)
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)


class CircuitBreakerSettings(BaseModel):
    model_config = {"frozen": True}

    enabled: bool = Field(default=True)
    threshold: int = Field(default=5, gt=0, description="Consecutive failures before opening")
    reset_timeout_seconds: float = Field(default=60.0, gt=0, description="Time open before a trial call")


class RateLimitSettings(BaseModel):
    model_config = {"frozen": True}

    enabled: bool = Field(default=True)
    max_requests: int = Field(default=100, gt=0, description="Requests allowed per window per category:action")
    window_seconds: float = Field(default=60.0, gt=0)


class RetrySettings(BaseModel):
    model_config = {"frozen": True}

    enabled: bool = Field(default=True)
    max_retries: int = Field(default=3, ge=1, description="Total attempts including the first")
    backoff_seconds: float = Field(default=1.0, gt=0, description="Initial backoff, doubled per attempt")
    max_backoff_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "RetrySettings":
        if self.max_backoff_seconds < self.backoff_seconds:
            raise ValueError("max_backoff_seconds must be >= backoff_seconds")
        return self


class ReliabilitySettings(BaseModel):
    model_config = {"frozen": True}

    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class AnalyticsSettings(BaseModel):
    model_config = {"frozen": True}

    enabled: bool = Field(default=False)


class PluginSettings(BaseModel):
    """A plugin loaded by import path.

    ``path`` has the form ``package.module:attribute``. The attribute is
    called with ``options`` as keyword arguments to build the plugin.
    """

    model_config = {"frozen": True}

    path: str = Field(..., description="module:attribute import path")
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not _PLUGIN_PATH_PATTERN.match(v):
            raise ValueError(f"Plugin path must look like 'package.module:Attribute', got {v!r}")
        return v


class TelemetrySettings(BaseModel):
    """Top-level service configuration.

    Example YAML:
        service_name: checkout
        environment: production
        storage:
          - type: memory
        reliability:
          rate_limit:
            max_requests: 500
        analytics:
          enabled: true
    """

    model_config = {"frozen": True}

    service_name: str = Field(..., min_length=1)
    service_version: str = Field(default="0.0.0")
    environment: str = Field(default="development")
    storage: tuple[StorageSettings, ...] = Field(default=(StorageSettings(type="memory"),))
    streaming: StreamingSettings = Field(default_factory=StreamingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    reliability: ReliabilitySettings = Field(default_factory=ReliabilitySettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    plugins: tuple[PluginSettings, ...] = Field(default=())
    maintenance_interval_seconds: float = Field(default=300.0, gt=0)
    hook_timeout_seconds: float = Field(default=5.0, gt=0)
    platform: str | None = Field(default=None, description="Platform tag merged into event context")
    default_context: dict[str, Any] = Field(default_factory=dict, description="Extra context merged into every event")

    @model_validator(mode="after")
    def validate_unique_storage_names(self) -> "TelemetrySettings":
        names = [s.instance_name for s in self.storage if s.enabled]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate storage provider names: {duplicates}. Set 'name' to disambiguate.")
        return self


def _expand_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in string values, recursively."""
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            if name in os.environ:
                return os.environ[name]
            if default is not None:
                return default
            raise ValueError(f"Environment variable {name} is not set and has no default")

        return _ENV_VAR_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    return value


def load_settings(config_path: Path, *, envvar_prefix: str = "PULSEKIT") -> TelemetrySettings:
    """Load settings from a YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (PULSEKIT_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Nested keys use double underscores: ``PULSEKIT_RELIABILITY__RATE_LIMIT__MAX_REQUESTS=500``.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the file is not a YAML mapping
        pydantic.ValidationError: If configuration fails validation
    """
    from dynaconf import Dynaconf

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Dynaconf accepts a YAML list or scalar silently; reject it up front.
    with config_path.open(encoding="utf-8") as f:
        document = yaml.safe_load(f)
    if document is not None and not isinstance(document, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(document).__name__}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=envvar_prefix,
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return TelemetrySettings(**raw_config)


def settings_from_mapping(data: dict[str, Any]) -> TelemetrySettings:
    """Validate an in-memory mapping, expanding ``${VAR}`` references."""
    return TelemetrySettings(**_expand_env_vars(data))
