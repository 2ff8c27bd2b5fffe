# src/pulsekit/core/security/provider.py
"""SecurityProvider: sanitizes events before they reach plugins or storage.

Sanitization order:
1. Encrypt configured metadata fields (Fernet)
2. Redact PII from label, metadata and context (encrypted fields untouched)
3. Replace ``context["user_id"]`` with an HMAC fingerprint when enabled

The input event is never mutated; a new event is returned.
"""

from __future__ import annotations

import json
import os
from dataclasses import replace
from typing import Any

import structlog
from cryptography.fernet import Fernet, InvalidToken

from pulsekit.contracts.errors import SecurityConfigurationError
from pulsekit.contracts.events import TelemetryEvent
from pulsekit.core.config import SecuritySettings
from pulsekit.core.security.fingerprint import get_fingerprint_key, user_fingerprint
from pulsekit.core.security.pii import PIIRedactor

logger = structlog.get_logger(__name__)

_ENCRYPTION_KEY_ENV_VAR = "PULSEKIT_ENCRYPTION_KEY"
# Prefix marks values this provider encrypted so decrypt() skips plain values
_ENCRYPTED_PREFIX = "enc:"


class SecurityProvider:
    """Applies PII redaction, field encryption and user id hashing.

    Raises:
        SecurityConfigurationError: At construction, if encryption or user id
            hashing is enabled without a key.
    """

    def __init__(self, settings: SecuritySettings | None = None) -> None:
        self._settings = settings or SecuritySettings()
        pii = self._settings.pii
        self._redactor = (
            PIIRedactor(
                replacement=pii.replacement,
                sensitive_fields=pii.sensitive_fields,
                custom_patterns=pii.custom_patterns,
            )
            if pii.enabled
            else None
        )
        self._fingerprint_key: bytes | None = None
        if pii.hash_user_ids:
            self._fingerprint_key = pii.fingerprint_key.encode("utf-8") if pii.fingerprint_key else get_fingerprint_key()

        encryption = self._settings.encryption
        self._encrypted_fields = frozenset(encryption.fields) if encryption.enabled else frozenset()
        self._fernet: Fernet | None = None
        if encryption.enabled:
            key = encryption.key or os.environ.get(_ENCRYPTION_KEY_ENV_VAR)
            if not key:
                raise SecurityConfigurationError(
                    f"Encryption is enabled but no key is configured (set security.encryption.key or {_ENCRYPTION_KEY_ENV_VAR})"
                )
            try:
                self._fernet = Fernet(key)
            except ValueError as e:
                raise SecurityConfigurationError(f"Invalid Fernet encryption key: {e}") from e

        logger.debug(
            "Security provider configured",
            pii_redaction=self._redactor is not None,
            encrypted_fields=sorted(self._encrypted_fields),
            hash_user_ids=self._fingerprint_key is not None,
        )

    @property
    def retention_days(self) -> int:
        return self._settings.retention.max_age_days

    def sanitize(self, event: TelemetryEvent) -> TelemetryEvent:
        """Return a sanitized copy of ``event``."""
        metadata = dict(event.metadata) if event.metadata is not None else None
        encrypted: dict[str, str] = {}
        if metadata is not None and self._fernet is not None:
            for field_name in self._encrypted_fields & metadata.keys():
                encrypted[field_name] = self._encrypt_value(metadata.pop(field_name))

        label = event.label
        context = dict(event.context)
        if self._redactor is not None:
            label = self._redactor.redact_text(label) if label is not None else None
            metadata = self._redactor.redact(metadata) if metadata is not None else None
            context = self._redactor.redact(context)

        if metadata is not None and encrypted:
            metadata.update(encrypted)

        if self._fingerprint_key is not None and context.get("user_id") is not None:
            context["user_id"] = user_fingerprint(str(context["user_id"]), key=self._fingerprint_key)

        return replace(event, label=label, metadata=metadata, context=context)

    def decrypt(self, event: TelemetryEvent) -> TelemetryEvent:
        """Reverse field encryption on a stored event.

        Values that were not produced by this provider are left as they are.
        """
        if self._fernet is None or not event.metadata:
            return event
        metadata = dict(event.metadata)
        for field_name in self._encrypted_fields & metadata.keys():
            value = metadata[field_name]
            if isinstance(value, str) and value.startswith(_ENCRYPTED_PREFIX):
                metadata[field_name] = self._decrypt_value(value)
        return replace(event, metadata=metadata)

    def _encrypt_value(self, value: Any) -> str:
        assert self._fernet is not None
        token = self._fernet.encrypt(json.dumps(value).encode("utf-8"))
        return _ENCRYPTED_PREFIX + token.decode("ascii")

    def _decrypt_value(self, value: str) -> Any:
        assert self._fernet is not None
        try:
            plaintext = self._fernet.decrypt(value[len(_ENCRYPTED_PREFIX) :].encode("ascii"))
        except InvalidToken as e:
            raise SecurityConfigurationError("Encrypted field could not be decrypted with the configured key") from e
        return json.loads(plaintext)

