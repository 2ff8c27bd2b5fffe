"""Event sanitization: PII redaction, field encryption, user id fingerprints."""

from pulsekit.core.security.fingerprint import user_fingerprint
from pulsekit.core.security.pii import PIIRedactor
from pulsekit.core.security.provider import SecurityProvider

__all__ = ["PIIRedactor", "SecurityProvider", "user_fingerprint"]
