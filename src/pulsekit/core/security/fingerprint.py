# src/pulsekit/core/security/fingerprint.py
"""User identifier fingerprinting using HMAC-SHA256.

A fingerprint lets analytics group events by user without storing the raw
identifier. The same identifier and key always produce the same fingerprint.

Usage:
    fp = user_fingerprint("user-42", key=b"signing-key")

    # With environment variable (PULSEKIT_FINGERPRINT_KEY)
    fp = user_fingerprint("user-42")
"""

from __future__ import annotations

import hashlib
import hmac
import os

from pulsekit.contracts.errors import SecurityConfigurationError

_ENV_VAR = "PULSEKIT_FINGERPRINT_KEY"


def get_fingerprint_key() -> bytes:
    """Read the fingerprint key from the environment.

    Raises:
        SecurityConfigurationError: If PULSEKIT_FINGERPRINT_KEY is not set.
    """
    value = os.environ.get(_ENV_VAR)
    if not value:
        raise SecurityConfigurationError(f"User id hashing is enabled but {_ENV_VAR} is not set")
    return value.encode("utf-8")


def user_fingerprint(identifier: str, *, key: bytes | None = None) -> str:
    """Compute the HMAC-SHA256 fingerprint of an identifier.

    Returns:
        Hex digest prefixed with ``fp_`` so fingerprints are recognizable in
        stored context.
    """
    if key is None:
        key = get_fingerprint_key()
    digest = hmac.new(key, identifier.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"fp_{digest}"
