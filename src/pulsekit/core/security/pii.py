# src/pulsekit/core/security/pii.py
"""Regex-based PII detection and recursive redaction."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class PIIPattern:
    name: str
    regex: re.Pattern[str]
    luhn: bool = False


def _luhn_valid(candidate: str) -> bool:
    digits = [int(c) for c in candidate if c.isdigit()]
    if not 13 <= len(digits) <= 19:
        return False
    checksum = 0
    for index, digit in enumerate(reversed(digits)):
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit
    return checksum % 10 == 0


# Applied in order: credential shapes first so their digits are not
# half-consumed by the numeric patterns.
BUILTIN_PATTERNS: tuple[PIIPattern, ...] = (
    PIIPattern("jwt", re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")),
    PIIPattern("bearer_token", re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")),
    PIIPattern(
        "credential_assignment",
        re.compile(r"(?i)\b(?:api[_-]?key|secret|token|password|passwd)\s*[:=]\s*[^\s,;&]+"),
    ),
    PIIPattern("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    PIIPattern("credit_card", re.compile(r"\b(?:\d[ -]?){12,18}\d\b"), luhn=True),
    PIIPattern("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    PIIPattern("phone", re.compile(r"(?<![\w-])(?:\+?1[ .-]?)?\(?\d{3}\)?[ .-]?\d{3}[ .-]\d{4}(?![\w-])")),
    PIIPattern(
        "ipv4",
        re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b"),
    ),
)


def _normalize_key(key: str) -> str:
    return key.lower().replace("-", "_")


class PIIRedactor:
    """Replaces PII in strings and nested containers.

    Example:
        redactor = PIIRedactor()
        redactor.redact_text("mail me at a@b.io")  # "mail me at [REDACTED]"
    """

    def __init__(
        self,
        *,
        replacement: str = "[REDACTED]",
        sensitive_fields: Iterable[str] = (),
        custom_patterns: Iterable[str] = (),
    ) -> None:
        self.replacement = replacement
        self._sensitive = frozenset(_normalize_key(f) for f in sensitive_fields)
        custom = tuple(
            PIIPattern(f"custom_{index}", re.compile(pattern)) for index, pattern in enumerate(custom_patterns)
        )
        self._patterns = BUILTIN_PATTERNS + custom

    def detect(self, text: str) -> list[str]:
        """Return the names of the patterns that match ``text``."""
        found = []
        for pattern in self._patterns:
            for match in pattern.regex.finditer(text):
                if not pattern.luhn or _luhn_valid(match.group(0)):
                    found.append(pattern.name)
                    break
        return found

    def redact_text(self, text: str) -> str:
        for pattern in self._patterns:
            if pattern.luhn:
                text = pattern.regex.sub(
                    lambda m: self.replacement if _luhn_valid(m.group(0)) else m.group(0),
                    text,
                )
            else:
                text = pattern.regex.sub(self.replacement, text)
        return text

    def is_sensitive_key(self, key: str) -> bool:
        return _normalize_key(key) in self._sensitive

    def redact(self, value: Any) -> Any:
        """Return a redacted copy of ``value``. Inputs are never mutated."""
        if isinstance(value, str):
            return self.redact_text(value)
        if isinstance(value, dict):
            return {
                k: self.replacement if isinstance(k, str) and self.is_sensitive_key(k) else self.redact(v)
                for k, v in value.items()
            }
        if isinstance(value, list | tuple):
            return type(value)(self.redact(v) for v in value)
        return value
