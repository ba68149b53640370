"""Redaction helpers for safe logging.

Webhook payloads carry phone numbers, display names and message text.
Anything derived from a payload goes through safe_log_context before it
reaches a logger.
"""

import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_SIGNATURE_PATTERN = re.compile(r"sha256=[0-9a-fA-F]+")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact phone numbers, emails and signature digests from a string."""
    result = _SIGNATURE_PATTERN.sub("sha256=" + _REDACTED, value)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # structure only
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}


def id_prefix(value: str | None, length: int = 12) -> str | None:
    """Shorten a provider identifier for log lines."""
    if not value:
        return None
    return value[:length]
