"""Masking of credentials before payloads reach the log."""

from __future__ import annotations

_MAX_REDACT_DEPTH = 10

# Substring match, case-insensitive.
SENSITIVE_KEY_MARKERS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "credential",
    "private_key",
)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def redact_sensitive_fields(value: object, *, mask: str = "***", depth: int = 0) -> object:
    """Return a copy of ``value`` with sensitive dict values replaced by ``mask``."""
    if depth >= _MAX_REDACT_DEPTH:
        return mask
    if isinstance(value, dict):
        return {
            key: mask if is_sensitive_key(str(key)) else redact_sensitive_fields(
                val, mask=mask, depth=depth + 1
            )
            for key, val in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_sensitive_fields(item, mask=mask, depth=depth + 1) for item in value]
    return value
