"""Helpers for safe debug logging.

Configuration carries broker and gateway credentials. This module scrubs
sensitive fields from mappings before they are emitted in DEBUG logs, and
shortens uplink payloads and encrypted boxes to their size.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pass",
        "secret",
        "ttn_access_key",
        "access_key",
        "threema_secret",
        "threema_private_key",
        "private_key",
        "authorization",
    }
)

# Uplink and message bodies: only their size is useful in logs.
_BLOB_KEYS: frozenset[str] = frozenset({"payload", "payload_raw", "box"})


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{value.hex()}>" if len(value) <= 64 else f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif key.lower() in _BLOB_KEYS and isinstance(v, (str, bytes, bytearray)):
                unit = " chars" if isinstance(v, str) else "b"
                redacted[key] = f"<{key}:{len(v)}{unit}>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
