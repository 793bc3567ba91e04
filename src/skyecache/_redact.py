"""Helpers for safe debug logging.

Upstream requests carry the API key as the ``appid`` query parameter.
This module redacts it (and other credentials) from params and URLs
before they reach DEBUG logs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "appid",
        "apikey",
        "api_key",
        "key",
        "token",
        "authorization",
        "cookie",
    }
)

_URL_SECRET_RE = re.compile(r"(?i)\b(appid|api_?key|key|token)=[^&#\s]*")


def redact_url(url: str) -> str:
    """Replace credential query parameters in *url* with ``<redacted>``."""
    return _URL_SECRET_RE.sub(lambda m: f"{m.group(1)}=<redacted>", url)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        value = redact_url(value)
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
