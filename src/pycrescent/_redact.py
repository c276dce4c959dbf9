"""Scrub credentials out of payloads before they reach DEBUG logs.

Requests to this backend carry the project api key and a bearer JWT in
headers, auth bodies carry passwords and refresh tokens, and realtime join
frames carry the access token.  Keys are matched case-insensitively with
``-`` and ``_`` treated alike, so ``Set-Cookie`` and ``x_api_key`` are
caught the same way as their canonical spellings.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "apikey",
        "api_key",
        "x_api_key",
        "access_token",
        "refresh_token",
        "provider_token",
        "provider_refresh_token",
        "token",
        "authorization",
        "cookie",
        "set_cookie",
    }
)


def _is_secret_key(key: Any) -> bool:
    return str(key).strip().lower().replace("-", "_") in _SECRET_KEYS


def _looks_like_credential(text: str) -> bool:
    """Bearer headers and bare JWTs (``eyJ...`` with three segments)."""
    if text[:7].lower() == "bearer ":
        return True
    return text.startswith("eyJ") and text.count(".") == 2 and " " not in text


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with credentials replaced by ``<redacted>``.

    Long strings are cut at *max_string* characters and nesting deeper
    than 20 levels is elided.
    """
    if _depth > 20:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        if _looks_like_credential(value):
            return REDACTED
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED
            if _is_secret_key(key)
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    return repr(value)
