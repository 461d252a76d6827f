"""Helpers for safe debug logging.

Query payloads and replicated results are host data and can carry
credentials or very large blobs.  :func:`redact_for_log` turns such a value
into something safe and bounded for a DEBUG log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Set
from typing import Any

from pydantic import BaseModel

_MAX_DEPTH = 20
_MAX_ITEMS = 50

# Compared after lowercasing and dropping "_" / "-", so "api_key", "apiKey"
# and "x-api-key" all normalize onto an entry here.
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "apikey",
        "xapikey",
        "authorization",
        "cookie",
        "session",
    }
)
_SENSITIVE_SUFFIXES: tuple[str, ...] = ("token", "secret", "password")


def _normalize_key(key: Any) -> str:
    return str(key).lower().replace("_", "").replace("-", "")


def is_sensitive_key(key: Any) -> bool:
    normalized = _normalize_key(key)
    return normalized in _SENSITIVE_KEYS or normalized.endswith(_SENSITIVE_SUFFIXES)


def _redact_items(values: Sequence[Any], max_string: int, depth: int) -> list[Any]:
    redacted = [redact_for_log(v, max_string=max_string, _depth=depth + 1) for v in values[:_MAX_ITEMS]]
    if len(values) > _MAX_ITEMS:
        redacted.append(f"<{len(values) - _MAX_ITEMS} more>")
    return redacted


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted, size-bounded copy of *value* for debug logs.

    Sensitive mapping keys are replaced by ``"<redacted>"``, strings longer
    than *max_string* are truncated and containers are capped at a fixed
    number of items.  Provider instances and callables are summarized by
    name; pydantic models are dumped first.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, BaseModel):
        return redact_for_log(value.model_dump(), max_string=max_string, _depth=_depth + 1)

    provider_key = getattr(value, "provider_key", None)
    if isinstance(provider_key, str):
        return f"<instance:{provider_key}>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in list(value.items())[:_MAX_ITEMS]:
            key = str(k)
            if is_sensitive_key(key):
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        if len(value) > _MAX_ITEMS:
            redacted["<more>"] = len(value) - _MAX_ITEMS
        return redacted

    if isinstance(value, Set):
        return _redact_items(sorted(value, key=repr), max_string, _depth)

    if isinstance(value, Sequence):
        return _redact_items(list(value), max_string, _depth)

    if callable(value):
        return f"<callable:{getattr(value, '__qualname__', type(value).__name__)}>"

    return repr(value)
