"""Key helpers: structural relevance and stable result keys."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pyprovide.exceptions import QueryKeyError


def relevant_keys(reducers: Mapping[str, Any] | None, mapping: Mapping[str, Any] | None) -> list[str]:
    """Return the reducer keys present in *mapping*, in reducer order."""
    if not reducers or not mapping:
        return []
    return [key for key in reducers if key in mapping]


def result_key(query: Any, options: Mapping[str, Any], *, provider_key: str = "") -> str:
    """Serialize ``{query, options}`` into a stable cache key.

    Keys are sorted so structurally identical queries share a key no matter
    how their dicts were built.  Values JSON cannot represent are rejected
    rather than stringified, since two different callables would otherwise
    collide on the same key.
    """
    try:
        return json.dumps(
            {"query": query, "options": options},
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise QueryKeyError(
            f"Query for provider {provider_key!r} is not serializable: {exc}",
            provider_key=provider_key,
        ) from exc
