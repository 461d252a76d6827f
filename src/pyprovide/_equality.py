"""Shallow equality used to decide whether a consumer needs an update."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SCALARS = (str, bytes, int, float, complex, bool, type(None))


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    # Immutable scalars compare by value; everything else by identity.
    return isinstance(a, _SCALARS) and isinstance(b, _SCALARS) and type(a) is type(b) and a == b


def shallow_equal(a: Any, b: Any) -> bool:
    """Return True when *a* and *b* are equal one level deep.

    Mappings must share their keys and hold identical values; sequences
    must have the same length and identical members.  Nested containers
    are compared by identity, not structure.
    """
    if _same(a, b):
        return True

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or not _same(value, b[key]):
                return False
        return True

    if (
        isinstance(a, Sequence)
        and isinstance(b, Sequence)
        and not isinstance(a, (str, bytes, bytearray))
        and not isinstance(b, (str, bytes, bytearray))
    ):
        if len(a) != len(b):
            return False
        return all(_same(x, y) for x, y in zip(a, b, strict=True))

    return False
