"""Ordered ready-callback list held by each provider instance."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any

ReadyCallback = Callable[[Any], Any]


class ReadyQueue:
    """Ordered callbacks fired when an instance's initial state materializes.

    Internal callbacks that must observe nothing before them (the ready flag
    setter) are inserted at the front; caller callbacks go to the back.
    Firing does not drain the queue: re-keying a store fires it again.
    """

    def __init__(self, callbacks: Iterable[ReadyCallback] = ()) -> None:
        self._callbacks: list[ReadyCallback] = list(callbacks)

    def unshift(self, callback: ReadyCallback) -> None:
        self._callbacks.insert(0, callback)

    def push(self, callback: ReadyCallback) -> None:
        self._callbacks.append(callback)

    def fire(self, instance: Any) -> None:
        """Call every callback with *instance*, in order."""
        for callback in list(self._callbacks):
            callback(instance)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __iter__(self) -> Iterator[ReadyCallback]:
        return iter(list(self._callbacks))
