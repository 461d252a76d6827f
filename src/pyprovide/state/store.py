"""In-memory provider store.

A reducer-driven state container with a middleware chain, change
listeners and replication-gated readiness.  The engine only relies on the
collaborator surface documented on :class:`ProviderStore`; hosts may pass
their own store factory instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pyprovide._constants import INIT_ACTION
from pyprovide.state.middleware import Middleware, MiddlewareApi, compose_dispatch
from pyprovide.state.replication import ReplicationNodeLike, node_reducer_keys

_logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Any], Any]
Listener = Callable[[], Any]


def _merge_patch(target: dict[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new state where keys in *patch* overwrite *target*."""
    merged = dict(target)
    merged.update(patch)
    return merged


class ProviderStore:
    """State container for one provider instance.

    Collaborator surface: ``get_state()``, ``dispatch(action)``,
    ``subscribe(listener) -> unsubscribe``, ``set_state(patch)``,
    ``set_key(new_key, ready_callback)``, ``on_ready(callback)`` and the
    ``initialized_replication`` flag.

    State is a dict keyed by reducer key.  A dispatch replaces the dict only
    when some reducer returned a different object, so ``get_state()``
    identity tells whether anything changed.
    """

    def __init__(
        self,
        reducers: Mapping[str, Reducer],
        *,
        key: str,
        initial_state: Mapping[str, Any] | None = None,
        middleware: Sequence[Middleware] = (),
        replication: Sequence[ReplicationNodeLike] | None = None,
        extra: Any = None,
    ) -> None:
        self.key = key
        self._reducers: dict[str, Reducer] = dict(reducers)
        self._replication: list[ReplicationNodeLike] = list(replication or ())
        self._listeners: list[Listener] = []
        self._ready_callbacks: list[Callable[[], Any]] = []
        self._generation = 0
        self.initialized_replication = False

        initial = initial_state or {}
        self._state: dict[str, Any] = {
            reducer_key: reducer(initial.get(reducer_key), INIT_ACTION)
            for reducer_key, reducer in self._reducers.items()
        }

        api = MiddlewareApi(
            dispatch=lambda action: self.dispatch(action),
            get_state=self.get_state,
            extra=extra,
        )
        self._dispatch = compose_dispatch(middleware, api, self._base_dispatch)
        self._replicate_initial_state()

    # ------------------------------------------------------------------
    # Core store surface
    # ------------------------------------------------------------------

    def get_state(self) -> dict[str, Any]:
        return self._state

    def dispatch(self, action: Any) -> Any:
        return self._dispatch(action)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_state(self, patch: Mapping[str, Any]) -> None:
        """Overwrite the keys in *patch* (hydration) and notify listeners."""
        if not patch:
            return
        self._state = _merge_patch(self._state, patch)
        self._notify()

    def _base_dispatch(self, action: Any) -> Any:
        state = self._state
        next_state = dict(state)
        changed = False
        for reducer_key, reducer in self._reducers.items():
            previous = state.get(reducer_key)
            value = reducer(previous, action)
            next_state[reducer_key] = value
            changed = changed or value is not previous

        if changed:
            self._state = next_state
            self._replicate_change(state, next_state, action)
        self._notify()
        return action

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # Replication
    # ------------------------------------------------------------------

    def on_ready(self, callback: Callable[[], Any]) -> None:
        """Call *callback* once initial replication has completed."""
        if self.initialized_replication:
            callback()
            return
        self._ready_callbacks.append(callback)

    def set_key(self, new_key: str, ready_callback: Callable[[], Any] | None = None) -> None:
        """Re-key the store and replicate the initial state for *new_key*."""
        _logger.debug("Store re-keyed from=%s to=%s", self.key, new_key)
        self.key = new_key
        if ready_callback is not None:
            self._ready_callbacks.append(ready_callback)
        self._replicate_initial_state()

    def _replicate_initial_state(self) -> None:
        self._generation += 1
        generation = self._generation
        self.initialized_replication = False

        targets: list[tuple[Callable[..., Any], list[str]]] = []
        for node in self._replication:
            reducer_keys = node_reducer_keys(node, self._reducers)
            for replicator in node.replicator:
                get_initial_state = getattr(replicator, "get_initial_state", None)
                if callable(get_initial_state):
                    targets.append((get_initial_state, reducer_keys))

        # Seeded so synchronous answers cannot finish before every replicator was asked.
        remaining = len(targets) + 1

        def settle() -> None:
            nonlocal remaining
            remaining -= 1
            if remaining == 0 and generation == self._generation:
                self._finish_replication()

        for get_initial_state, reducer_keys in targets:
            get_initial_state(self.key, reducer_keys, self._make_setter(generation, reducer_keys, settle))

        settle()

    def _make_setter(
        self,
        generation: int,
        reducer_keys: list[str],
        settle: Callable[[], None],
    ) -> Callable[[Mapping[str, Any] | None], None]:
        answered = False

        def set_replicated_state(state: Mapping[str, Any] | None) -> None:
            nonlocal answered
            if answered:
                return
            answered = True
            if generation != self._generation:
                _logger.debug("Ignoring replicated state for superseded key")
                return
            if state:
                patch = {k: state[k] for k in reducer_keys if k in state}
                if patch:
                    self._state = _merge_patch(self._state, patch)
                    self._notify()
            settle()

        return set_replicated_state

    def _finish_replication(self) -> None:
        self.initialized_replication = True
        callbacks = self._ready_callbacks
        self._ready_callbacks = []
        for callback in callbacks:
            callback()

    def _replicate_change(self, state: dict[str, Any], next_state: dict[str, Any], action: Any) -> None:
        for node in self._replication:
            reducer_keys = node_reducer_keys(node, self._reducers)
            for replicator in node.replicator:
                on_state_change = getattr(replicator, "on_state_change", None)
                if callable(on_state_change):
                    on_state_change(self.key, reducer_keys, state, next_state, action)
