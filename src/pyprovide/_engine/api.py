"""Cross-provider command surface handed to thunk actions.

A thunk dispatched to any provider receives a :class:`ProviderApi` bound to
the scope its instance lives in, so it can reach sibling providers: look up
or create instances, hydrate state, broadcast actions and run queries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from functools import partial
from typing import TYPE_CHECKING, Any

from pyprovide._constants import QUERY_PROP, RESULT_PROP, RESULTS_PROP
from pyprovide._keys import relevant_keys
from pyprovide.exceptions import UnknownProviderError
from pyprovide.models.commands import ProviderAction
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance

if TYPE_CHECKING:
    from pyprovide.context import ProviderScope
    from pyprovide.runtime import ProviderRuntime

_logger = logging.getLogger(__name__)


class ProviderApi:
    """``get_instance`` / ``set_states`` / ``dispatch_all`` / ``find`` for one scope."""

    def __init__(
        self,
        runtime: ProviderRuntime,
        scope: ProviderScope,
        definition: ProviderDefinition | None = None,
    ) -> None:
        self._runtime = runtime
        self._scope = scope
        self._definition = definition

    @property
    def scope(self) -> ProviderScope:
        return self._scope

    def find_provider(self, props: Mapping[str, Any]) -> ProviderDefinition:
        """Pick the provider whose reducers overlap *props*.

        The bound definition is preferred, then every provider in scope in
        order; with no overlap the bound definition is the fallback.
        """
        if self._definition is not None and relevant_keys(self._definition.reducers, props):
            return self._definition
        for definition in self._scope.providers.values():
            if relevant_keys(definition.reducers, props):
                return definition
        if self._definition is None:
            raise UnknownProviderError("", f"No provider in scope matches props {sorted(props)!r}")
        return self._definition

    def get_instance(
        self,
        props: dict[str, Any],
        callback: Callable[[ProviderInstance], Any] | None = None,
    ) -> ProviderInstance:
        """Instantiate (or reuse) the provider matching *props*.

        *callback* fires once the instance is ready.
        """
        consumer = self._scope.consumer(props)
        return self._runtime.instantiate(consumer, self.find_provider(props), ready_callback=callback)

    def set_states(self, states: Mapping[str, Mapping[str, Any]]) -> None:
        """Hydrate instances by key; unknown keys are stashed for later instantiation."""
        pending: list[Callable[[], Any]] = []
        for provider_key, state in states.items():
            instance = self._scope.provider_instances.get(provider_key)
            if instance is None:
                self._runtime.client_states[provider_key] = dict(state)
                continue
            set_state = getattr(instance.store, "set_state", None)
            if callable(set_state):
                pending.append(partial(set_state, state))

        # Applied after stashing so listeners that instantiate see the stashed states.
        for apply in pending:
            apply()

    def dispatch_all(self, actions: Iterable[ProviderAction | Mapping[str, Any]]) -> None:
        """Dispatch each action to the instance with its ``provider_key``, if any."""
        for item in actions:
            command = item if isinstance(item, ProviderAction) else ProviderAction.model_validate(item)
            instance = self._scope.provider_instances.get(command.provider_key)
            if instance is None:
                _logger.debug("dispatch_all skipped unknown provider key=%s", command.provider_key)
                continue
            instance.store.dispatch(command.action)

    def find(
        self,
        props: Mapping[str, Any],
        callback: Callable[[Any], Any],
        *,
        do_instantiate: bool = False,
    ) -> bool:
        """Run the queries declared in *props* and pass the results to *callback*.

        With ``do_instantiate`` each result item is treated as props for a
        provider instance and the ready instances are passed instead.
        Returns whether any query was issued.
        """
        consumer = self._scope.consumer(dict(props))
        own_props = consumer.props

        def done() -> None:
            if not do_instantiate:
                callback(own_props.get(RESULT_PROP) if own_props.get(QUERY_PROP) else own_props.get(RESULTS_PROP))
                return

            if own_props.get(QUERY_PROP):
                self._result_instances(own_props.get(RESULT_PROP), callback)
                return

            self._results_instances(own_props.get(RESULTS_PROP) or {}, callback)

        return self._runtime.handle_queries(consumer, done)

    def _result_instances(self, result: Any, callback: Callable[[list[ProviderInstance | None]], Any]) -> None:
        items = list(result) if isinstance(result, (list, tuple)) else []
        instances: list[ProviderInstance | None] = [None] * len(items)
        remaining = len(items) + 1

        def settle() -> None:
            nonlocal remaining
            remaining -= 1
            if remaining == 0:
                callback(instances)

        for index, item_props in enumerate(items):

            def on_ready(instance: ProviderInstance, index: int = index) -> None:
                instances[index] = instance
                settle()

            self._runtime.instantiate(
                self._scope.consumer(item_props),
                self.find_provider(item_props),
                ready_callback=on_ready,
            )

        settle()

    def _results_instances(
        self,
        results: Mapping[str, Any],
        callback: Callable[[dict[str, list[ProviderInstance | None]]], Any],
    ) -> None:
        by_provider: dict[str, list[ProviderInstance | None]] = {key: [] for key in results}
        remaining = len(results) + 1

        def settle() -> None:
            nonlocal remaining
            remaining -= 1
            if remaining == 0:
                callback(by_provider)

        for provider_key, result in results.items():

            def collected(instances: list[ProviderInstance | None], provider_key: str = provider_key) -> None:
                by_provider[provider_key] = instances
                settle()

            self._result_instances(result, collected)

        settle()
