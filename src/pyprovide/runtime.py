"""Provider runtime: the explicit registry value every operation threads through."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pyprovide._engine import instantiate as _instantiate
from pyprovide._engine import queries as _queries
from pyprovide._engine import subscriptions as _subscriptions
from pyprovide._engine.api import ProviderApi
from pyprovide.config import RuntimeConfig
from pyprovide.context import ConsumerContext, ProviderScope
from pyprovide.exceptions import ConfigurationError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance
from pyprovide.state.store import ProviderStore

_logger = logging.getLogger(__name__)

StoreFactory = Callable[..., Any]


class ProviderRuntime:
    """Owns the process-wide provider tables.

    ``global_instances`` holds instances of ``is_global`` providers shared by
    every scope; ``client_states`` stashes hydration state for providers that
    have not been instantiated yet.  Scopes created by :meth:`create_scope`
    hold the per-tree tables.  Call :meth:`reset` to tear everything down.

    Usage::

        runtime = ProviderRuntime()
        scope = runtime.create_scope([todos, users])
        consumer = scope.consumer({"query": {"todos": {"done": False}}})
        runtime.handle_queries(consumer, lambda: print(consumer.props["result"]))
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        *,
        store_factory: StoreFactory = ProviderStore,
    ) -> None:
        self._config = config or RuntimeConfig()
        self.store_factory = store_factory
        self.global_instances: dict[str, ProviderInstance] = {}
        self.client_states: dict[str, dict[str, Any]] = {}
        self._definitions: dict[int, ProviderDefinition] = {}

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    # ------------------------------------------------------------------
    # Scopes and teardown
    # ------------------------------------------------------------------

    def create_scope(
        self,
        providers: Mapping[str, ProviderDefinition | Mapping[str, Any]]
        | Iterable[ProviderDefinition | Mapping[str, Any]],
    ) -> ProviderScope:
        """Create a scope over *providers* (definitions or plain mappings).

        A mapping of providers is keyed by provider key; an iterable is keyed
        by each definition's ``key``.
        """
        items = providers.values() if isinstance(providers, Mapping) else providers
        definitions: dict[str, ProviderDefinition] = {}
        for item in items:
            definition = item if isinstance(item, ProviderDefinition) else ProviderDefinition.from_mapping(dict(item))
            if definition.key in definitions:
                raise ConfigurationError(f"Duplicate provider key {definition.key!r}")
            definitions[definition.key] = definition
        _logger.debug("Created provider scope providers=%s", list(definitions))
        return ProviderScope(self, definitions)

    def track_definition(self, definition: ProviderDefinition) -> None:
        """Remember *definition* so :meth:`reset` can drop its live instances."""
        self._definitions.setdefault(id(definition), definition)

    def reset(self) -> None:
        """Drop every instance this runtime created and any stashed hydration state.

        Definitions keep their configuration, including mirrored subscription
        edges; only their live ``instances`` lists are emptied.
        """
        dropped = 0
        for definition in self._definitions.values():
            dropped += len(definition.instances)
            definition.instances.clear()
        self._definitions.clear()
        self.global_instances.clear()
        self.client_states.clear()
        _logger.debug("Provider runtime reset dropped_instances=%s", dropped)

    def hydrate(self, states: Mapping[str, Mapping[str, Any]]) -> None:
        """Stash state for providers instantiated later, keyed by provider key."""
        for provider_key, state in states.items():
            self.client_states[provider_key] = dict(state)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def instantiate(
        self,
        consumer: ConsumerContext,
        definition: ProviderDefinition | str,
        key: _instantiate.KeySpec | None = None,
        ready_callback: _instantiate.ReadyCallback | None = None,
    ) -> ProviderInstance:
        """Create or return the live instance for ``(definition, key)``."""
        return _instantiate.instantiate_provider(self, consumer, definition, key, ready_callback)

    def resolve_queries(self, consumer: ConsumerContext) -> dict[str, Any] | None:
        """Map the consumer's queries to one sub-query per relevant provider."""
        return _queries.resolve_queries(self, consumer)

    def handle_queries(self, consumer: ConsumerContext, callback: Callable[[], Any] | None = None) -> bool:
        """Run the consumer's queries; *callback* fires once all results are in."""
        return _queries.handle_queries(self, consumer, callback)

    def subscribe(
        self,
        scope: ProviderScope,
        subscriber: ProviderDefinition | str,
        supplier: ProviderDefinition | str,
        handler: _subscriptions.Handler,
    ) -> bool:
        """Make *subscriber* instances hear about *supplier* state changes."""
        if isinstance(subscriber, str):
            subscriber = scope.definition(subscriber)
        if isinstance(supplier, str):
            supplier = scope.definition(supplier)
        return _subscriptions.register_subscription(supplier, subscriber, handler)

    def provider_api(self, scope: ProviderScope, definition: ProviderDefinition | None = None) -> ProviderApi:
        """Command surface for *scope*, as handed to thunk actions."""
        return ProviderApi(self, scope, definition)

    # ------------------------------------------------------------------
    # Async bridge
    # ------------------------------------------------------------------

    async def afind(
        self,
        scope: ProviderScope,
        props: Mapping[str, Any],
        *,
        do_instantiate: bool = False,
        timeout: float | None = None,
    ) -> Any:
        """Await :meth:`ProviderApi.find` on the running event loop.

        Replicators may answer on a later loop turn.  *timeout* falls back to
        ``config.find_timeout``; on expiry :class:`TimeoutError` is raised,
        though the underlying query keeps running for any other joiners.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def resolve(value: Any) -> None:
            if not future.done():
                future.set_result(value)

        self.provider_api(scope).find(props, resolve, do_instantiate=do_instantiate)

        effective_timeout = timeout if timeout is not None else self._config.find_timeout
        if effective_timeout is None:
            return await future
        return await asyncio.wait_for(future, effective_timeout)

    async def aget_instance(self, scope: ProviderScope, props: dict[str, Any]) -> ProviderInstance:
        """Instantiate the provider matching *props* and await its readiness."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ProviderInstance] = loop.create_future()

        def resolve(instance: ProviderInstance) -> None:
            if not future.done():
                future.set_result(instance)

        self.provider_api(scope).get_instance(props, resolve)

        if self._config.find_timeout is None:
            return await future
        return await asyncio.wait_for(future, self._config.find_timeout)
