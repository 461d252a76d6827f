"""Provider instantiation for :class:`pyprovide.runtime.ProviderRuntime`.

Creates or returns the single live instance for a (definition, key) pair,
builds its store and action creators, wires subscriptions and sequences
readiness.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pyprovide._engine.api import ProviderApi
from pyprovide._engine.subscriptions import check_peers, wire_instance
from pyprovide.context import ConsumerContext
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance
from pyprovide.state.ready import ReadyQueue

if TYPE_CHECKING:
    from pyprovide.runtime import ProviderRuntime

_logger = logging.getLogger(__name__)

KeySpec = str | Callable[[ConsumerContext], str]
ReadyCallback = Callable[[ProviderInstance], Any]


def resolve_provider_key(
    consumer: ConsumerContext,
    definition: ProviderDefinition,
    key: KeySpec | None,
) -> tuple[str, bool]:
    """Return ``(provider_key, is_static)`` for an instantiation request."""
    if key is None:
        key = definition.key_from or definition.key
    if not callable(key):
        return key, True
    provider_key = key(consumer)
    # A computed key that lands on the definition's own key is the static instance.
    return provider_key, provider_key == definition.key


def _bind_action(store: Any, creator: Callable[..., Any]) -> Callable[..., Any]:
    def action_creator(*args: Any, **kwargs: Any) -> Any:
        return store.dispatch(creator(*args, **kwargs))

    action_creator.__name__ = getattr(creator, "__name__", "action_creator")
    action_creator.__doc__ = getattr(creator, "__doc__", None)
    return action_creator


def _create_store(
    runtime: ProviderRuntime,
    consumer: ConsumerContext,
    instance: ProviderInstance,
) -> Any:
    definition = instance.definition
    initial_state = dict(definition.state)
    hydrated = runtime.client_states.pop(instance.provider_key, None)
    if hydrated:
        _logger.debug("Hydrating provider key=%s keys=%s", instance.provider_key, sorted(hydrated))
        initial_state.update(hydrated)

    return runtime.store_factory(
        definition.reducers,
        key=instance.provider_key,
        initial_state=initial_state,
        middleware=definition.middleware,
        replication=definition.replication,
        extra=ProviderApi(runtime, consumer.scope, definition),
    )


def instantiate_provider(
    runtime: ProviderRuntime,
    consumer: ConsumerContext,
    definition: ProviderDefinition | str,
    key: KeySpec | None = None,
    ready_callback: ReadyCallback | None = None,
) -> ProviderInstance:
    if isinstance(definition, str):
        definition = consumer.definition(definition)

    provider_key, is_static = resolve_provider_key(consumer, definition, key)

    table = runtime.global_instances if definition.is_global else consumer.provider_instances
    instance = table.get(provider_key)
    consumer.relevant_providers[provider_key] = True

    if instance is not None:
        if ready_callback is not None:
            if instance.ready:
                ready_callback(instance)
            else:
                instance.on_ready.push(ready_callback)
        return instance

    # Nothing may be registered for an instance that cannot be wired.
    check_peers(consumer.providers, definition)

    # No-op unless the definition was built without validation (model_construct).
    definition.install_thunk_interceptor()

    for fn in definition.wait:
        fn()

    instance = ProviderInstance(
        definition=definition,
        provider_key=provider_key,
        is_static=is_static,
        on_ready=ReadyQueue(definition.on_ready),
    )
    store = _create_store(runtime, consumer, instance)
    initial_state = store.get_state()
    instance.store = store
    instance.action_creators = {
        action_key: _bind_action(store, creator) for action_key, creator in definition.actions.items()
    }

    if definition.is_global:
        runtime.global_instances[provider_key] = instance
    consumer.provider_instances[provider_key] = instance
    definition.instances.append(instance)
    runtime.track_definition(definition)
    _logger.debug(
        "Instantiated provider definition=%s key=%s static=%s global=%s",
        definition.key,
        provider_key,
        is_static,
        definition.is_global,
    )

    wire_instance(consumer.providers, instance)

    for fn in definition.on_instantiated:
        fn(instance)

    def mark_ready(ready_instance: ProviderInstance) -> None:
        ready_instance.ready = True

    instance.on_ready.unshift(mark_ready)
    if ready_callback is not None:
        instance.on_ready.push(ready_callback)

    def done() -> None:
        _logger.debug("Provider ready key=%s", provider_key)
        instance.on_ready.fire(instance)
        if definition.clear:
            changed = initial_state is not store.get_state()
            for fn in definition.clear:
                fn(changed)

    store_on_ready = getattr(store, "on_ready", None)
    if definition.replication and callable(store_on_ready) and not getattr(store, "initialized_replication", False):
        store_on_ready(done)
    else:
        done()

    return instance
