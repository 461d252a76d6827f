"""Cross-provider subscription graph.

An edge says: whenever an instance of the *supplier* changes, call the
handler with ``(supplier_instance, subscriber_instance)`` for every live
instance of the *subscriber*.  Declaring the edge on either side is enough;
it is mirrored onto the other definition the first time it is seen.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pyprovide.exceptions import UnknownProviderError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance

_logger = logging.getLogger(__name__)

Handler = Callable[[ProviderInstance, ProviderInstance], Any]


def _lookup(providers: Mapping[str, ProviderDefinition], key: str) -> ProviderDefinition:
    definition = providers.get(key)
    if definition is None:
        raise UnknownProviderError(key, f"Subscription references unknown provider {key!r}")
    return definition


def check_peers(providers: Mapping[str, ProviderDefinition], definition: ProviderDefinition) -> None:
    """Raise :class:`UnknownProviderError` if *definition* names a peer missing from *providers*."""
    for key in (*definition.subscribers, *definition.subscribe_to):
        _lookup(providers, key)


def _link(supplier: ProviderDefinition, subscriber: ProviderDefinition, handler: Handler) -> Handler:
    """Mirror the edge onto both definitions and return the handler in effect.

    The supplier's ``subscribers`` entry wins when both sides declared one.
    """
    supplier.subscribers.setdefault(subscriber.key, handler)
    subscriber.subscribe_to.setdefault(supplier.key, handler)
    return supplier.subscribers[subscriber.key]


def _attach(supplier_instance: ProviderInstance, subscriber: ProviderDefinition, handler: Handler) -> bool:
    """Attach one fan-out listener per (supplier instance, subscriber definition)."""
    if subscriber.key in supplier_instance.wired_subscribers:
        return False
    supplier_instance.wired_subscribers.add(subscriber.key)

    def on_change() -> None:
        # Evaluated at fire time so instances created later are included.
        for subscriber_instance in list(subscriber.instances):
            handler(supplier_instance, subscriber_instance)

    supplier_instance.store.subscribe(on_change)
    _logger.debug(
        "Subscription wired supplier=%s subscriber=%s",
        supplier_instance.provider_key,
        subscriber.key,
    )
    return True


def wire_instance(providers: Mapping[str, ProviderDefinition], instance: ProviderInstance) -> None:
    """Wire a freshly created instance into the graph and replay its new pairs."""
    definition = instance.definition
    declared_subscribers = list(definition.subscribers)

    for subscriber_key in declared_subscribers:
        subscriber = _lookup(providers, subscriber_key)
        handler = _link(definition, subscriber, definition.subscribers[subscriber_key])
        _attach(instance, subscriber, handler)
        for subscriber_instance in list(subscriber.instances):
            handler(instance, subscriber_instance)

    for supplier_key in list(definition.subscribe_to):
        supplier = _lookup(providers, supplier_key)
        handler = _link(supplier, definition, definition.subscribe_to[supplier_key])
        for supplier_instance in list(supplier.instances):
            _attach(supplier_instance, definition, handler)
            # The self-pair was already replayed above when the edge was declared as a subscriber.
            if supplier_instance is not instance or definition.key not in declared_subscribers:
                handler(supplier_instance, instance)


def register_subscription(
    supplier: ProviderDefinition,
    subscriber: ProviderDefinition,
    handler: Handler,
) -> bool:
    """Register an edge at runtime.

    Listeners are attached to every existing supplier instance and the
    handler is replayed once per existing (supplier, subscriber) pair.
    Returns ``False`` when either side already declares the edge.
    """
    if subscriber.key in supplier.subscribers or supplier.key in subscriber.subscribe_to:
        return False

    handler = _link(supplier, subscriber, handler)
    supplier_instances = list(supplier.instances)
    for supplier_instance in supplier_instances:
        _attach(supplier_instance, subscriber, handler)
    for supplier_instance in supplier_instances:
        for subscriber_instance in list(subscriber.instances):
            handler(supplier_instance, subscriber_instance)
    return True
