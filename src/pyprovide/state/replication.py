"""Replicator collaborator interface and query-handler discovery."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

OnResult = Callable[[Any], None]
QueryHandlerFn = Callable[[Any, dict[str, Any], OnResult], Any]


class Replicator(Protocol):
    """Structural interface of a replicator.

    Every method is optional; the engine probes for them with ``getattr``.

    ``get_initial_state(key, reducer_keys, set_state)``
        Fetch the replicated state for *key* and call ``set_state`` exactly
        once (with a mapping, or ``None`` when there is nothing stored).
    ``on_state_change(key, reducer_keys, state, next_state, action)``
        Observe every store change.
    ``handle_query(query, options, on_result)``
        Service a query and call ``on_result`` exactly once.
    """


class ReplicationNodeLike(Protocol):
    replicator: Sequence[Any]
    reducer_keys: Sequence[str] | None


@dataclass(frozen=True, slots=True)
class QueryHandler:
    """The first ``handle_query`` found in a provider's replication tree."""

    handle_query: QueryHandlerFn
    reducer_keys: list[str]


def node_reducer_keys(node: ReplicationNodeLike, reducers: Mapping[str, Any]) -> list[str]:
    if node.reducer_keys is not None:
        return list(node.reducer_keys)
    return list(reducers)


def find_query_handler(
    replication: Iterable[ReplicationNodeLike] | None,
    reducers: Mapping[str, Any],
) -> QueryHandler | None:
    """Depth-first search of ``replication[].replicator[]`` for a query handler."""
    for node in replication or ():
        for replicator in node.replicator:
            handle_query = getattr(replicator, "handle_query", None)
            if callable(handle_query):
                return QueryHandler(
                    handle_query=handle_query,
                    reducer_keys=node_reducer_keys(node, reducers),
                )
    return None
