"""Query resolution and execution for :class:`pyprovide.runtime.ProviderRuntime`.

A consumer declares a flat ``query`` (fanned out to every provider whose
reducers overlap its field names), an explicit ``queries`` mapping keyed by
provider, or both.  Each provider-level query is keyed by a structural
serialization of ``{query, options}``: resolved keys are answered from the
scope's cache, in-flight keys are joined, and only cold keys reach a
replicator's ``handle_query``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from pyprovide._constants import (
    QUERIES_PROP,
    QUERY_PROP,
    RESULT_PROP,
    RESULTS_PROP,
    SELECT_OPTION,
)
from pyprovide._equality import shallow_equal
from pyprovide._keys import relevant_keys, result_key
from pyprovide._redact import redact_for_log
from pyprovide.context import ConsumerContext, ResultHandler
from pyprovide.exceptions import ConfigurationError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.state.replication import QueryHandler, find_query_handler

if TYPE_CHECKING:
    from pyprovide.runtime import ProviderRuntime

_logger = logging.getLogger(__name__)


def merge_results(results: Mapping[str, Any]) -> Any:
    """Merge per-provider results into one value, in provider order.

    Lists concatenate and mappings shallow-merge (later providers win on
    key collisions).  A container always beats a scalar; scalars only
    survive when no provider returned a container, and then the last one
    wins.  When both lists and mappings appear, the later kind replaces the
    earlier one.
    """
    merged: Any = None
    for result in results.values():
        if isinstance(result, (list, tuple)):
            merged = [*(merged if isinstance(merged, list) else []), *result]
        elif isinstance(result, Mapping):
            merged = {**(merged if isinstance(merged, dict) else {}), **result}
        elif result is not None and not isinstance(merged, (list, dict)):
            merged = result
    return merged


def _merge_sub_query(consumer: ConsumerContext, existing: Any, query: Mapping[str, Any], fields: list[str]) -> dict:
    if callable(existing):
        existing = existing(consumer)
    merged = dict(existing) if isinstance(existing, Mapping) else {}
    for field in fields:
        merged[field] = query[field]
    return merged


def resolve_queries(runtime: ProviderRuntime, consumer: ConsumerContext) -> dict[str, Any] | None:
    """Map the consumer's declared queries to one sub-query per relevant provider.

    Every relevant provider is instantiated.  Returns ``None`` (and clears
    stale results on the props) when nothing is relevant.  Memoized on the
    consumer.
    """
    if consumer.is_memoized(QUERIES_PROP):
        return consumer.memoized(QUERIES_PROP)

    props = consumer.props
    providers = consumer.providers
    query = consumer.query
    queries = consumer.function_or_object(QUERIES_PROP)

    if queries and not callable(props.get(QUERIES_PROP)):
        # Never write into a mapping the host may share between consumers.
        queries = dict(queries)

    if query:
        if not queries:
            queries = {}
        for provider_key, definition in providers.items():
            fields = relevant_keys(definition.reducers, query)
            if fields:
                queries[provider_key] = _merge_sub_query(consumer, queries.get(provider_key), query, fields)

    has_queries = False
    for provider_key in list(queries or ()):
        sub_query = queries[provider_key]
        if callable(sub_query):
            queries[provider_key] = sub_query(consumer)
        # A store must exist before the query runs against it.
        runtime.instantiate(consumer, consumer.definition(provider_key))
        has_queries = True

    if not has_queries:
        queries = None
        if props.get(QUERY_PROP):
            props[RESULT_PROP] = None
        if props.get(QUERIES_PROP):
            props[RESULTS_PROP] = {}

    return consumer.memoize(QUERIES_PROP, queries)


def _options_for(consumer: ConsumerContext, provider_key: str) -> dict[str, Any]:
    options = consumer.query_options or consumer.queries_options.get(provider_key) or {}
    # Copied: ``select`` is defaulted per provider below.
    return dict(options)


_PlannedQuery = tuple[str, Any, ProviderDefinition, dict[str, Any], str, QueryHandler | None]


def _missing_handler_message(provider_key: str) -> str:
    return f"Provider {provider_key!r} has no replicator with a handle_query method"


def _plan_queries(
    consumer: ConsumerContext,
    queries: Mapping[str, Any],
    query_results: Mapping[str, Any],
    active_queries: Mapping[str, Any],
) -> list[_PlannedQuery]:
    """Compute ``(provider_key, query, definition, options, key, handler)`` per provider.

    Raises before anything runs when a key cannot be built or a cold query
    has no handler.  A query that joins one planned earlier in the same pass
    needs no handler of its own.
    """
    planned: list[_PlannedQuery] = []
    issuing: set[str] = set()
    for provider_key, sub_query in queries.items():
        definition = consumer.definition(provider_key)
        options = _options_for(consumer, provider_key)
        key = result_key(sub_query, options, provider_key=provider_key)
        query_handler = find_query_handler(definition.replication, definition.reducers)
        if key not in query_results and key not in active_queries and key not in issuing:
            if query_handler is None:
                raise ConfigurationError(_missing_handler_message(provider_key))
            issuing.add(key)
        planned.append((provider_key, sub_query, definition, options, key, query_handler))
    return planned


def handle_queries(
    runtime: ProviderRuntime,
    consumer: ConsumerContext,
    callback: Callable[[], Any] | None = None,
) -> bool:
    """Resolve, deduplicate and execute the consumer's queries.

    *callback* runs once every relevant provider has answered (immediately
    when nothing is relevant).  Returns whether any query was issued.
    """
    queries = resolve_queries(runtime, consumer)

    if not queries:
        if callback is not None:
            callback()
        return False

    config = runtime.config
    props = consumer.props
    query = consumer.query
    active_queries = consumer.active_queries
    query_results = consumer.query_results
    previous_results: Mapping[str, Any] = props.get(RESULTS_PROP) or {}

    # Keys and handlers are resolved up front so a bad provider fails the
    # whole pass before any wait hook runs, prop is written or query is issued.
    planned = _plan_queries(consumer, queries, query_results, active_queries)

    def log_payload(value: Any) -> Any:
        if not config.log_payloads:
            return "<hidden>"
        return redact_for_log(value, max_string=config.log_max_string)

    # Seeded so synchronous completions cannot finish the join before every
    # provider has been enumerated.
    remaining = len(queries) + 1

    def settle() -> None:
        nonlocal remaining
        remaining -= 1
        if remaining:
            return

        if query:
            props[RESULT_PROP] = merge_results(results)

        if consumer.do_update and consumer.update is not None:
            consumer.update()

        if callback is not None:
            callback()

    if query:
        props[RESULT_PROP] = None
    results: dict[str, Any] = {}
    props[RESULTS_PROP] = results

    def result_handler(provider_key: str, definition: ProviderDefinition, key: str) -> ResultHandler:
        def handle_result(value: Any) -> None:
            if not consumer.do_update and not shallow_equal(value, previous_results.get(provider_key)):
                consumer.do_update = True

            results[provider_key] = value
            if config.cache_results:
                query_results[key] = value

            settle()

            for fn in definition.clear:
                fn(consumer.do_update)

        return handle_result

    def on_result(key: str, pending: list[ResultHandler]) -> Callable[[Any], None]:
        def deliver(value: Any) -> None:
            if active_queries.get(key) is pending:
                del active_queries[key]
            _logger.debug("Query resolved handlers=%s result=%s", len(pending), log_payload(value))
            while pending:
                pending.pop(0)(value)

        return deliver

    for provider_key, sub_query, definition, options, key, query_handler in planned:
        if key in query_results:
            _logger.debug("Query cache hit provider=%s", provider_key)
            results[provider_key] = query_results[key]
            settle()
            continue

        pending = active_queries.get(key)
        if pending is None and query_handler is None:
            raise ConfigurationError(_missing_handler_message(provider_key))

        for fn in definition.wait:
            fn()

        handler = result_handler(provider_key, definition, key)

        if pending is not None:
            _logger.debug("Query joined in-flight provider=%s", provider_key)
            pending.append(handler)
            continue

        assert query_handler is not None  # noqa: S101
        select = options.get(SELECT_OPTION)
        if select is None:
            options[SELECT_OPTION] = list(query_handler.reducer_keys)
        elif isinstance(select, (list, tuple)):
            options[SELECT_OPTION] = list(select)
        else:
            options[SELECT_OPTION] = [select]

        pending = [handler]
        active_queries[key] = pending
        _logger.debug(
            "Query issued provider=%s query=%s options=%s",
            provider_key,
            log_payload(sub_query),
            log_payload(options),
        )
        query_handler.handle_query(sub_query, options, on_result(key, pending))

    settle()
    return True
