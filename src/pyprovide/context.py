"""Provider scopes and consumer contexts.

A :class:`ProviderScope` is the per-consumer-tree registry: the known
provider definitions, the instances materialized for that tree, and the
shared query cache.  A :class:`ConsumerContext` wraps one consumer's props
for a single resolution pass and memoizes what it derives from them.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from pyprovide._constants import QUERIES_OPTIONS_PROP, QUERY_OPTIONS_PROP, QUERY_PROP
from pyprovide.exceptions import UnknownProviderError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance

if TYPE_CHECKING:
    from pyprovide.runtime import ProviderRuntime

ResultHandler = Callable[[Any], None]


class ProviderScope:
    """Registry tables shared by every consumer of one tree."""

    def __init__(self, runtime: ProviderRuntime, providers: Mapping[str, ProviderDefinition]) -> None:
        self.runtime = runtime
        self.providers: dict[str, ProviderDefinition] = dict(providers)
        self.provider_instances: dict[str, ProviderInstance] = {}
        # result key -> handlers waiting on the in-flight query
        self.active_queries: dict[str, list[ResultHandler]] = {}
        # result key -> resolved value
        self.query_results: dict[str, Any] = {}

    def definition(self, key: str) -> ProviderDefinition:
        definition = self.providers.get(key)
        if definition is None:
            raise UnknownProviderError(key)
        return definition

    def consumer(
        self,
        props: dict[str, Any] | None = None,
        *,
        update: Callable[[], Any] | None = None,
    ) -> ConsumerContext:
        return ConsumerContext(self, props, update=update)


class ConsumerContext:
    """One consumer's view for a single render/update pass.

    Results are written back into ``props`` (``props["result"]`` for a flat
    query, ``props["results"]`` keyed by provider).  ``update`` is called
    after a pass whose results differ from the previous ones.
    """

    def __init__(
        self,
        scope: ProviderScope,
        props: dict[str, Any] | None = None,
        *,
        update: Callable[[], Any] | None = None,
    ) -> None:
        self.scope = scope
        self.props: dict[str, Any] = props if props is not None else {}
        self.update = update
        self.do_update = False
        self.relevant_providers: dict[str, bool] = {}
        self._memo: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"ConsumerContext(props={sorted(self.props)!r})"

    # ------------------------------------------------------------------
    # Memoized lookups
    # ------------------------------------------------------------------

    def _from_props_or_scope(self, name: str, scope_value: Any) -> Any:
        if name not in self._memo:
            value = self.props.get(name)
            self._memo[name] = value if value is not None else scope_value
        return self._memo[name]

    @property
    def providers(self) -> dict[str, ProviderDefinition]:
        return self._from_props_or_scope("providers", self.scope.providers)

    @property
    def provider_instances(self) -> dict[str, ProviderInstance]:
        return self._from_props_or_scope("provider_instances", self.scope.provider_instances)

    @property
    def active_queries(self) -> dict[str, list[ResultHandler]]:
        return self._from_props_or_scope("active_queries", self.scope.active_queries)

    @property
    def query_results(self) -> dict[str, Any]:
        return self._from_props_or_scope("query_results", self.scope.query_results)

    def function_or_object(self, name: str, default: Any = None) -> Any:
        """Read ``props[name]``, calling it with this context when it is callable.

        The value is computed once per context.
        """
        if name in self._memo:
            return self._memo[name]

        value = self.props.get(name)
        if callable(value):
            value = value(self)

        self._memo[name] = value or default
        return self._memo[name]

    @property
    def query(self) -> dict[str, Any] | None:
        return self.function_or_object(QUERY_PROP)

    @property
    def query_options(self) -> dict[str, Any] | None:
        return self.function_or_object(QUERY_OPTIONS_PROP)

    @property
    def queries_options(self) -> dict[str, Any]:
        return self.function_or_object(QUERIES_OPTIONS_PROP, {})

    def is_memoized(self, name: str) -> bool:
        return name in self._memo

    def memoized(self, name: str) -> Any:
        return self._memo[name]

    def memoize(self, name: str, value: Any) -> Any:
        self._memo[name] = value
        return value

    def definition(self, key: str) -> ProviderDefinition:
        definition = self.providers.get(key)
        if definition is None:
            raise UnknownProviderError(key)
        return definition
