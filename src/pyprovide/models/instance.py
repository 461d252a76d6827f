"""Live provider instances."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pyprovide.models.definition import ProviderDefinition
from pyprovide.state.ready import ReadyQueue

_logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProviderInstance:
    """One keyed materialization of a :class:`ProviderDefinition`.

    Static fields are read through to the definition unless shadowed by an
    entry in ``overrides``; use :meth:`lookup` for that resolution.  The
    frequently used ones are exposed as properties.
    """

    definition: ProviderDefinition = field(repr=False)
    provider_key: str
    is_static: bool
    store: Any = field(default=None, repr=False)
    action_creators: dict[str, Callable[..., Any]] = field(default_factory=dict, repr=False)
    ready: bool = False
    on_ready: ReadyQueue = field(default_factory=ReadyQueue, repr=False)
    overrides: dict[str, Any] = field(default_factory=dict, repr=False)
    wired_subscribers: set[str] = field(default_factory=set, repr=False)

    def lookup(self, name: str) -> Any:
        """Resolve *name* from instance overrides, falling back to the definition."""
        if name in self.overrides:
            return self.overrides[name]
        return getattr(self.definition, name)

    @property
    def key(self) -> str:
        return self.lookup("key")

    @property
    def reducers(self) -> dict[str, Any]:
        return self.lookup("reducers")

    @property
    def actions(self) -> dict[str, Callable[..., Any]]:
        return self.lookup("actions")

    @property
    def is_global(self) -> bool:
        return self.lookup("is_global")

    def get_state(self) -> dict[str, Any]:
        return self.store.get_state()

    def set_key(self, new_key: str, ready_callback: Callable[[], Any] | None = None) -> None:
        """Re-key the store, then re-fire ready callbacks.

        ``wait`` hooks run first; once the store has replicated the state for
        *new_key* the ready queue fires, then *ready_callback*, then the
        ``clear`` hooks with ``True``.
        """
        definition = self.definition
        for fn in definition.wait:
            fn()

        def rekeyed() -> None:
            _logger.debug("Provider instance re-keyed key=%s store_key=%s", self.provider_key, new_key)
            self.on_ready.fire(self)
            if ready_callback is not None:
                ready_callback()
            for fn in definition.clear:
                fn(True)

        self.store.set_key(new_key, rekeyed)
