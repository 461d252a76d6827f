"""Provider definitions.

A :class:`ProviderDefinition` is configuration: it is created once, owned by
the host, and shared by every instance materialized from it.  Fields that
accept "a callback or a list of callbacks" are normalized to lists here, so
the engine never branches on the shape again.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator

from pyprovide.exceptions import ConfigurationError
from pyprovide.state.middleware import make_thunk_interceptor

Reducer = Callable[[Any, Any], Any]
Handler = Callable[[Any, Any], Any]


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if callable(value) or isinstance(value, (dict, BaseModel)):
        return [value]
    return value


class ReplicationNode(BaseModel):
    """One entry of a provider's replication tree.

    ``replicator`` objects are duck-typed (see
    :class:`pyprovide.state.replication.Replicator`).  ``reducer_keys``
    limits the state slice they replicate; ``None`` means every reducer.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    replicator: list[Any] = Field(min_length=1)
    reducer_keys: list[str] | None = None

    @field_validator("replicator", mode="before")
    @classmethod
    def _wrap_single_replicator(cls, value: Any) -> Any:
        if value is None or isinstance(value, (list, tuple)):
            return value
        return [value]


class ProviderDefinition(BaseModel):
    """Static description of a provider.

    Instances read through to these fields; see
    :meth:`pyprovide.models.instance.ProviderInstance.lookup`.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    key: str = Field(min_length=1)
    key_from: Callable[[Any], str] | None = None
    reducers: dict[str, Reducer] = Field(default_factory=dict)
    actions: dict[str, Callable[..., Any]] = Field(default_factory=dict)
    state: dict[str, Any] = Field(default_factory=dict)
    middleware: list[Callable[..., Any]] = Field(default_factory=list)
    is_global: bool = False
    wait: list[Callable[[], Any]] = Field(default_factory=list)
    clear: list[Callable[[bool], Any]] = Field(default_factory=list)
    on_ready: list[Callable[[Any], Any]] = Field(default_factory=list)
    on_instantiated: list[Callable[[Any], Any]] = Field(default_factory=list)
    replication: list[ReplicationNode] | None = None
    subscribers: dict[str, Handler] = Field(default_factory=dict)
    subscribe_to: dict[str, Handler] = Field(default_factory=dict)
    instances: list[Any] = Field(default_factory=list, exclude=True, repr=False)

    _thunk_installed: bool = PrivateAttr(default=False)

    @field_validator("middleware", "wait", "clear", "on_ready", "on_instantiated", mode="before")
    @classmethod
    def _normalize_callbacks(cls, value: Any) -> Any:
        return _as_list(value)

    @field_validator("replication", mode="before")
    @classmethod
    def _normalize_replication(cls, value: Any) -> Any:
        if value is None:
            return None
        return _as_list(value)

    def model_post_init(self, __context: Any) -> None:
        self.install_thunk_interceptor()

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ProviderDefinition:
        """Validate a plain mapping, raising :class:`ConfigurationError` on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid provider definition {data.get('key')!r}: {exc}") from exc

    @property
    def thunk_installed(self) -> bool:
        return self._thunk_installed

    def install_thunk_interceptor(self) -> bool:
        """Prepend the thunk interceptor to ``middleware`` once.

        Returns ``False`` when it was already installed.
        """
        if self._thunk_installed:
            return False
        self._thunk_installed = True
        self.middleware.insert(0, make_thunk_interceptor(lambda: self.wait, lambda: self.clear))
        return True

    @property
    def reducer_keys(self) -> list[str]:
        return list(self.reducers)
