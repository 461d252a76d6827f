"""Custom exception hierarchy for pyprovide."""

from __future__ import annotations


class ProvideError(Exception):
    """Base exception for all pyprovide errors."""


class ConfigurationError(ProvideError):
    """Invalid provider configuration.

    Raised for malformed provider definitions and for providers that are
    queried without any replicator exposing ``handle_query``.  Failing here
    keeps joined consumers from waiting on a query that can never resolve.
    """


class UnknownProviderError(ConfigurationError):
    """A provider key was referenced that has no definition in scope."""

    def __init__(self, key: str, message: str = "") -> None:
        self.key = key
        super().__init__(message or f"No provider definition for key {key!r}")


class QueryKeyError(ProvideError):
    """A query or its options could not be serialized into a result key.

    Result keys are structural JSON serializations, so callables, cyclic
    structures and mappings with mixed-type keys are rejected.
    """

    def __init__(self, message: str, *, provider_key: str = "") -> None:
        self.provider_key = provider_key
        super().__init__(message)
