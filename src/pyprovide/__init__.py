"""pyprovide - Dependency-aware data-provider orchestration."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyprovide")
except PackageNotFoundError:
    __version__ = "0+local"
from pyprovide._engine.api import ProviderApi
from pyprovide._engine.queries import merge_results
from pyprovide.config import RuntimeConfig
from pyprovide.context import ConsumerContext, ProviderScope
from pyprovide.exceptions import (
    ConfigurationError,
    ProvideError,
    QueryKeyError,
    UnknownProviderError,
)
from pyprovide.models import (
    ProviderAction,
    ProviderDefinition,
    ProviderInstance,
    ReplicationNode,
)
from pyprovide.runtime import ProviderRuntime
from pyprovide.state.ready import ReadyQueue
from pyprovide.state.replication import Replicator
from pyprovide.state.store import ProviderStore

__all__ = [
    "__version__",
    "ConfigurationError",
    "ConsumerContext",
    "ProvideError",
    "ProviderAction",
    "ProviderApi",
    "ProviderDefinition",
    "ProviderInstance",
    "ProviderRuntime",
    "ProviderScope",
    "ProviderStore",
    "QueryKeyError",
    "ReadyQueue",
    "ReplicationNode",
    "Replicator",
    "RuntimeConfig",
    "UnknownProviderError",
    "merge_results",
]
