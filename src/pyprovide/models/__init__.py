"""Provider definition, instance and command models."""

from pyprovide.models.commands import ProviderAction
from pyprovide.models.definition import ProviderDefinition, ReplicationNode
from pyprovide.models.instance import ProviderInstance

__all__ = [
    "ProviderAction",
    "ProviderDefinition",
    "ProviderInstance",
    "ReplicationNode",
]
