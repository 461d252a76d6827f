"""Request models for the cross-provider command surface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProviderAction(BaseModel):
    """An action addressed to one provider instance by key (``dispatch_all``)."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    provider_key: str = Field(min_length=1)
    action: Any
