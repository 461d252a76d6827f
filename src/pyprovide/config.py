"""Runtime configuration for pyprovide."""

from __future__ import annotations

import dataclasses
import os
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_optional_float(value: str | None) -> float | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "none", "off"}:
        return None
    return float(normalized)


@dataclasses.dataclass(frozen=True)
class RuntimeConfig:
    """Provider runtime configuration.

    Parameters
    ----------
    cache_results : bool
        Keep resolved query values in the scope's result cache so later
        identical queries are answered without calling the replicator.
        Concurrent identical queries are deduplicated either way.
    log_payloads : bool
        Include (redacted) query payloads and results in DEBUG logs.
    log_max_string : int
        Strings longer than this are truncated in logged payloads.
    find_timeout : float or None
        Default number of seconds :meth:`ProviderRuntime.afind` waits for
        its queries to resolve.  ``None`` waits indefinitely.
    """

    cache_results: bool = True
    log_payloads: bool = False
    log_max_string: int = 512
    find_timeout: float | None = None

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeConfig:
        """Create configuration from ``PYPROVIDE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        if "cache_results" not in overrides:
            config_kwargs["cache_results"] = _env_bool(env.get("PYPROVIDE_CACHE_RESULTS"), True)

        if "log_payloads" not in overrides:
            config_kwargs["log_payloads"] = _env_bool(env.get("PYPROVIDE_LOG_PAYLOADS"), False)

        max_string_env = env.get("PYPROVIDE_LOG_MAX_STRING")
        if max_string_env is not None and "log_max_string" not in overrides:
            config_kwargs["log_max_string"] = int(max_string_env)

        if "find_timeout" not in overrides:
            config_kwargs["find_timeout"] = _env_optional_float(env.get("PYPROVIDE_FIND_TIMEOUT"))

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
