"""Configuration for the resilience layer.

Resolve once with ``resolve_config()``, then hand the resulting
``FrozenConfig`` to ``ProviderRegistry``.
"""

from .api import resolve_config
from .schema import ResilienceSettings
from .types import FrozenConfig, ProviderCredentials

__all__ = [
    "FrozenConfig",
    "ProviderCredentials",
    "ResilienceSettings",
    "resolve_config",
]
