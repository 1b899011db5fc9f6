"""Backend adapters, the model cascade and error classification."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Protocol

from resilient_gen.config.types import ProviderCredentials
from resilient_gen.core.types import ProviderName
from resilient_gen.telemetry import TelemetryContextProtocol

from .base import ModelCascade, ProviderAdapter
from .claude import ClaudeAdapter
from .classification import (
    RetryClass,
    classify,
    error_kind,
    is_retryable,
    should_cascade,
)
from .gemini import GeminiAdapter
from .grok import GrokAdapter


class AdapterFactory(Protocol):
    """Builds an adapter from one provider's credentials."""

    def __call__(  # noqa: D102
        self,
        credentials: ProviderCredentials,
        *,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> ProviderAdapter: ...


ADAPTER_FACTORIES: Mapping[ProviderName, AdapterFactory] = MappingProxyType(
    {
        ProviderName.GEMINI: GeminiAdapter,
        ProviderName.CLAUDE: ClaudeAdapter,
        ProviderName.GROK: GrokAdapter,
    }
)

__all__ = [  # noqa: RUF022
    "ProviderAdapter",
    "ModelCascade",
    "AdapterFactory",
    "ADAPTER_FACTORIES",
    "GeminiAdapter",
    "ClaudeAdapter",
    "GrokAdapter",
    "RetryClass",
    "classify",
    "error_kind",
    "is_retryable",
    "should_cascade",
]
