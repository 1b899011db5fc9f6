"""Core configuration data types.

Configuration is resolved once, frozen, and passed to the registry; nothing
below reads the environment again.
"""

from collections.abc import Mapping
import dataclasses
from types import MappingProxyType

from resilient_gen.core.types import ProviderName


@dataclasses.dataclass(frozen=True, slots=True)
class ProviderCredentials:
    """Opaque credential bundle for one provider."""

    api_key: str | None = None
    base_url: str | None = None
    default_model: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def __repr__(self) -> str:
        """Repr with redacted API key for safe logging."""
        key_display = "[REDACTED]" if self.api_key else None
        return (
            f"ProviderCredentials(api_key={key_display!r}, "
            f"base_url={self.base_url!r}, default_model={self.default_model!r})"
        )


@dataclasses.dataclass(frozen=True, slots=True)
class FrozenConfig:
    """Immutable configuration consumed by the registry and dispatcher."""

    provider: ProviderName | None = None
    credentials: Mapping[ProviderName, ProviderCredentials] = dataclasses.field(
        default_factory=dict
    )
    timeout_seconds: float | None = None
    batch_chunk_size: int = 100
    batch_concurrency: int = 6

    def __post_init__(self) -> None:
        if not isinstance(self.credentials, MappingProxyType):
            object.__setattr__(
                self, "credentials", MappingProxyType(dict(self.credentials))
            )

    def credentials_for(self, name: ProviderName) -> ProviderCredentials:
        return self.credentials.get(name) or ProviderCredentials()

    def is_configured(self, name: ProviderName) -> bool:
        return self.credentials_for(name).is_configured
