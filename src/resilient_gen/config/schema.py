"""Configuration schema and validation using Pydantic.

Settings are read from the process environment (or passed programmatically)
and validated once. Provider credentials use the backends' conventional
variable names (``GEMINI_API_KEY``, ``ANTHROPIC_API_KEY``, ``XAI_API_KEY``).
"""

import logging
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_gen.core.types import ProviderName

from .types import FrozenConfig, ProviderCredentials

log = logging.getLogger(__name__)


class ResilienceSettings(BaseSettings):
    """Pydantic settings schema for provider selection and credentials."""

    model_config = SettingsConfigDict(
        env_file=None,  # Only used when explicitly requested
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars for forward compatibility
        populate_by_name=True,
    )

    # --- Provider selection ---

    provider: ProviderName | None = Field(
        default=None,
        description="Preferred provider (grok, gemini, claude)",
        validation_alias=AliasChoices(
            "provider", "AI_PROVIDER", "NEXT_PUBLIC_AI_PROVIDER"
        ),
    )

    # --- Per-provider credentials and model overrides ---

    gemini_api_key: str | None = Field(default=None, description="Google Gemini API key")
    gemini_base_url: str | None = Field(default=None)
    gemini_model: str | None = Field(default=None, min_length=1)

    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    anthropic_base_url: str | None = Field(default=None)
    claude_model: str | None = Field(default=None, min_length=1)

    xai_api_key: str | None = Field(default=None, description="xAI API key")
    xai_base_url: str | None = Field(default=None)
    grok_model: str | None = Field(default=None, min_length=1)

    # --- Call and batch defaults ---

    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Default per-attempt deadline when a request sets none",
        validation_alias=AliasChoices("timeout_seconds", "AI_TIMEOUT_SECONDS"),
    )
    batch_chunk_size: int = Field(
        default=100,
        ge=1,
        validation_alias=AliasChoices("batch_chunk_size", "AI_BATCH_CHUNK_SIZE"),
    )
    batch_concurrency: int = Field(
        default=6,
        ge=1,
        validation_alias=AliasChoices("batch_concurrency", "AI_BATCH_CONCURRENCY"),
    )

    # --- Validation Rules ---

    @field_validator("provider", mode="before")
    @classmethod
    def parse_provider(cls, v: Any) -> ProviderName | None:
        """Accept any casing; unknown names fall back to automatic selection."""
        if v is None or v == "":
            return None
        parsed = ProviderName.parse(v) if isinstance(v, str | ProviderName) else None
        if parsed is None:
            log.warning("Ignoring unknown AI provider %r", v)
        return parsed

    @field_validator(
        "gemini_api_key", "anthropic_api_key", "xai_api_key", mode="before"
    )
    @classmethod
    def blank_key_is_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_frozen(self) -> FrozenConfig:
        """Convert to the immutable configuration used at call sites."""
        return FrozenConfig(
            provider=self.provider,
            credentials={
                ProviderName.GEMINI: ProviderCredentials(
                    self.gemini_api_key, self.gemini_base_url, self.gemini_model
                ),
                ProviderName.CLAUDE: ProviderCredentials(
                    self.anthropic_api_key, self.anthropic_base_url, self.claude_model
                ),
                ProviderName.GROK: ProviderCredentials(
                    self.xai_api_key, self.xai_base_url, self.grok_model
                ),
            },
            timeout_seconds=self.timeout_seconds,
            batch_chunk_size=self.batch_chunk_size,
            batch_concurrency=self.batch_concurrency,
        )
