"""Unit tests for configuration resolution.

These tests cover:
- Reading provider keys and selection from the environment.
- Alias handling for the provider preference.
- Validation failures surfacing as ``ConfigurationError``.
- Redaction of credentials in reprs.
"""

import logging
import os
from unittest.mock import patch

import pytest

from resilient_gen.config import FrozenConfig, ProviderCredentials, resolve_config
from resilient_gen.core.exceptions import ConfigurationError
from resilient_gen.core.types import ProviderName


class TestConfigurationResolution:
    """Environment and override handling for ``resolve_config``."""

    @pytest.mark.unit
    def test_reads_keys_and_models_from_environment(self):
        with patch.dict(
            os.environ,
            {
                "GEMINI_API_KEY": "g-key",
                "GEMINI_MODEL": "gemini-custom",
                "XAI_API_KEY": "x-key",
            },
        ):
            config = resolve_config()

        assert config.is_configured(ProviderName.GEMINI)
        assert config.is_configured(ProviderName.GROK)
        assert not config.is_configured(ProviderName.CLAUDE)
        assert config.credentials_for(ProviderName.GEMINI).default_model == "gemini-custom"
        assert config.credentials_for(ProviderName.GROK).api_key == "x-key"

    @pytest.mark.unit
    def test_defaults_without_environment(self):
        config = resolve_config()

        assert config.provider is None
        assert config.timeout_seconds is None
        assert config.batch_chunk_size == 100
        assert config.batch_concurrency == 6
        assert not any(config.is_configured(name) for name in ProviderName)

    @pytest.mark.unit
    @pytest.mark.parametrize("variable", ["AI_PROVIDER", "NEXT_PUBLIC_AI_PROVIDER"])
    def test_provider_preference_aliases(self, variable):
        with patch.dict(os.environ, {variable: "Claude"}):
            assert resolve_config().provider is ProviderName.CLAUDE

    @pytest.mark.unit
    def test_server_side_alias_wins_over_public_one(self):
        with patch.dict(
            os.environ,
            {"AI_PROVIDER": "grok", "NEXT_PUBLIC_AI_PROVIDER": "gemini"},
        ):
            assert resolve_config().provider is ProviderName.GROK

    @pytest.mark.unit
    def test_unknown_provider_is_ignored_with_warning(self, caplog):
        with (
            patch.dict(os.environ, {"AI_PROVIDER": "openai"}),
            caplog.at_level(logging.WARNING),
        ):
            config = resolve_config()

        assert config.provider is None
        assert "openai" in caplog.text

    @pytest.mark.unit
    def test_blank_api_key_counts_as_missing(self):
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "   "}):
            config = resolve_config()

        assert config.credentials_for(ProviderName.CLAUDE).api_key is None
        assert not config.is_configured(ProviderName.CLAUDE)

    @pytest.mark.unit
    def test_overrides_take_precedence_over_environment(self):
        with patch.dict(os.environ, {"AI_PROVIDER": "gemini", "GEMINI_API_KEY": "env"}):
            config = resolve_config(provider="grok", gemini_api_key="explicit")

        assert config.provider is ProviderName.GROK
        assert config.credentials_for(ProviderName.GEMINI).api_key == "explicit"

    @pytest.mark.unit
    def test_batch_and_timeout_settings(self):
        with patch.dict(
            os.environ,
            {
                "AI_TIMEOUT_SECONDS": "30",
                "AI_BATCH_CHUNK_SIZE": "25",
                "AI_BATCH_CONCURRENCY": "2",
            },
        ):
            config = resolve_config()

        assert config.timeout_seconds == 30.0
        assert config.batch_chunk_size == 25
        assert config.batch_concurrency == 2

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "overrides",
        [
            {"timeout_seconds": 0},
            {"timeout_seconds": "soon"},
            {"batch_chunk_size": 0},
            {"batch_concurrency": -1},
        ],
    )
    def test_invalid_values_raise_configuration_error(self, overrides):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            resolve_config(**overrides)


class TestFrozenConfig:
    """Immutability and safe representation."""

    @pytest.mark.unit
    def test_credentials_mapping_is_read_only(self):
        config = FrozenConfig(
            credentials={ProviderName.GEMINI: ProviderCredentials("secret")}
        )

        with pytest.raises(TypeError):
            config.credentials[ProviderName.GROK] = ProviderCredentials("x")  # type: ignore[index]

    @pytest.mark.unit
    def test_repr_redacts_api_key(self):
        creds = ProviderCredentials("super-secret", default_model="m")

        text = repr(creds)

        assert "super-secret" not in text
        assert "[REDACTED]" in text
        assert "default_model='m'" in text

    @pytest.mark.unit
    def test_unknown_provider_has_empty_credentials(self):
        config = FrozenConfig()
        assert config.credentials_for(ProviderName.GROK) == ProviderCredentials()
