"""Public configuration entry point."""

from typing import Any

from pydantic import ValidationError

from resilient_gen.core.exceptions import ConfigurationError

from .schema import ResilienceSettings
from .types import FrozenConfig


def resolve_config(**overrides: Any) -> FrozenConfig:
    """Resolve configuration from the environment plus programmatic overrides.

    Overrides use field names (``provider="gemini"``, ``gemini_api_key=...``)
    and take precedence over environment variables.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    try:
        settings = ResilienceSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    return settings.to_frozen()
