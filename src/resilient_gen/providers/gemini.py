"""Gemini adapter built on the ``google-genai`` SDK.

Structured output uses Gemini's native ``response_schema`` with
``response_mime_type="application/json"``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from google import genai
from google.genai import types

from resilient_gen.config.types import ProviderCredentials
from resilient_gen.core.exceptions import (
    ErrorKind,
    GenerationError,
    ProviderNotConfiguredError,
    SchemaConversionError,
)
from resilient_gen.core.types import GenerationRequest, GenerationResult, Usage
from resilient_gen.providers.base import ModelCascade
from resilient_gen.schema import to_gemini_schema
from resilient_gen.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

PROVIDER_NAME = "gemini"
MODEL_CASCADE: tuple[str, ...] = (
    "gemini-2.5-flash-lite",
    "gemini-3-flash",
    "gemini-3-pro",
)


def _usage_from_metadata(metadata: Any, latency_ms: float) -> Usage:
    if metadata is None:
        return Usage(latency_ms=latency_ms)
    return Usage.from_counts(
        getattr(metadata, "prompt_token_count", None),
        getattr(metadata, "candidates_token_count", None),
        getattr(metadata, "total_token_count", None),
        latency_ms,
    )


class GeminiAdapter:
    """Adapter for Google's Gemini models."""

    name = PROVIDER_NAME

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        client: genai.Client | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        if client is None and not credentials.is_configured:
            raise ProviderNotConfiguredError(
                PROVIDER_NAME,
                "GEMINI_API_KEY is required to use the Gemini provider. "
                "Set the environment variable and try again.",
            )
        if client is None:
            http_options = (
                types.HttpOptions(base_url=credentials.base_url)
                if credentials.base_url
                else None
            )
            client = genai.Client(api_key=credentials.api_key, http_options=http_options)
        self._client = client
        self.cascade = ModelCascade.build(
            PROVIDER_NAME, MODEL_CASCADE, credentials.default_model, telemetry
        )
        self.default_model = self.cascade.first

    @property
    def models(self) -> tuple[str, ...]:
        return self.cascade.models

    def build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        """Translate request options into a ``GenerateContentConfig``.

        Raises:
            SchemaConversionError: If the schema has no Gemini representation.
        """
        fields: dict[str, Any] = {}
        if request.temperature is not None:
            fields["temperature"] = request.temperature
        if request.top_p is not None:
            fields["top_p"] = request.top_p
        if request.max_output_tokens is not None:
            fields["max_output_tokens"] = request.max_output_tokens
        if request.system_instruction:
            fields["system_instruction"] = request.system_instruction
        if request.schema is not None:
            try:
                fields["response_schema"] = to_gemini_schema(request.schema)
            except SchemaConversionError as e:
                logger.error("[Gemini] Failed to convert schema: %s", e.message)
                e.provider = PROVIDER_NAME
                raise
            fields["response_mime_type"] = "application/json"
        return types.GenerateContentConfig(**fields)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        # Schema conversion is fatal and model-independent; do it once.
        config = self.build_config(request)

        async def attempt(model: str) -> GenerationResult:
            started = time.perf_counter()
            response = await self._client.aio.models.generate_content(
                model=model, contents=request.prompt, config=config
            )
            latency_ms = (time.perf_counter() - started) * 1000
            text = response.text
            if not isinstance(text, str) or not text.strip():
                raise GenerationError(
                    ErrorKind.EMPTY_RESPONSE,
                    f"Gemini model {model} returned an empty response",
                    provider=PROVIDER_NAME,
                    model=model,
                )
            usage = _usage_from_metadata(
                getattr(response, "usage_metadata", None), latency_ms
            )
            reported = getattr(response, "model_version", None)
            logger.info(
                "[Gemini][%s] latency=%.0fms promptChars=%d promptTokens=%s "
                "completionTokens=%s totalTokens=%s",
                model,
                latency_ms,
                len(request.prompt),
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.total_tokens,
            )
            return GenerationResult(
                content=text,
                provider=PROVIDER_NAME,
                model=reported if isinstance(reported, str) and reported else model,
                usage=usage,
                raw_response=response,
            )

        return await self.cascade.execute(request, attempt)

    async def aclose(self) -> None:
        await self._client.aio.aclose()
