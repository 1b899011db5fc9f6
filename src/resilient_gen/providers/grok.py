"""Grok adapter over xAI's OpenAI-compatible chat completions API.

Structured requests use ``response_format`` with an inline JSON schema.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from resilient_gen.config.types import ProviderCredentials
from resilient_gen.core.exceptions import (
    ErrorKind,
    GenerationError,
    ProviderNotConfiguredError,
)
from resilient_gen.core.types import GenerationRequest, GenerationResult, Usage
from resilient_gen.providers._http import DEFAULT_HTTP_TIMEOUT, post_json
from resilient_gen.providers.base import ModelCascade
from resilient_gen.schema import to_strict_json_schema
from resilient_gen.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

PROVIDER_NAME = "grok"
MODEL_CASCADE: tuple[str, ...] = (
    "grok-4-fast-non-reasoning",
    "grok-4-fast-reasoning",
    "grok-4",
)
DEFAULT_BASE_URL = "https://api.x.ai"


class GrokAdapter:
    """Adapter for xAI's Grok models."""

    name = PROVIDER_NAME

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        client: httpx.AsyncClient | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        if not credentials.is_configured:
            raise ProviderNotConfiguredError(
                PROVIDER_NAME,
                "XAI_API_KEY is required to use the Grok provider. "
                "Set the environment variable and try again.",
            )
        self._api_key = credentials.api_key or ""
        base = (credentials.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._url = f"{base}/v1/chat/completions"
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        self.cascade = ModelCascade.build(
            PROVIDER_NAME, MODEL_CASCADE, credentials.default_model, telemetry
        )
        self.default_model = self.cascade.first

    @property
    def models(self) -> tuple[str, ...]:
        return self.cascade.models

    def build_payload(
        self, request: GenerationRequest, model: str, response_format: dict[str, Any] | None
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.prompt})
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.max_output_tokens is not None:
            payload["max_tokens"] = request.max_output_tokens
        if response_format is not None:
            payload["response_format"] = response_format
        return payload

    def build_response_format(self, request: GenerationRequest) -> dict[str, Any] | None:
        if request.schema is None:
            return None
        return {
            "type": "json_schema",
            "json_schema": {
                "name": request.schema.name,
                "schema": to_strict_json_schema(request.schema),
                "strict": True,
            },
        }

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        response_format = self.build_response_format(request)
        headers = {
            "authorization": f"Bearer {self._api_key}",
            "content-type": "application/json",
        }

        async def attempt(model: str) -> GenerationResult:
            started = time.perf_counter()
            data = await post_json(
                self._client,
                self._url,
                headers=headers,
                payload=self.build_payload(request, model, response_format),
                provider=PROVIDER_NAME,
                model=model,
            )
            latency_ms = (time.perf_counter() - started) * 1000
            choices = data.get("choices") or []
            message = choices[0].get("message", {}) if choices else {}
            text = message.get("content") if isinstance(message, dict) else None
            if not isinstance(text, str) or not text.strip():
                raise GenerationError(
                    ErrorKind.EMPTY_RESPONSE,
                    f"Grok model {model} returned an empty response",
                    provider=PROVIDER_NAME,
                    model=model,
                )
            raw_usage = data.get("usage") or {}
            usage = Usage.from_counts(
                raw_usage.get("prompt_tokens"),
                raw_usage.get("completion_tokens"),
                raw_usage.get("total_tokens"),
                latency_ms,
            )
            logger.info(
                "[Grok][%s] latency=%.0fms promptChars=%d promptTokens=%s "
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
                model=data.get("model") or model,
                usage=usage,
                raw_response=data,
            )

        return await self.cascade.execute(request, attempt)

    async def aclose(self) -> None:
        await self._client.aclose()
