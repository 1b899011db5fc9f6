"""Claude adapter over the Anthropic Messages HTTP API.

The Messages API has no response-schema parameter, so structured requests
carry a textual JSON instruction (schema plus allowed-values lines) in the
system prompt.
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
from resilient_gen.schema import to_instruction
from resilient_gen.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

PROVIDER_NAME = "claude"
MODEL_CASCADE: tuple[str, ...] = (
    "claude-haiku-4-5-20251001",
    "claude-sonnet-4-6",
    "claude-opus-4-6",
)
DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096

BASE_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Respond directly to the user's request.\n"
    "Do NOT use any tools. Provide your response as text only."
)


class ClaudeAdapter:
    """Adapter for Anthropic's Claude models."""

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
                "ANTHROPIC_API_KEY is required to use the Claude provider. "
                "Set the environment variable and try again.",
            )
        self._api_key = credentials.api_key or ""
        self._url = f"{(credentials.base_url or DEFAULT_BASE_URL).rstrip('/')}/v1/messages"
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        self.cascade = ModelCascade.build(
            PROVIDER_NAME, MODEL_CASCADE, credentials.default_model, telemetry
        )
        self.default_model = self.cascade.first

    @property
    def models(self) -> tuple[str, ...]:
        return self.cascade.models

    def build_system_prompt(self, request: GenerationRequest) -> str:
        parts = [BASE_SYSTEM_PROMPT]
        if request.system_instruction:
            parts.append(request.system_instruction)
        if request.schema is not None:
            parts.append(to_instruction(request.schema))
        return "\n".join(parts)

    def build_payload(self, request: GenerationRequest, model: str, system: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "system": system,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.max_output_tokens or DEFAULT_MAX_TOKENS,
        }
        if request.temperature is not None:
            # Anthropic caps temperature at 1.0
            payload["temperature"] = min(request.temperature, 1.0)
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        return payload

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        system = self.build_system_prompt(request)
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

        async def attempt(model: str) -> GenerationResult:
            logger.debug("[Claude] Trying model: %s", model)
            started = time.perf_counter()
            data = await post_json(
                self._client,
                self._url,
                headers=headers,
                payload=self.build_payload(request, model, system),
                provider=PROVIDER_NAME,
                model=model,
            )
            latency_ms = (time.perf_counter() - started) * 1000
            text = "".join(
                block.get("text", "")
                for block in data.get("content") or ()
                if isinstance(block, dict) and block.get("type") == "text"
            )
            if not text.strip():
                raise GenerationError(
                    ErrorKind.EMPTY_RESPONSE,
                    "Claude API returned an empty response.",
                    provider=PROVIDER_NAME,
                    model=model,
                )
            raw_usage = data.get("usage") or {}
            usage = Usage.from_counts(
                raw_usage.get("input_tokens"),
                raw_usage.get("output_tokens"),
                None,
                latency_ms,
            )
            if data.get("stop_reason") == "max_tokens":
                logger.warning("[Claude][%s] response truncated at max_tokens", model)
            logger.info(
                "[Claude][%s] latency=%.0fms promptChars=%d promptTokens=%s "
                "completionTokens=%s",
                model,
                latency_ms,
                len(request.prompt),
                usage.prompt_tokens,
                usage.completion_tokens,
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
