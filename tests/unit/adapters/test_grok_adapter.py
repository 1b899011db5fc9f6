import json

import httpx
import pytest

from resilient_gen.config.types import ProviderCredentials
from resilient_gen.core.exceptions import ErrorKind, GenerationError
from resilient_gen.core.types import GenerationRequest
from resilient_gen.providers.grok import MODEL_CASCADE, GrokAdapter
from tests.helpers import TAKEAWAYS_SCHEMA


def _completion(content: str | None, model: str = "grok-4-fast-non-reasoning") -> dict:
    return {
        "id": "chatcmpl-1",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 11, "completion_tokens": 5, "total_tokens": 16},
    }


def _adapter(handler) -> tuple[GrokAdapter, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return GrokAdapter(ProviderCredentials(api_key="xai-test"), client=client), seen


@pytest.mark.asyncio
async def test_generate_posts_chat_completion():
    adapter, seen = _adapter(lambda r: httpx.Response(200, json=_completion("Hi there")))

    result = await adapter.generate(
        GenerationRequest(prompt="Hello", system_instruction="Be brief", top_p=0.9)
    )

    assert result.content == "Hi there"
    assert result.provider == "grok"
    assert result.model == MODEL_CASCADE[0]
    assert result.usage.total_tokens == 16

    request = seen[0]
    assert request.url == "https://api.x.ai/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer xai-test"
    body = json.loads(request.content)
    assert body["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hello"},
    ]
    assert body["top_p"] == 0.9
    assert "response_format" not in body


@pytest.mark.asyncio
async def test_schema_uses_json_schema_response_format():
    adapter, seen = _adapter(lambda r: httpx.Response(200, json=_completion("[]")))

    await adapter.generate(GenerationRequest(prompt="Summarize", schema=TAKEAWAYS_SCHEMA))

    response_format = json.loads(seen[0].content)["response_format"]
    assert response_format["type"] == "json_schema"
    assert response_format["json_schema"]["name"] == "takeaways"
    schema = response_format["json_schema"]["schema"]
    assert schema["type"] == "array"
    assert schema["items"]["additionalProperties"] is False
    assert schema["items"]["required"] == ["label", "insight", "timestamps"]


@pytest.mark.asyncio
async def test_service_unavailable_cascades_then_raises_last_error():
    adapter, seen = _adapter(lambda r: httpx.Response(503, text="Service Unavailable"))

    with pytest.raises(GenerationError) as exc_info:
        await adapter.generate(GenerationRequest(prompt="hi"))

    assert exc_info.value.kind is ErrorKind.SERVICE_UNAVAILABLE
    assert exc_info.value.model == MODEL_CASCADE[-1]
    assert [json.loads(r.content)["model"] for r in seen] == list(MODEL_CASCADE)


@pytest.mark.asyncio
async def test_bad_request_is_fatal():
    adapter, seen = _adapter(
        lambda r: httpx.Response(400, json={"error": "Invalid request content"})
    )

    with pytest.raises(GenerationError) as exc_info:
        await adapter.generate(GenerationRequest(prompt="hi"))

    assert exc_info.value.kind is ErrorKind.BAD_REQUEST
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_null_content_is_empty_response():
    adapter, _ = _adapter(lambda r: httpx.Response(200, json=_completion(None)))

    with pytest.raises(GenerationError) as exc_info:
        await adapter.generate(GenerationRequest(prompt="hi"))

    assert exc_info.value.kind is ErrorKind.EMPTY_RESPONSE


@pytest.mark.asyncio
async def test_transport_timeout_is_terminal_for_the_cascade():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    adapter, seen = _adapter(handler)

    with pytest.raises(GenerationError) as exc_info:
        await adapter.generate(GenerationRequest(prompt="hi"))

    assert exc_info.value.kind is ErrorKind.TIMEOUT
    assert len(seen) == 1
