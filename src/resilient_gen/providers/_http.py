"""Shared JSON-over-HTTP plumbing for adapters without an SDK."""

from __future__ import annotations

from typing import Any

import httpx

from resilient_gen.core.exceptions import ErrorKind, GenerationError
from resilient_gen.providers.classification import kind_for_status

DEFAULT_HTTP_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of the backend's error type and message."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        parts = [str(error.get("type") or ""), str(error.get("message") or "")]
        return ": ".join(p for p in parts if p) or str(error)[:200]
    if isinstance(error, str):
        return error[:200]
    return str(body)[:200]


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str],
    payload: dict[str, Any],
    provider: str,
    model: str,
) -> dict[str, Any]:
    """POST ``payload`` and return the decoded JSON body.

    Raises:
        GenerationError: On non-2xx responses or undecodable bodies, with the
            kind derived from the status code and error text.
    """
    response = await client.post(url, headers=headers, json=payload)
    if response.is_error:
        detail = _error_detail(response)
        message = f"HTTP {response.status_code}: {detail}"
        kind = kind_for_status(response.status_code, message)
        raise GenerationError(
            kind,
            f"{provider} API error: {message}",
            provider=provider,
            model=model,
            status_code=response.status_code,
        )
    try:
        data = response.json()
    except ValueError as e:
        raise GenerationError(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"{provider} API returned a non-JSON body",
            provider=provider,
            model=model,
            status_code=response.status_code,
        ) from e
    if not isinstance(data, dict):
        raise GenerationError(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"{provider} API returned an unexpected body",
            provider=provider,
            model=model,
        )
    return data
