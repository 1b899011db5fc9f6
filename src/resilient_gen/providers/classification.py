"""Retry classification for backend errors.

Backends report overload and throttling in different shapes: numeric status
codes on SDK exceptions, HTTP responses, or only in human-readable messages.
All of that matching lives here, in pure functions, so the cascade executor
and the fallback orchestrator agree on what is worth retrying.
"""

from __future__ import annotations

from enum import Enum
import re

import httpx

from resilient_gen.core.exceptions import ErrorKind, GenerationError


class RetryClass(str, Enum):
    """Whether another attempt (next model or next provider) can help."""

    RETRYABLE = "retryable"
    FATAL = "fatal"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.TIMEOUT,
        ErrorKind.EMPTY_RESPONSE,
    }
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 502, 503, 504, 529})

_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.AUTHENTICATION_FAILED,
    403: ErrorKind.AUTHENTICATION_FAILED,
    404: ErrorKind.BAD_REQUEST,
    408: ErrorKind.TIMEOUT,
    422: ErrorKind.BAD_REQUEST,
    429: ErrorKind.RATE_LIMITED,
    502: ErrorKind.SERVICE_UNAVAILABLE,
    503: ErrorKind.SERVICE_UNAVAILABLE,
    504: ErrorKind.SERVICE_UNAVAILABLE,
    529: ErrorKind.SERVICE_UNAVAILABLE,
}

# Checked in order; the first matching pattern decides the kind.
_MESSAGE_PATTERNS: tuple[tuple[ErrorKind, re.Pattern[str]], ...] = (
    (
        ErrorKind.RATE_LIMITED,
        re.compile(
            r"\b429\b|rate[ _-]?limit|too many requests|resource_exhausted|quota"
        ),
    ),
    (
        ErrorKind.SERVICE_UNAVAILABLE,
        re.compile(
            r"\b(?:502|503|504|529)\b|overload|service unavailable"
            r"|bad gateway|\bunavailable\b"
        ),
    ),
    (
        ErrorKind.TIMEOUT,
        re.compile(r"timeout|timed out|deadline exceeded|deadline_exceeded"),
    ),
    (
        ErrorKind.AUTHENTICATION_FAILED,
        re.compile(
            r"\b40[13]\b|unauthori[sz]ed|authentication|permission_denied"
            r"|api[ _-]?key"
        ),
    ),
    (
        ErrorKind.BAD_REQUEST,
        re.compile(r"\b400\b|invalid_argument|invalid request|bad request"),
    ),
)


def _status_code_of(error: BaseException) -> int | None:
    """Extract a numeric status from the common SDK/HTTP exception shapes."""
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def error_kind(error: BaseException | str) -> ErrorKind:
    """Map any backend error (or bare message) to an ``ErrorKind``."""
    if isinstance(error, GenerationError):
        return error.kind
    if isinstance(error, BaseException):
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return ErrorKind.TIMEOUT
        return kind_for_status(_status_code_of(error), str(error))
    return kind_for_status(None, error)


def kind_for_status(status_code: int | None, message: str = "") -> ErrorKind:
    """Map a status code, falling back to message matching when it is unknown."""
    if status_code is not None and status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]
    lowered = message.lower()
    for kind, pattern in _MESSAGE_PATTERNS:
        if pattern.search(lowered):
            return kind
    return ErrorKind.UNKNOWN


def classify(error: BaseException | str) -> RetryClass:
    """Return RETRYABLE or FATAL for ``error``. Pure and stateless."""
    if error_kind(error) in RETRYABLE_KINDS:
        return RetryClass.RETRYABLE
    return RetryClass.FATAL


def is_retryable(error: BaseException | str) -> bool:
    return classify(error) is RetryClass.RETRYABLE


def should_cascade(error: BaseException | str) -> bool:
    """Whether the in-provider cascade may move to the next model.

    A timeout is retryable across providers but ends the cascade, so one
    wedged provider cannot multiply the caller's latency.
    """
    return is_retryable(error) and error_kind(error) is not ErrorKind.TIMEOUT


def to_generation_error(
    error: BaseException,
    *,
    provider: str,
    model: str | None = None,
) -> GenerationError:
    """Normalize ``error`` into a ``GenerationError`` tagged with its origin."""
    if isinstance(error, GenerationError):
        if error.provider is None:
            error.provider = provider
        if error.model is None:
            error.model = model
        return error
    status = _status_code_of(error)
    message = str(error) or type(error).__name__
    return GenerationError(
        error_kind(error),
        f"{provider} API error: {message}",
        provider=provider,
        model=model,
        status_code=status,
    )
