"""Exception hierarchy for the generation resilience layer.

Every failure that leaves an adapter is a ``GenerationError`` carrying a
machine-checkable ``ErrorKind``. Callers branch on ``error.kind`` rather than
on message text; message text is for logs only.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced to callers."""

    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    AUTHENTICATION_FAILED = "authentication_failed"
    BAD_REQUEST = "bad_request"
    SCHEMA_CONVERSION_FAILED = "schema_conversion_failed"
    EMPTY_RESPONSE = "empty_response"
    ALL_PROVIDERS_FAILED = "all_providers_failed"
    MALFORMED_OUTPUT = "malformed_output"
    UNKNOWN = "unknown"


class ResilientGenError(Exception):
    """Base exception for the resilient_gen package."""


class ConfigurationError(ResilientGenError):
    """Raised when configuration values are missing or invalid."""


class BatchDispatchError(ResilientGenError):
    """Raised when a batch chunk handler violates the dispatch contract."""


class GenerationError(ResilientGenError):
    """A typed generation failure.

    Attributes:
        kind: Failure category used for retry decisions and user messaging.
        provider: Provider that raised the error, when known.
        model: Model that was in flight, when known.
        status_code: Backend HTTP/gRPC status, when one was reported.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider = provider
        self.model = model
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"provider={self.provider!r}, model={self.model!r}, "
            f"message={self.message!r})"
        )


class SchemaConversionError(GenerationError):
    """Raised when an output schema cannot be expressed for a provider."""

    def __init__(self, message: str, *, path: str = "$") -> None:
        super().__init__(
            ErrorKind.SCHEMA_CONVERSION_FAILED, f"{path}: {message}"
        )
        self.path = path


class ProviderNotConfiguredError(GenerationError):
    """Raised when an adapter cannot be built because credentials are missing."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(
            ErrorKind.AUTHENTICATION_FAILED,
            message
            or (
                f'AI provider "{provider}" is not configured. '
                "Supply the required credentials and try again."
            ),
            provider=provider,
        )


class NoProviderConfiguredError(GenerationError):
    """Raised when no provider at all has credentials."""

    def __init__(self) -> None:
        super().__init__(
            ErrorKind.ALL_PROVIDERS_FAILED,
            "No AI provider is configured.",
        )


class MalformedOutputError(GenerationError):
    """Raised when generation succeeded but no recovery stage produced valid data."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        content: str = "",
    ) -> None:
        super().__init__(
            ErrorKind.MALFORMED_OUTPUT, message, provider=provider, model=model
        )
        self.content = content


class GenerationGateError(GenerationError):
    """Raised when the external usage gate refuses to place a call."""

    def __init__(self, message: str = "Generation refused by usage gate") -> None:
        super().__init__(ErrorKind.BAD_REQUEST, message)
