"""Core data types that flow through the resilience layer.

Requests and results are immutable per call. A request is built once by the
caller and reused unchanged across cascade steps and the fallback attempt;
only the preferred model is swapped via ``with_model``.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
import typing

if typing.TYPE_CHECKING:
    from resilient_gen.schema import OutputSchema

# --- Minimal guard helpers ---


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


# --- Result Monad ---
# Recovery stages return Success|Failure instead of raising so the pipeline
# can keep a record of why each stage was skipped.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful stage result."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed stage result, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


# --- Providers ---


class ProviderName(str, Enum):
    """Closed set of supported backends."""

    GROK = "grok"
    GEMINI = "gemini"
    CLAUDE = "claude"

    @classmethod
    def parse(cls, value: str | ProviderName | None) -> ProviderName | None:
        """Return the matching member, or None for empty/unknown names."""
        if value is None or isinstance(value, ProviderName):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# Order used when neither the call nor the configuration picks a provider.
PROVIDER_PREFERENCE: tuple[ProviderName, ...] = (
    ProviderName.GROK,
    ProviderName.GEMINI,
    ProviderName.CLAUDE,
)


# --- Requests and results ---


@dataclasses.dataclass(frozen=True, slots=True)
class GenerationRequest:
    """A single generation call.

    ``timeout_seconds`` is the per-attempt deadline. ``model`` is a preference:
    adapters ignore names outside their own cascade.
    """

    prompt: str
    schema: OutputSchema | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    timeout_seconds: float | None = None
    model: str | None = None
    system_instruction: str | None = None

    def __post_init__(self) -> None:
        """Validate invariants for type safety."""
        _require(
            condition=isinstance(self.prompt, str) and bool(self.prompt.strip()),
            message="must be a non-empty str",
            field_name="prompt",
        )
        if self.temperature is not None:
            _require(
                condition=0.0 <= self.temperature <= 2.0,
                message="must be within [0, 2]",
                field_name="temperature",
            )
        if self.top_p is not None:
            _require(
                condition=0.0 < self.top_p <= 1.0,
                message="must be within (0, 1]",
                field_name="top_p",
            )
        if self.max_output_tokens is not None:
            _require(
                condition=self.max_output_tokens > 0,
                message="must be positive",
                field_name="max_output_tokens",
            )
        if self.timeout_seconds is not None:
            _require(
                condition=self.timeout_seconds > 0,
                message="must be positive",
                field_name="timeout_seconds",
            )

    def with_model(self, model: str | None) -> GenerationRequest:
        """Return a copy of this request preferring ``model``."""
        return dataclasses.replace(self, model=model)


@dataclasses.dataclass(frozen=True, slots=True)
class Usage:
    """Token accounting for one backend call."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    latency_ms: float = 0.0

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        total_tokens: int | None,
        latency_ms: float,
    ) -> Usage:
        """Build usage, deriving the total when the backend omits it."""
        if (
            total_tokens is None
            and prompt_tokens is not None
            and completion_tokens is not None
        ):
            total_tokens = prompt_tokens + completion_tokens
        return cls(prompt_tokens, completion_tokens, total_tokens, latency_ms)


class RecoveryOutcome(str, Enum):
    """Which recovery stage produced the structured value, if any."""

    DIRECT_SUCCESS = "direct"
    FENCE_STRIPPED_SUCCESS = "fence_stripped"
    DOUBLE_ENCODED_SUCCESS = "double_encoded"
    PARTIAL_RECOVERY_SUCCESS = "partial"
    FAILURE = "failure"

    @property
    def succeeded(self) -> bool:
        return self is not RecoveryOutcome.FAILURE

    @property
    def is_partial(self) -> bool:
        """True for stages that may have dropped records."""
        return self in (
            RecoveryOutcome.DOUBLE_ENCODED_SUCCESS,
            RecoveryOutcome.PARTIAL_RECOVERY_SUCCESS,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class GenerationResult:
    """What a successful generation returns.

    ``model`` is the model that produced ``content``, which may differ from the
    requested one after a cascade step.
    """

    content: str
    provider: str
    model: str
    usage: Usage = dataclasses.field(default_factory=Usage)
    raw_response: typing.Any = None
    parsed: typing.Any = None
    recovery: RecoveryOutcome | None = None
    used_fallback: bool = False
    primary_error: str | None = None

    def with_parsed(
        self, parsed: typing.Any, recovery: RecoveryOutcome
    ) -> GenerationResult:
        """Return a copy carrying the structured value and its recovery stage."""
        return dataclasses.replace(self, parsed=parsed, recovery=recovery)
