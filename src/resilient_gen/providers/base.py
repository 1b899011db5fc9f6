"""Provider adapter contract and the in-provider model cascade.

An adapter is anything with a ``name``, a ``default_model``, its ``models``,
an async ``generate(request)`` and an async ``aclose()``. Adapters do not
inherit from a common base; they each own a ``ModelCascade`` and hand it a
single-model ``attempt`` coroutine.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
import dataclasses
import logging
from typing import Protocol, runtime_checkable

from resilient_gen.core.exceptions import ErrorKind, GenerationError
from resilient_gen.core.types import GenerationRequest, GenerationResult
from resilient_gen.providers.classification import should_cascade, to_generation_error
from resilient_gen.telemetry import TelemetryContext, TelemetryContextProtocol

logger = logging.getLogger(__name__)

type Attempt = Callable[[str], Awaitable[GenerationResult]]


@runtime_checkable
class ProviderAdapter(Protocol):
    """Capability contract every backend adapter satisfies."""

    name: str
    default_model: str
    models: tuple[str, ...]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate content, raising ``GenerationError`` on failure."""
        ...

    async def aclose(self) -> None:
        """Release the backend client."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class ModelCascade:
    """Ordered models for one provider, tried front to back.

    The cascade only moves forward: a call starts at the preferred model (or
    the first entry), never revisits a model, and stops after the last one.
    """

    provider: str
    models: tuple[str, ...]
    telemetry: TelemetryContextProtocol = dataclasses.field(
        default_factory=TelemetryContext, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError("models: cascade must not be empty")
        if len(set(self.models)) != len(self.models):
            raise ValueError("models: cascade must not repeat a model")

    @classmethod
    def build(
        cls,
        provider: str,
        models: Iterable[str],
        default_model: str | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> ModelCascade:
        """Build a cascade, moving a configured default model to the front."""
        ordered = list(models)
        if default_model:
            ordered = [default_model, *(m for m in ordered if m != default_model)]
        return cls(provider, tuple(ordered), telemetry or TelemetryContext())

    @property
    def first(self) -> str:
        return self.models[0]

    def plan(self, preferred: str | None = None) -> tuple[str, ...]:
        """Models to try for a call, in order."""
        if preferred and preferred in self.models:
            return self.models[self.models.index(preferred) :]
        return self.models

    async def execute(
        self, request: GenerationRequest, attempt: Attempt
    ) -> GenerationResult:
        """Run ``attempt`` over the cascade until one model succeeds.

        Each attempt is bounded by ``request.timeout_seconds``. Retryable
        failures advance to the next model; fatal failures, deadline expiry
        and exhaustion propagate the last ``GenerationError``.
        """
        plan = self.plan(request.model)
        last_error: GenerationError | None = None

        for position, model in enumerate(plan):
            try:
                with self.telemetry(
                    "provider.attempt", provider=self.provider, model=model
                ):
                    return await self._attempt_with_deadline(
                        attempt, model, request.timeout_seconds
                    )
            except GenerationError as e:
                last_error = e

            if not should_cascade(last_error):
                logger.error(
                    "[%s] Model %s failed with non-retryable error (%s): %s",
                    self.provider,
                    model,
                    last_error.kind.value,
                    last_error.message,
                )
                raise last_error

            if position + 1 < len(plan):
                logger.warning(
                    "[%s] %s failed with retryable error (%s), cascading to %s",
                    self.provider,
                    model,
                    last_error.kind.value,
                    plan[position + 1],
                )
                self.telemetry.count("cascade.step", provider=self.provider)

        logger.error(
            "[%s] All models failed. Last error type: %s",
            self.provider,
            last_error.kind.value if last_error else "unknown",
        )
        if last_error is None:  # pragma: no cover - plan is never empty
            raise GenerationError(
                ErrorKind.UNKNOWN, "cascade ran no attempts", provider=self.provider
            )
        raise last_error

    async def _attempt_with_deadline(
        self, attempt: Attempt, model: str, timeout_seconds: float | None
    ) -> GenerationResult:
        try:
            async with asyncio.timeout(timeout_seconds):
                return await attempt(model)
        except TimeoutError as e:
            raise GenerationError(
                ErrorKind.TIMEOUT,
                f"{self.provider} request timed out after {timeout_seconds}s",
                provider=self.provider,
                model=model,
            ) from e
        except GenerationError as e:
            raise to_generation_error(e, provider=self.provider, model=model)
        except Exception as e:
            raise to_generation_error(e, provider=self.provider, model=model) from e
