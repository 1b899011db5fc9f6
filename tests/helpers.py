from collections.abc import Iterable
from typing import Annotated, Any

from pydantic import BaseModel, Field

from resilient_gen.config.types import FrozenConfig, ProviderCredentials
from resilient_gen.core.exceptions import ErrorKind, GenerationError
from resilient_gen.core.types import GenerationRequest, GenerationResult, ProviderName
from resilient_gen.providers.base import ModelCascade
from resilient_gen.schema import TAKEAWAY_TEMPLATE, OutputSchema


class Takeaway(BaseModel):
    """Record shape used by the summary-style recovery tests."""

    label: str = Field(min_length=1)
    insight: str = Field(min_length=1)
    timestamps: list[str] = Field(min_length=1, max_length=2)


TAKEAWAYS_SCHEMA = OutputSchema(
    Annotated[list[Takeaway], Field(min_length=4, max_length=6)],
    name="takeaways",
    template=TAKEAWAY_TEMPLATE,
)


def takeaway(i: int, timestamps: tuple[str, ...] = ("01:00",)) -> dict[str, Any]:
    return {
        "label": f"Point {i}",
        "insight": f"Insight number {i}",
        "timestamps": list(timestamps),
    }


def make_config(
    *providers: ProviderName,
    provider: ProviderName | None = None,
    timeout_seconds: float | None = None,
) -> FrozenConfig:
    """Frozen config where exactly ``providers`` have credentials."""
    return FrozenConfig(
        provider=provider,
        credentials={
            name: ProviderCredentials(api_key=f"key-{name.value}") for name in providers
        },
        timeout_seconds=timeout_seconds,
    )


def retryable(message: str = "503 Service Unavailable") -> GenerationError:
    return GenerationError(ErrorKind.SERVICE_UNAVAILABLE, message)


def fatal(message: str = "401 invalid api key") -> GenerationError:
    return GenerationError(ErrorKind.AUTHENTICATION_FAILED, message)


class ScriptedAdapter:
    """Adapter whose backend attempts follow a script.

    Each backend attempt pops the next outcome: an exception is raised, a
    string becomes the response content. Attempted model names are recorded
    in ``attempts`` and requests in ``requests``.
    """

    def __init__(
        self,
        name: str,
        outcomes: Iterable[Any] = (),
        models: tuple[str, ...] = ("model-a", "model-b", "model-c"),
    ) -> None:
        self.name = name
        self.cascade = ModelCascade(name, models)
        self.default_model = models[0]
        self._outcomes = list(outcomes)
        self.attempts: list[str] = []
        self.requests: list[GenerationRequest] = []
        self.closed = 0

    @property
    def models(self) -> tuple[str, ...]:
        return self.cascade.models

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)

        async def attempt(model: str) -> GenerationResult:
            self.attempts.append(model)
            outcome = self._outcomes.pop(0) if self._outcomes else '{"ok": true}'
            if isinstance(outcome, BaseException):
                raise outcome
            return GenerationResult(content=outcome, provider=self.name, model=model)

        return await self.cascade.execute(request, attempt)

    async def aclose(self) -> None:
        self.closed += 1


def factories_for(**adapters: ScriptedAdapter) -> dict[ProviderName, Any]:
    """Registry factories returning prebuilt adapters, keyed by provider name."""
    return {
        ProviderName(name): (lambda adapter: lambda _creds, **_kw: adapter)(adapter)
        for name, adapter in adapters.items()
    }
