"""Provider selection, adapter caching and cross-provider fallback.

``ProviderRegistry`` owns the construct-once adapter cache for one resolved
configuration. ``FallbackOrchestrator`` is the main entry point: it calls the
primary provider, retries once on another configured provider when the
failure is retryable, and runs structured output through recovery.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import dataclasses
from enum import Enum
import logging
import threading
from typing import Any, Final

from resilient_gen.config.types import FrozenConfig
from resilient_gen.core.exceptions import (
    GenerationError,
    GenerationGateError,
    MalformedOutputError,
    NoProviderConfiguredError,
    ProviderNotConfiguredError,
)
from resilient_gen.core.types import (
    PROVIDER_PREFERENCE,
    GenerationRequest,
    GenerationResult,
    ProviderName,
    RecoveryOutcome,
)
from resilient_gen.providers import ADAPTER_FACTORIES, AdapterFactory, ProviderAdapter
from resilient_gen.providers.classification import is_retryable
from resilient_gen.recovery import RecoveryPipeline
from resilient_gen.schema import OutputSchema
from resilient_gen.telemetry import TelemetryContext, TelemetryContextProtocol

logger = logging.getLogger(__name__)


class _Missing(Enum):
    MISSING = "MISSING"

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing.MISSING

type UsageGate = Callable[[GenerationRequest], Awaitable[bool]]
type RecoveryFactory = Callable[[OutputSchema], RecoveryPipeline]


class ProviderRegistry:
    """Lazily built, cached adapters for the configured providers.

    Adapters are constructed on first use under a lock. A failed construction
    is not cached, so a later call can succeed once credentials exist.
    """

    def __init__(
        self,
        config: FrozenConfig,
        factories: Mapping[ProviderName, AdapterFactory] | None = None,
        *,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.config = config
        self._factories = dict(factories if factories is not None else ADAPTER_FACTORIES)
        self._telemetry = telemetry or TelemetryContext()
        self._cache: dict[ProviderName, ProviderAdapter] = {}
        self._lock = threading.Lock()

    def available(self) -> list[ProviderName]:
        """Configured providers in preference order."""
        return [
            name
            for name in PROVIDER_PREFERENCE
            if name in self._factories and self.config.is_configured(name)
        ]

    def resolve_key(self, preferred: str | ProviderName | None = None) -> ProviderName:
        """Pick the provider for a call.

        An explicit ``preferred`` name wins, then the configured provider,
        then the first configured one in the fixed preference order. Unknown
        names are ignored.

        Raises:
            NoProviderConfiguredError: If nothing is selected or configured.
        """
        for candidate in (preferred, self.config.provider):
            key = ProviderName.parse(candidate)
            if key is not None and key in self._factories:
                return key
            if candidate is not None and key is None:
                logger.warning("[AI Provider] Ignoring unknown provider %r", candidate)
        available = self.available()
        if not available:
            raise NoProviderConfiguredError()
        return available[0]

    def get(self, key: str | ProviderName) -> ProviderAdapter:
        """Return the cached adapter for ``key``, building it on first use.

        Raises:
            ProviderNotConfiguredError: If the provider lacks credentials or
                the adapter cannot be constructed.
        """
        name = ProviderName.parse(key)
        if name is None or name not in self._factories:
            raise ProviderNotConfiguredError(str(key))
        with self._lock:
            adapter = self._cache.get(name)
            if adapter is not None:
                return adapter
            credentials = self.config.credentials_for(name)
            if not credentials.is_configured:
                raise ProviderNotConfiguredError(name.value)
            adapter = self._factories[name](credentials, telemetry=self._telemetry)
            self._cache[name] = adapter
            logger.debug("[AI Provider] Constructed adapter for %s", name.value)
            return adapter

    def fallback_for(self, key: str | ProviderName) -> ProviderName | None:
        """First other configured provider, or None."""
        current = ProviderName.parse(key)
        return next((name for name in self.available() if name is not current), None)

    async def aclose(self) -> None:
        """Close every cached adapter and empty the cache.

        The registry stays usable; later ``get`` calls build fresh adapters.
        """
        with self._lock:
            adapters = list(self._cache.items())
            self._cache.clear()
        for name, adapter in adapters:
            await adapter.aclose()
            logger.debug("[AI Provider] Closed adapter for %s", name.value)


class FallbackOrchestrator:
    """Single-shot cross-provider fallback around a ``ProviderRegistry``.

    Args:
        registry: Source of adapters.
        recovery: Builds the recovery pipeline for a schema; defaults to
            ``RecoveryPipeline``.
        telemetry: Telemetry context for fallback scopes and counters.
        gate: Optional coroutine awaited before each call; a falsy result
            refuses the call with ``GenerationGateError``.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        recovery: RecoveryFactory | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        gate: UsageGate | None = None,
    ) -> None:
        self.registry = registry
        self._telemetry = telemetry or TelemetryContext()
        self._recovery = recovery or self._default_recovery
        self._gate = gate

    def _default_recovery(self, schema: OutputSchema) -> RecoveryPipeline:
        return RecoveryPipeline(schema, telemetry=self._telemetry)

    async def generate_structured_content(
        self,
        request: GenerationRequest,
        provider: str | ProviderName | None = None,
        *,
        default: Any = MISSING,
    ) -> GenerationResult:
        """Generate with the primary provider, falling back once if retryable.

        When the request carries a schema, ``result.parsed`` holds the
        validated value and ``result.recovery`` the stage that produced it.

        Raises:
            GenerationError: The primary provider's error when it is fatal,
                when no fallback is configured, or when the fallback fails too.
            MalformedOutputError: When no recovery stage produced a valid
                value and no ``default`` was given.
        """
        request = self._with_default_timeout(request)
        if self._gate is not None and not await self._gate(request):
            raise GenerationGateError()

        primary_key = self.registry.resolve_key(provider)
        logger.info("[AI Provider] Using provider: %s", primary_key.value)
        adapter = self.registry.get(primary_key)
        try:
            result = await adapter.generate(request)
        except GenerationError as error:
            result = await self._fallback(request, primary_key, error)

        if request.schema is None:
            return result
        return self._recover(request.schema, result, default)

    async def _fallback(
        self,
        request: GenerationRequest,
        primary_key: ProviderName,
        error: GenerationError,
    ) -> GenerationResult:
        if not is_retryable(error):
            raise error
        fallback_key = self.registry.fallback_for(primary_key)
        if fallback_key is None:
            raise error

        logger.warning(
            "[AI Provider] %s failed with retryable error, trying fallback: %s",
            primary_key.value,
            fallback_key.value,
        )
        self._telemetry.count("fallback.attempt", provider=fallback_key.value)
        try:
            with self._telemetry(
                "fallback", primary=primary_key.value, fallback=fallback_key.value
            ):
                adapter = self.registry.get(fallback_key)
                logger.info("[AI Provider] Using fallback provider: %s", fallback_key.value)
                result = await adapter.generate(request.with_model(None))
        except GenerationError as fallback_error:
            logger.error(
                "[AI Provider] Fallback provider %s also failed: %s",
                fallback_key.value,
                fallback_error.message,
            )
            error.add_note(
                f"fallback provider {fallback_key.value} also failed: "
                f"{fallback_error.message}"
            )
            raise error

        self._telemetry.count("fallback.success", provider=fallback_key.value)
        return dataclasses.replace(
            result, used_fallback=True, primary_error=error.message
        )

    def _recover(
        self, schema: OutputSchema, result: GenerationResult, default: Any
    ) -> GenerationResult:
        recovered = self._recovery(schema).recover(result.content)
        if recovered.succeeded:
            return result.with_parsed(recovered.value, recovered.outcome)
        if default is not MISSING:
            logger.warning(
                "[AI Provider] Using default value for unrecoverable %s output",
                result.provider,
            )
            return result.with_parsed(default, RecoveryOutcome.FAILURE)
        raise MalformedOutputError(
            f"{result.provider} returned output that does not match schema "
            f"{schema.name!r}",
            provider=result.provider,
            model=result.model,
            content=result.content,
        )

    def _with_default_timeout(self, request: GenerationRequest) -> GenerationRequest:
        timeout = self.registry.config.timeout_seconds
        if request.timeout_seconds is None and timeout is not None:
            return dataclasses.replace(request, timeout_seconds=timeout)
        return request
