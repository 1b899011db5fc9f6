"""Resilient structured generation across Gemini, Claude and Grok."""

import importlib.metadata
import logging

from resilient_gen.batch import BatchDispatcher, BatchJob, dispatch, generate_many
from resilient_gen.config import FrozenConfig, ProviderCredentials, resolve_config
from resilient_gen.core.exceptions import (
    BatchDispatchError,
    ConfigurationError,
    ErrorKind,
    GenerationError,
    GenerationGateError,
    MalformedOutputError,
    NoProviderConfiguredError,
    ProviderNotConfiguredError,
    ResilientGenError,
    SchemaConversionError,
)
from resilient_gen.core.types import (
    GenerationRequest,
    GenerationResult,
    ProviderName,
    RecoveryOutcome,
    Usage,
)
from resilient_gen.messages import user_message
from resilient_gen.providers import (
    ClaudeAdapter,
    GeminiAdapter,
    GrokAdapter,
    ModelCascade,
    ProviderAdapter,
    RetryClass,
    classify,
)
from resilient_gen.recovery import RecoveryPipeline, RecoveryResult
from resilient_gen.registry import MISSING, FallbackOrchestrator, ProviderRegistry
from resilient_gen.schema import TAKEAWAY_TEMPLATE, OutputSchema, RecordTemplate
from resilient_gen.telemetry import TelemetryContext, TelemetryReporter

# Version handling
try:
    __version__ = importlib.metadata.version("resilient-gen")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Set up a null handler for the library's root logger.
# This prevents 'No handler found' errors if the consuming app has no logging configured.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Public API
__all__ = [  # noqa: RUF022
    # Entry points
    "FallbackOrchestrator",
    "ProviderRegistry",
    "MISSING",
    "BatchDispatcher",
    "BatchJob",
    "dispatch",
    "generate_many",
    # Configuration
    "resolve_config",
    "FrozenConfig",
    "ProviderCredentials",
    # Core types
    "GenerationRequest",
    "GenerationResult",
    "ProviderName",
    "RecoveryOutcome",
    "Usage",
    # Providers
    "ProviderAdapter",
    "ModelCascade",
    "GeminiAdapter",
    "ClaudeAdapter",
    "GrokAdapter",
    "RetryClass",
    "classify",
    # Schemas and recovery
    "OutputSchema",
    "RecordTemplate",
    "TAKEAWAY_TEMPLATE",
    "RecoveryPipeline",
    "RecoveryResult",
    # Telemetry (extension points)
    "TelemetryContext",
    "TelemetryReporter",
    # Messages
    "user_message",
    # Exceptions
    "ResilientGenError",
    "GenerationError",
    "ErrorKind",
    "ConfigurationError",
    "BatchDispatchError",
    "SchemaConversionError",
    "ProviderNotConfiguredError",
    "NoProviderConfiguredError",
    "MalformedOutputError",
    "GenerationGateError",
]
