"""
Global test configuration and environment isolation.
"""

import logging
import os

import pytest

_PROVIDER_ENV_PREFIXES = ("AI_", "NEXT_PUBLIC_AI_", "GEMINI_", "ANTHROPIC_", "XAI_")
_PROVIDER_ENV_KEYS = (
    "CLAUDE_MODEL",
    "GROK_MODEL",
    "PROVIDER",
    "TIMEOUT_SECONDS",
    "BATCH_CHUNK_SIZE",
    "BATCH_CONCURRENCY",
    "DEBUG",
    "RESILIENT_GEN_TELEMETRY",
)


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure no real provider credentials or selection leak into a test.

    Removes provider keys, base URLs, model overrides and debug toggles
    before each test. Tests set exactly the variables they need.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the environment.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.upper().startswith(_PROVIDER_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    for key in _PROVIDER_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "contract: Protocol and invariant conformance tests",
        "allow_env_pollution: Keep the ambient environment for this test",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


# --- Core Fixtures ---


@pytest.fixture
def mock_api_key():
    """Provide a consistent, fake API key for tests."""
    return "test_api_key_12345_67890_abcdef_ghijkl"
