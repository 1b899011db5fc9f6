import pytest

from resilient_gen.core.exceptions import (
    ErrorKind,
    GenerationError,
    MalformedOutputError,
    NoProviderConfiguredError,
    SchemaConversionError,
)
from resilient_gen.messages import (
    USER_MESSAGES,
    MessageCategory,
    message_category,
    user_message,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("kind", "category"),
    [
        (ErrorKind.RATE_LIMITED, MessageCategory.BUSY),
        (ErrorKind.SERVICE_UNAVAILABLE, MessageCategory.BUSY),
        (ErrorKind.AUTHENTICATION_FAILED, MessageCategory.CONFIGURATION),
        (ErrorKind.TIMEOUT, MessageCategory.TIMEOUT),
        (ErrorKind.BAD_REQUEST, MessageCategory.GENERIC),
        (ErrorKind.EMPTY_RESPONSE, MessageCategory.GENERIC),
        (ErrorKind.UNKNOWN, MessageCategory.GENERIC),
    ],
)
def test_category_follows_error_kind(kind, category):
    assert message_category(GenerationError(kind, "backend text")) is category


def test_special_errors_map_to_their_categories():
    assert message_category(SchemaConversionError("bad")) is MessageCategory.FORMATTING
    malformed = MalformedOutputError("no valid JSON", provider="grok")
    assert message_category(malformed) is MessageCategory.FORMATTING
    assert message_category(NoProviderConfiguredError()) is MessageCategory.CONFIGURATION


@pytest.mark.parametrize(
    ("raw", "category"),
    [
        ("429 Too Many Requests", MessageCategory.BUSY),
        ("The model is overloaded", MessageCategory.BUSY),
        ("invalid api key", MessageCategory.CONFIGURATION),
        ("something odd happened", MessageCategory.GENERIC),
    ],
)
def test_plain_messages_and_foreign_exceptions_are_classified(raw, category):
    assert message_category(raw) is category
    assert message_category(RuntimeError(raw)) is category


def test_user_message_never_leaks_backend_text():
    error = GenerationError(
        ErrorKind.RATE_LIMITED, "quota for key sk-123 on gemini-2.5-pro exhausted"
    )

    text = user_message(error)

    assert text == USER_MESSAGES[MessageCategory.BUSY]
    assert "sk-123" not in text
    assert "gemini" not in text


def test_every_category_has_a_message():
    assert set(USER_MESSAGES) == set(MessageCategory)
    assert user_message(TimeoutError()) == (
        "The request took too long. Please try again with a shorter question."
    )
