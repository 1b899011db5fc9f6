"""End-user wording for generation failures.

Backend messages can leak model names, quotas or keys, so callers show one
of a few fixed category messages instead of ``str(error)``.
"""

from __future__ import annotations

from enum import Enum

from resilient_gen.core.exceptions import ErrorKind
from resilient_gen.providers.classification import error_kind


class MessageCategory(str, Enum):
    BUSY = "busy"
    CONFIGURATION = "configuration"
    FORMATTING = "formatting"
    TIMEOUT = "timeout"
    GENERIC = "generic"


USER_MESSAGES: dict[MessageCategory, str] = {
    MessageCategory.BUSY: (
        "The AI service is currently at capacity. Please wait a moment and try again."
    ),
    MessageCategory.CONFIGURATION: (
        "There's a configuration issue with the AI service. Please try again later."
    ),
    MessageCategory.FORMATTING: (
        "I had trouble formatting my response. Please try rephrasing your question."
    ),
    MessageCategory.TIMEOUT: (
        "The request took too long. Please try again with a shorter question."
    ),
    MessageCategory.GENERIC: (
        "I apologize, but I'm having trouble processing your request right now. "
        "Please try again in a moment."
    ),
}

_CATEGORY_BY_KIND: dict[ErrorKind, MessageCategory] = {
    ErrorKind.RATE_LIMITED: MessageCategory.BUSY,
    ErrorKind.SERVICE_UNAVAILABLE: MessageCategory.BUSY,
    ErrorKind.AUTHENTICATION_FAILED: MessageCategory.CONFIGURATION,
    ErrorKind.ALL_PROVIDERS_FAILED: MessageCategory.CONFIGURATION,
    ErrorKind.SCHEMA_CONVERSION_FAILED: MessageCategory.FORMATTING,
    ErrorKind.MALFORMED_OUTPUT: MessageCategory.FORMATTING,
    ErrorKind.TIMEOUT: MessageCategory.TIMEOUT,
}


def message_category(error: BaseException | str) -> MessageCategory:
    return _CATEGORY_BY_KIND.get(error_kind(error), MessageCategory.GENERIC)


def user_message(error: BaseException | str) -> str:
    """Return the fixed user-facing text for ``error``; never the backend text."""
    return USER_MESSAGES[message_category(error)]
