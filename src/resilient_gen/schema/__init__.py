"""Output schemas and provider schema negotiation."""

from .negotiator import (
    JSON_ONLY_INSTRUCTION,
    SchemaNode,
    normalize,
    to_gemini_schema,
    to_instruction,
    to_strict_json_schema,
)
from .output import (
    DEFAULT_MAX_LIST_ITEMS,
    DEFAULT_MAX_RECORDS,
    DEFAULT_MIN_RECORDS,
    TAKEAWAY_TEMPLATE,
    OutputSchema,
    RecordTemplate,
)

__all__ = [  # noqa: RUF022
    "OutputSchema",
    "RecordTemplate",
    "TAKEAWAY_TEMPLATE",
    "DEFAULT_MIN_RECORDS",
    "DEFAULT_MAX_RECORDS",
    "DEFAULT_MAX_LIST_ITEMS",
    "SchemaNode",
    "normalize",
    "to_gemini_schema",
    "to_strict_json_schema",
    "to_instruction",
    "JSON_ONLY_INSTRUCTION",
]
