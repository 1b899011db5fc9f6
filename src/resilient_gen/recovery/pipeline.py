"""Staged recovery of structured values from raw model output.

Stages run in a fixed order and the first that yields a schema-valid value
wins:

1. direct parse of the cleaned text,
2. the same parse after stripping Markdown code fences,
3. double-encoded arrays (a JSON array of JSON strings), including truncated
   ones, template schemas only,
4. regex extraction of complete records from truncated text, template
   schemas only.

Every stage returns ``Success``/``Failure`` instead of raising; failures are
kept as notes on the ``RecoveryResult`` for diagnostics.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
import dataclasses
import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from resilient_gen.core.types import (
    Failure,
    RecoveryOutcome,
    Result,
    Success,
)
from resilient_gen.schema.output import OutputSchema, RecordTemplate
from resilient_gen.telemetry import TelemetryContext, TelemetryContextProtocol

logger = logging.getLogger(__name__)

_BOM = "\ufeff"
_WRAPPING_QUOTES = ("'", "\"", "\u201c", "\u201d")
_FENCED = re.compile(r"^```[\w+-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)
_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_QUOTED_ITEM = re.compile(r'"([^"]+)"')
_STRING_VALUE = r'"((?:[^"\\]|\\.)*)"'
_STRING_LITERAL = re.compile(_STRING_VALUE)
# json.loads raises RecursionError on deeply nested input.
_DECODE_ERRORS = (ValueError, RecursionError)


class RecoveryFailed(ValueError):
    """A single stage could not produce a valid value."""


@dataclasses.dataclass(frozen=True, slots=True)
class RecoveryResult:
    """Outcome of running the pipeline over one response."""

    outcome: RecoveryOutcome
    value: Any = None
    notes: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.outcome.succeeded

    def value_or(self, default: Any) -> Any:
        """Return the recovered value, or ``default`` when every stage failed."""
        return self.value if self.succeeded else default


# --- Text helpers ---


def clean_text(raw: str) -> str:
    """Strip surrounding whitespace and a byte-order mark."""
    return raw.strip().lstrip(_BOM).strip()


def _strip_wrapping_quotes(text: str) -> str:
    if (
        len(text) >= 2
        and text[0] in _WRAPPING_QUOTES
        and text[-1] in _WRAPPING_QUOTES
        and text[1:2] in ("{", "[")
    ):
        return text[1:-1].strip()
    return text


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ``` fence (with optional language tag).

    An unterminated opening fence, as left by a truncated response, is
    removed too.
    """
    text = text.strip()
    match = _FENCED.match(text)
    if match:
        return match.group(1).strip()
    if text.startswith("```"):
        return _OPENING_FENCE.sub("", text, count=1).strip()
    return text


def loads_json(text: str) -> Any:
    """Decode ``text`` leniently.

    Stray quotes wrapped around an object or array are dropped, and a JSON
    string that itself holds JSON is unwrapped exactly once. A JSON string
    whose content only looks like JSON stays a string.

    Raises:
        ValueError: If ``text`` is not JSON.
        RecursionError: If ``text`` nests deeper than the decoder allows.
    """
    try:
        value = json.loads(text)
    except ValueError:
        stripped = _strip_wrapping_quotes(text)
        if stripped == text:
            raise
        value = json.loads(stripped)
    if isinstance(value, str):
        inner = value.strip()
        if inner[:1] in ("{", "["):
            try:
                return json.loads(inner)
            except _DECODE_ERRORS:
                return value
    return value


def _decode_escapes(fragment: str) -> str:
    return json.loads(f'"{fragment}"')


def _unique(entries: Iterable[Any]) -> list[str]:
    """Non-blank stripped strings, first occurrence kept."""
    return list(
        dict.fromkeys(e.strip() for e in entries if isinstance(e, str) and e.strip())
    )


# --- Template records ---


def coerce_record(item: Any, template: RecordTemplate) -> dict[str, Any] | None:
    """Return a cleaned record, or None when ``item`` does not fit ``template``.

    String elements are decoded as JSON first. Each field is read from its
    canonical key or the first alias holding a value of the right shape.
    String fields must be non-blank. List entries are merged from the list
    field and its aliases (which may hold a single string), de-duplicated in
    order, and capped at ``template.max_list_items``; at least one must remain.
    """
    if isinstance(item, str):
        try:
            item = json.loads(item)
        except _DECODE_ERRORS:
            return None
    if not isinstance(item, dict):
        return None
    record: dict[str, Any] = {}
    for name in template.string_fields:
        value = next(
            (item[key] for key in template.names_for(name) if isinstance(item.get(key), str)),
            "",
        )
        if not value.strip():
            return None
        record[name] = value.strip()
    entries: list[Any] = []
    for key in template.names_for(template.list_field):
        value = item.get(key)
        if isinstance(value, list):
            entries.extend(value)
        elif isinstance(value, str):
            entries.append(value)
    kept = _unique(entries)
    if not kept:
        return None
    record[template.list_field] = kept[: template.max_list_items]
    return record


def normalize_payload(payload: Any, template: RecordTemplate) -> Any:
    """Unwrap a container object and keep template-valid records.

    Only ``template.container_keys`` are unwrapped. Any other object, such as
    a single record, and any non-list payload are returned unchanged so schema
    validation judges them as they are.
    """
    if isinstance(payload, dict):
        key = next(
            (k for k in template.container_keys if isinstance(payload.get(k), list)),
            None,
        )
        if key is None:
            return payload
        payload = payload[key]
    if not isinstance(payload, list):
        return payload
    records: list[dict[str, Any]] = []
    for item in payload:
        record = coerce_record(item, template)
        if record is None:
            continue
        records.append(record)
        if len(records) >= template.max_records:
            break
    return records


def record_pattern(template: RecordTemplate) -> re.Pattern[str]:
    """Regex matching one complete template record in raw text."""
    parts = [rf'"{re.escape(name)}"\s*:\s*{_STRING_VALUE}' for name in template.string_fields]
    parts.append(rf'"{re.escape(template.list_field)}"\s*:\s*\[(.*?)\]')
    return re.compile(r"\{\s*" + r"\s*,\s*".join(parts) + r"\s*\}", re.DOTALL)


# --- Pipeline ---


class RecoveryPipeline:
    """Validate or repair raw model output against an ``OutputSchema``."""

    def __init__(
        self,
        schema: OutputSchema,
        *,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.schema = schema
        self.template = schema.template
        self._telemetry = telemetry or TelemetryContext()
        self._pattern = record_pattern(self.template) if self.template else None

    def recover(self, raw: str) -> RecoveryResult:
        """Run the stages in order and report the first success."""
        notes: list[str] = []
        cleaned = clean_text(raw or "")
        unfenced = clean_text(strip_code_fences(cleaned))

        stages: list[tuple[RecoveryOutcome, Callable[[], Result[Any, Exception]]]] = [
            (RecoveryOutcome.DIRECT_SUCCESS, lambda: self._parse(cleaned)),
            (RecoveryOutcome.FENCE_STRIPPED_SUCCESS, lambda: self._parse(unfenced)),
        ]
        if self.template is not None:
            stages.append(
                (RecoveryOutcome.DOUBLE_ENCODED_SUCCESS, lambda: self._double_encoded(unfenced))
            )
            stages.append(
                (RecoveryOutcome.PARTIAL_RECOVERY_SUCCESS, lambda: self._partial(cleaned))
            )

        for outcome, stage in stages:
            if outcome is RecoveryOutcome.FENCE_STRIPPED_SUCCESS and unfenced == cleaned:
                notes.append(f"{outcome.value}: no code fence present")
                continue
            with self._telemetry("recovery.stage", stage=outcome.value):
                result: Result[Any, Exception] = stage()
            if isinstance(result, Success):
                log = logger.warning if outcome.is_partial else logger.debug
                log("Recovered structured output via stage %s", outcome.value)
                self._telemetry.count("recovery.outcome", stage=outcome.value)
                return RecoveryResult(outcome, result.value, tuple(notes))
            logger.debug("Recovery stage %s failed: %s", outcome.value, result.error)
            notes.append(f"{outcome.value}: {result.error}")

        logger.error("All recovery stages failed (length=%d)", len(raw or ""))
        logger.debug("Unrecoverable output prefix: %r", (raw or "")[:80])
        self._telemetry.count("recovery.outcome", stage=RecoveryOutcome.FAILURE.value)
        return RecoveryResult(RecoveryOutcome.FAILURE, None, tuple(notes))

    def _validate(self, value: Any) -> Result[Any, Exception]:
        try:
            return Success(self.schema.validate(value))
        except ValidationError as e:
            return Failure(RecoveryFailed(f"schema validation failed: {e.error_count()} error(s)"))

    def _parse(self, text: str) -> Result[Any, Exception]:
        if not text:
            return Failure(RecoveryFailed("empty response"))
        try:
            payload = loads_json(text)
        except RecursionError:
            return Failure(RecoveryFailed("invalid JSON: nesting too deep"))
        except ValueError as e:
            return Failure(RecoveryFailed(f"invalid JSON: {e}"))
        if self.template is not None:
            payload = normalize_payload(payload, self.template)
        return self._validate(payload)

    def _double_encoded(self, text: str) -> Result[Any, Exception]:
        assert self.template is not None
        marker = f'\\"{self.template.string_fields[0]}\\"'
        if not text.startswith("[") or marker not in text:
            return Failure(RecoveryFailed("no double-encoded records"))
        try:
            outer = json.loads(text)
        except _DECODE_ERRORS:
            # Truncated outer array: keep the string elements that closed.
            outer = []
            for literal in _STRING_LITERAL.findall(text):
                try:
                    outer.append(_decode_escapes(literal))
                except ValueError:
                    continue
        if not isinstance(outer, list):
            return Failure(RecoveryFailed("outer value is not an array"))
        records = normalize_payload(
            [item for item in outer if isinstance(item, str)], self.template
        )
        return self._accept(records)

    def _partial(self, text: str) -> Result[Any, Exception]:
        assert self.template is not None and self._pattern is not None
        template = self.template
        count = len(template.string_fields)
        records: list[dict[str, Any]] = []
        for match in self._pattern.finditer(text):
            try:
                fields = [_decode_escapes(match.group(i + 1)).strip() for i in range(count)]
            except ValueError:
                continue
            entries = _unique(_QUOTED_ITEM.findall(match.group(count + 1)))
            if not all(fields) or not entries:
                continue
            record: dict[str, Any] = dict(zip(template.string_fields, fields, strict=True))
            record[template.list_field] = entries[: template.max_list_items]
            records.append(record)
            if len(records) >= template.max_records:
                break
        return self._accept(records)

    def _accept(self, records: list[dict[str, Any]]) -> Result[Any, Exception]:
        assert self.template is not None
        if len(records) < self.template.min_records:
            return Failure(
                RecoveryFailed(
                    f"recovered {len(records)} record(s), "
                    f"need at least {self.template.min_records}"
                )
            )
        return self._validate(records)
