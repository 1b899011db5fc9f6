"""Schema negotiation between abstract output schemas and provider formats.

The input is a JSON schema as pydantic emits it. ``normalize`` reduces it to a
``SchemaNode`` tree that only holds constructs every renderer understands;
anything outside that set raises ``SchemaConversionError`` instead of being
dropped. Renderers then produce:

- ``to_gemini_schema``: a ``google.genai.types.Schema``
- ``to_strict_json_schema``: an inline JSON schema for OpenAI-compatible APIs
- ``to_instruction``: prompt text for providers without native support
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from google.genai import types

from resilient_gen.core.exceptions import SchemaConversionError

from .output import OutputSchema

SCALAR_KINDS = frozenset({"string", "number", "integer", "boolean"})
SUPPORTED_FORMATS = frozenset({"date-time", "enum"})

# Keys that only annotate a schema and never constrain output.
_ANNOTATION_KEYS = frozenset(
    {
        "title",
        "default",
        "examples",
        "deprecated",
        "$schema",
        "$id",
        "$comment",
        "readOnly",
        "writeOnly",
    }
)

# Every constraining key the renderers carry over. Anything else is rejected.
_SUPPORTED_KEYS = frozenset(
    {
        "$ref",
        "type",
        "description",
        "anyOf",
        "oneOf",
        "const",
        "enum",
        "format",
        "properties",
        "required",
        "additionalProperties",
        "items",
        "minItems",
        "maxItems",
        "pattern",
        "minLength",
        "maxLength",
        "minimum",
        "maximum",
    }
)


@dataclasses.dataclass(frozen=True, slots=True)
class SchemaNode:
    """Provider-neutral schema tree."""

    kind: str
    nullable: bool = False
    description: str | None = None
    properties: tuple[tuple[str, SchemaNode], ...] = ()
    required: tuple[str, ...] = ()
    items: SchemaNode | None = None
    enum: tuple[Any, ...] | None = None
    pattern: str | None = None
    format: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None

    def nullable_copy(self) -> SchemaNode:
        return dataclasses.replace(self, nullable=True)

    def iter_enums(self, path: str = "$"):
        """Yield ``(path, values)`` for every enum constraint in the tree."""
        if self.enum is not None:
            yield path, self.enum
        for name, child in self.properties:
            yield from child.iter_enums(f"{path}.{name}")
        if self.items is not None:
            yield from self.items.iter_enums(f"{path}[]")


# --- Normalization ---


def _resolve_ref(ref: str, defs: dict[str, Any], path: str) -> dict[str, Any]:
    prefix = "#/$defs/"
    if not ref.startswith(prefix):
        raise SchemaConversionError(f"unsupported $ref {ref!r}", path=path)
    name = ref[len(prefix) :]
    if name not in defs:
        raise SchemaConversionError(f"unresolved $ref {ref!r}", path=path)
    return defs[name]


def _normalize(
    schema: dict[str, Any],
    defs: dict[str, Any],
    path: str,
    seen_refs: tuple[str, ...],
) -> SchemaNode:
    if not isinstance(schema, dict):
        raise SchemaConversionError("schema must be an object", path=path)

    if "$ref" in schema:
        ref = schema["$ref"]
        if ref in seen_refs:
            raise SchemaConversionError(f"recursive $ref {ref!r}", path=path)
        target = _resolve_ref(ref, defs, path)
        merged = {**target, **{k: v for k, v in schema.items() if k != "$ref"}}
        return _normalize(merged, defs, path, (*seen_refs, ref))

    unsupported = sorted(set(schema) - _SUPPORTED_KEYS - _ANNOTATION_KEYS)
    if unsupported:
        raise SchemaConversionError(
            f"{', '.join(unsupported)} not supported", path=path
        )

    description = schema.get("description")

    union = schema.get("anyOf") or schema.get("oneOf")
    if union is not None:
        branches = [b for b in union if b.get("type") != "null"]
        if len(branches) != 1:
            raise SchemaConversionError(
                f"union of {len(branches)} non-null types cannot be represented",
                path=path,
            )
        inner = _normalize(branches[0], defs, path, seen_refs)
        node = inner.nullable_copy() if len(branches) < len(union) else inner
        if description and not node.description:
            node = dataclasses.replace(node, description=description)
        return node

    raw_type = schema.get("type")
    nullable = False
    if isinstance(raw_type, list):
        non_null = [t for t in raw_type if t != "null"]
        if len(non_null) != 1:
            raise SchemaConversionError(
                f"type list {raw_type!r} cannot be represented", path=path
            )
        nullable = len(non_null) < len(raw_type)
        raw_type = non_null[0]

    enum: tuple[Any, ...] | None = None
    if "const" in schema:
        enum = (schema["const"],)
    elif "enum" in schema:
        enum = tuple(v for v in schema["enum"] if v is not None)
        nullable = nullable or len(enum) < len(schema["enum"])
        if not enum:
            raise SchemaConversionError("enum has no non-null values", path=path)

    if raw_type is None:
        if enum is not None and all(isinstance(v, str) for v in enum):
            raw_type = "string"
        else:
            raise SchemaConversionError("missing type", path=path)

    fmt = schema.get("format")
    if fmt is not None and fmt not in SUPPORTED_FORMATS:
        raise SchemaConversionError(f"format {fmt!r} is not supported", path=path)

    if raw_type == "object":
        if "additionalProperties" in schema and schema["additionalProperties"] not in (
            False,
            None,
        ):
            raise SchemaConversionError(
                "free-form mappings (additionalProperties) are not supported",
                path=path,
            )
        props = schema.get("properties", {})
        if not props:
            raise SchemaConversionError("object without properties", path=path)
        properties = tuple(
            (name, _normalize(sub, defs, f"{path}.{name}", seen_refs))
            for name, sub in props.items()
        )
        return SchemaNode(
            kind="object",
            nullable=nullable,
            description=description,
            properties=properties,
            required=tuple(schema.get("required", ())),
        )

    if raw_type == "array":
        items_schema = schema.get("items")
        items = (
            _normalize(items_schema, defs, f"{path}[]", seen_refs)
            if items_schema
            else SchemaNode(kind="string")
        )
        return SchemaNode(
            kind="array",
            nullable=nullable,
            description=description,
            items=items,
            min_items=schema.get("minItems"),
            max_items=schema.get("maxItems"),
        )

    if raw_type not in SCALAR_KINDS:
        raise SchemaConversionError(f"unsupported type {raw_type!r}", path=path)

    return SchemaNode(
        kind=raw_type,
        nullable=nullable,
        description=description,
        enum=enum,
        pattern=schema.get("pattern"),
        format=fmt,
        min_length=schema.get("minLength"),
        max_length=schema.get("maxLength"),
        minimum=schema.get("minimum"),
        maximum=schema.get("maximum"),
    )


def normalize(schema: OutputSchema | dict[str, Any]) -> SchemaNode:
    """Reduce a JSON schema (or ``OutputSchema``) to a ``SchemaNode`` tree.

    Raises:
        SchemaConversionError: If any construct cannot be represented.
    """
    raw = schema.json_schema() if isinstance(schema, OutputSchema) else schema
    defs = dict(raw.get("$defs", {}))
    body = {k: v for k, v in raw.items() if k not in ("$defs", *_ANNOTATION_KEYS)}
    return _normalize(body, defs, "$", ())


# --- Gemini ---

_GEMINI_TYPES: dict[str, types.Type] = {
    "object": types.Type.OBJECT,
    "array": types.Type.ARRAY,
    "string": types.Type.STRING,
    "number": types.Type.NUMBER,
    "integer": types.Type.INTEGER,
    "boolean": types.Type.BOOLEAN,
}


def _gemini(node: SchemaNode, path: str) -> types.Schema:
    fields: dict[str, Any] = {"type": _GEMINI_TYPES[node.kind]}
    if node.nullable:
        fields["nullable"] = True
    if node.description:
        fields["description"] = node.description
    if node.kind == "object":
        fields["properties"] = {
            name: _gemini(child, f"{path}.{name}") for name, child in node.properties
        }
        fields["required"] = list(node.required)
        fields["property_ordering"] = [name for name, _ in node.properties]
    elif node.kind == "array":
        fields["items"] = _gemini(node.items or SchemaNode(kind="string"), f"{path}[]")
        if node.min_items is not None:
            fields["min_items"] = node.min_items
        if node.max_items is not None:
            fields["max_items"] = node.max_items
    else:
        if node.enum is not None:
            if node.kind != "string" or not all(isinstance(v, str) for v in node.enum):
                raise SchemaConversionError(
                    "Gemini only supports string enums", path=path
                )
            fields["enum"] = list(node.enum)
            fields["format"] = "enum"
        elif node.format:
            fields["format"] = node.format
        if node.pattern is not None:
            fields["pattern"] = node.pattern
        if node.min_length is not None:
            fields["min_length"] = node.min_length
        if node.max_length is not None:
            fields["max_length"] = node.max_length
        if node.minimum is not None:
            fields["minimum"] = node.minimum
        if node.maximum is not None:
            fields["maximum"] = node.maximum
    return types.Schema(**fields)


def to_gemini_schema(schema: OutputSchema | dict[str, Any] | SchemaNode) -> types.Schema:
    """Render a schema as Gemini's native ``types.Schema``."""
    node = schema if isinstance(schema, SchemaNode) else normalize(schema)
    return _gemini(node, "$")


# --- OpenAI-compatible JSON schema ---


def _strict(node: SchemaNode) -> dict[str, Any]:
    out: dict[str, Any] = {"type": [node.kind, "null"] if node.nullable else node.kind}
    if node.description:
        out["description"] = node.description
    if node.kind == "object":
        out["properties"] = {name: _strict(child) for name, child in node.properties}
        out["required"] = list(node.required)
        out["additionalProperties"] = False
    elif node.kind == "array":
        out["items"] = _strict(node.items or SchemaNode(kind="string"))
        if node.min_items is not None:
            out["minItems"] = node.min_items
        if node.max_items is not None:
            out["maxItems"] = node.max_items
    else:
        if node.enum is not None:
            out["enum"] = [*node.enum, None] if node.nullable else list(node.enum)
        if node.pattern is not None:
            out["pattern"] = node.pattern
        if node.format and node.format != "enum":
            out["format"] = node.format
        for key, value in (
            ("minLength", node.min_length),
            ("maxLength", node.max_length),
            ("minimum", node.minimum),
            ("maximum", node.maximum),
        ):
            if value is not None:
                out[key] = value
    return out


def to_strict_json_schema(
    schema: OutputSchema | dict[str, Any] | SchemaNode,
) -> dict[str, Any]:
    """Render an inline JSON schema with no ``$ref`` for json_schema modes."""
    node = schema if isinstance(schema, SchemaNode) else normalize(schema)
    return _strict(node)


# --- Textual instruction ---

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Respond with valid JSON only. No markdown, no code fences, "
    "no explanation outside the JSON."
)


def _nullable_paths(node: SchemaNode, path: str = "$") -> list[str]:
    found = [path] if node.nullable and path != "$" else []
    for name, child in node.properties:
        found += _nullable_paths(child, f"{path}.{name}")
    if node.items is not None:
        found += _nullable_paths(node.items, f"{path}[]")
    return found


def to_instruction(schema: OutputSchema | dict[str, Any] | SchemaNode) -> str:
    """Render prompt text that steers a model without native schema support.

    Enum fields get an explicit allowed-values line, since a model only sees
    the constraint through this text.
    """
    node = schema if isinstance(schema, SchemaNode) else normalize(schema)
    lines = [
        JSON_ONLY_INSTRUCTION,
        "The JSON must match this schema exactly:",
        json.dumps(_strict(node), ensure_ascii=False, separators=(",", ":")),
    ]
    for path, values in node.iter_enums():
        allowed = ", ".join(json.dumps(v, ensure_ascii=False) for v in values)
        lines.append(f"Field {path} must be one of: {allowed}.")
    for path in _nullable_paths(node):
        lines.append(f"Field {path} may be null.")
    return "\n".join(lines)
