"""Abstract output schemas.

An ``OutputSchema`` wraps a pydantic model or any typing annotation pydantic
understands (``list[Takeaway]``, ``Literal[...]``). Providers never see the
Python type; they see the JSON schema produced here, run through the
negotiator.
"""

from __future__ import annotations

from collections.abc import Mapping
import dataclasses
from types import MappingProxyType
from typing import Any

from pydantic import TypeAdapter

DEFAULT_MIN_RECORDS = 4
DEFAULT_MAX_RECORDS = 6
DEFAULT_MAX_LIST_ITEMS = 2


@dataclasses.dataclass(frozen=True, slots=True)
class RecordTemplate:
    """Shape of a fixed-template repeating record for partial recovery.

    A record is an object holding ``string_fields`` in order followed by a list
    of strings under ``list_field``, e.g. ``{"label", "insight", "timestamps"}``.
    ``min_records`` is the least number of intact records worth keeping;
    ``max_records`` caps how many are kept. ``field_aliases`` lists alternate
    keys accepted for a field, tried in order after the canonical name.
    """

    string_fields: tuple[str, ...]
    list_field: str
    min_records: int = DEFAULT_MIN_RECORDS
    max_records: int = DEFAULT_MAX_RECORDS
    max_list_items: int = DEFAULT_MAX_LIST_ITEMS
    container_keys: tuple[str, ...] = ("items",)
    field_aliases: Mapping[str, tuple[str, ...]] = dataclasses.field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        if not isinstance(self.field_aliases, MappingProxyType):
            object.__setattr__(
                self, "field_aliases", MappingProxyType(dict(self.field_aliases))
            )
        if not self.string_fields:
            raise ValueError("string_fields: must name at least one field")
        if self.min_records < 1 or self.max_records < self.min_records:
            raise ValueError("min_records/max_records: need 1 <= min <= max")
        if self.max_list_items < 1:
            raise ValueError("max_list_items: must be positive")

    @property
    def field_names(self) -> tuple[str, ...]:
        return (*self.string_fields, self.list_field)

    def names_for(self, field: str) -> tuple[str, ...]:
        """Keys to look up for ``field``: the canonical name, then aliases."""
        return (field, *self.field_aliases.get(field, ()))

    def with_thresholds(
        self, *, min_records: int | None = None, max_records: int | None = None
    ) -> RecordTemplate:
        """Return a copy with different acceptance thresholds."""
        return dataclasses.replace(
            self,
            min_records=self.min_records if min_records is None else min_records,
            max_records=self.max_records if max_records is None else max_records,
        )


TAKEAWAY_TEMPLATE = RecordTemplate(
    string_fields=("label", "insight"),
    list_field="timestamps",
    container_keys=("takeaways", "items"),
    field_aliases={
        "label": ("title",),
        "insight": ("summary", "description"),
        "timestamps": ("timestamp", "time"),
    },
)


@dataclasses.dataclass(frozen=True)
class OutputSchema:
    """The structured shape a caller expects back from a generation."""

    type_: Any
    name: str = "response"
    template: RecordTemplate | None = None
    adapter: TypeAdapter[Any] = dataclasses.field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "adapter", TypeAdapter(self.type_))

    def json_schema(self) -> dict[str, Any]:
        """JSON schema in validation mode, as pydantic generates it."""
        return self.adapter.json_schema()

    def validate(self, value: Any) -> Any:
        """Validate ``value``; raises ``pydantic.ValidationError`` on mismatch."""
        return self.adapter.validate_python(value)
