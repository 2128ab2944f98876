# src/schema/models.py - v1
"""Declarative schema format for semi-structured LLM output.

A schema is plain data: it loads from a dict or a JSON file, so report
shapes can change without touching the repair code.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

FieldType = Literal[
    "string", "number", "integer", "boolean", "object", "array", "enum", "any"
]

PLACEHOLDER_PREFIX = "TBD - "
PLACEHOLDER_FLAG = "is_placeholder"


class DerivedSpec(BaseModel):
    """A numeric field recomputed from sibling components during repair.

    Attributes:
        fn: "mean" of the component values, or "weighted" via the score aggregator.
        source: Sibling field holding the components (array of objects).
        value_field: Numeric field read from each component.
        key_field: Component identifier, used as the weight key for "weighted".
        tolerance: Producer values within this distance are kept.
    """

    fn: Literal["mean", "weighted"] = "mean"
    source: str
    value_field: str = "score"
    key_field: str = "id"
    tolerance: float = Field(default=2.0, ge=0)


class FieldSpec(BaseModel):
    """Shape of one field. Nested through `items` and `properties`."""

    type: FieldType = "any"
    required: bool = True
    description: str | None = None

    # Numbers
    minimum: float | None = None
    maximum: float | None = None

    # Arrays
    items: FieldSpec | None = None
    min_items: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0)
    exact_items: int | None = Field(default=None, ge=0)
    placeholder: Any = None

    # Enums
    allowed: list[str] | None = None
    synonyms: dict[str, str] = Field(default_factory=dict)
    default: Any = None

    # Objects
    properties: dict[str, FieldSpec] = Field(default_factory=dict)

    # Keyed collections (arrays of objects identified by key_field)
    key_field: str | None = None
    required_keys: list[str] = Field(default_factory=list)
    key_placeholder: dict[str, Any] | None = None

    derived: DerivedSpec | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> FieldSpec:
        if self.type == "enum" and not self.allowed:
            raise ValueError("enum field requires a non-empty 'allowed' list")
        if self.exact_items is not None and (
            self.min_items is not None or self.max_items is not None
        ):
            raise ValueError("exact_items excludes min_items/max_items")
        if (
            self.min_items is not None
            and self.max_items is not None
            and self.min_items > self.max_items
        ):
            raise ValueError("min_items must be <= max_items")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError("minimum must be <= maximum")
        if self.key_field is not None and self.type != "array":
            raise ValueError("key_field is only valid on array fields")
        if self.type == "enum" and self.default is not None and self.default not in self.allowed:
            raise ValueError(f"enum default {self.default!r} not in allowed values")
        return self

    @property
    def lower_bound(self) -> int | None:
        return self.exact_items if self.exact_items is not None else self.min_items

    @property
    def upper_bound(self) -> int | None:
        return self.exact_items if self.exact_items is not None else self.max_items


class Violation(BaseModel):
    """A single schema violation at a JSON path."""

    path: str
    code: Literal[
        "missing", "type", "range", "cardinality", "enum",
        "duplicate_key", "unknown_key", "missing_key", "derived",
    ]
    message: str


class RepairResult(BaseModel):
    """Validated value plus the repairs applied to reach it."""

    value: Any
    repairs: list[str] = Field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def load_schema(source: dict[str, Any] | str | Path) -> FieldSpec:
    """Build a FieldSpec from a dict or a JSON file path."""
    if isinstance(source, dict):
        return FieldSpec.model_validate(source)
    data = json.loads(Path(source).read_text(encoding="utf-8"))
    return FieldSpec.model_validate(data)
