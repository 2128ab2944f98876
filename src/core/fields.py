# src/core/fields.py - v1
"""Typed field registry validating every merge into Run.fields.

Each known field name maps to a pydantic-validatable type. Values are
validated, then stored in JSON form so a Run always serializes.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from gapflow.core.errors import UnknownFieldError


class FieldRegistry:
    """Map of field name -> expected type.

    Args:
        types: Field name to type (pydantic model, builtin generic, ...).
        strict: Reject field names that are not registered.
    """

    def __init__(self, types: dict[str, Any] | None = None, strict: bool = True) -> None:
        self._adapters: dict[str, TypeAdapter] = {}
        self._strict = strict
        for name, tp in (types or {}).items():
            self.register(name, tp)

    @property
    def names(self) -> list[str]:
        return sorted(self._adapters)

    @property
    def strict(self) -> bool:
        return self._strict

    def register(self, name: str, tp: Any) -> None:
        self._adapters[name] = TypeAdapter(tp)

    def validate(self, values: dict[str, Any]) -> dict[str, Any]:
        """Validate a partial field map.

        Raises:
            UnknownFieldError: Strict registry and an unregistered name.
            pydantic.ValidationError: A value does not match its type.
        """
        if not isinstance(values, dict):
            raise TypeError(f"Step output must be a dict, got {type(values).__name__}")

        unknown = [n for n in values if n not in self._adapters]
        if unknown and self._strict:
            raise UnknownFieldError(unknown)

        validated: dict[str, Any] = {}
        for name, value in values.items():
            adapter = self._adapters.get(name)
            if adapter is None:
                validated[name] = value
                continue
            parsed = adapter.validate_python(value)
            validated[name] = adapter.dump_python(parsed, mode="json")
        return validated


def open_registry() -> FieldRegistry:
    """Registry accepting any field name, used by generic engines."""
    return FieldRegistry(strict=False)
