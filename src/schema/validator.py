# src/schema/validator.py - v1
"""Structural validation of parsed output against a FieldSpec tree.

Collects every violation with its JSON path instead of stopping at the
first one, so the repairer and its callers can report them all.
"""

from __future__ import annotations

import math
from typing import Any

from gapflow.schema.models import DerivedSpec, FieldSpec, Violation
from gapflow.scoring.aggregator import aggregate, round_half_up

ROOT = "$"


def is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def child_path(path: str, name: str) -> str:
    return f"{path}.{name}"


def index_path(path: str, index: int) -> str:
    return f"{path}[{index}]"


def item_key(item: Any, key_field: str) -> str | None:
    """Key of a keyed-collection item; non-string keys count as absent."""
    if isinstance(item, dict):
        key = item.get(key_field)
        if isinstance(key, str):
            return key
    return None


def compute_derived(parent: dict[str, Any], derived: DerivedSpec) -> int | None:
    """Recompute a derived value from its components.

    Returns None when the components are absent or malformed; those
    problems are reported at the component paths.
    """
    components = parent.get(derived.source)
    if not isinstance(components, list) or not components:
        return None

    values: dict[str, float] = {}
    ordered: list[float] = []
    for item in components:
        if not isinstance(item, dict):
            return None
        value = item.get(derived.value_field)
        if not is_number(value):
            return None
        ordered.append(float(value))
        key = item.get(derived.key_field)
        if isinstance(key, str):
            values[key] = float(value)

    if derived.fn == "mean":
        return round_half_up(sum(ordered) / len(ordered))

    if len(values) != len(ordered):
        return None
    try:
        return aggregate(values).overall_score
    except ValueError:
        return None


def validate(value: Any, spec: FieldSpec, path: str = ROOT) -> list[Violation]:
    """Return all violations of value against spec (empty when valid)."""
    violations: list[Violation] = []
    _validate(value, spec, path, violations)
    return violations


def _validate(value: Any, spec: FieldSpec, path: str, out: list[Violation]) -> None:
    kind = spec.type

    if kind == "any":
        return

    if kind == "string":
        if not isinstance(value, str):
            out.append(_type_violation(path, "string", value))
        return

    if kind in ("number", "integer"):
        _validate_number(value, spec, path, out)
        return

    if kind == "boolean":
        if not isinstance(value, bool):
            out.append(_type_violation(path, "boolean", value))
        return

    if kind == "enum":
        if value not in (spec.allowed or []):
            out.append(
                Violation(
                    path=path,
                    code="enum",
                    message=f"{value!r} is not one of {spec.allowed}",
                )
            )
        return

    if kind == "object":
        _validate_object(value, spec, path, out)
        return

    if kind == "array":
        _validate_array(value, spec, path, out)


def _validate_number(value: Any, spec: FieldSpec, path: str, out: list[Violation]) -> None:
    if not is_number(value):
        out.append(_type_violation(path, spec.type, value))
        return
    if spec.type == "integer" and not float(value).is_integer():
        out.append(_type_violation(path, "integer", value))
        return
    if spec.minimum is not None and value < spec.minimum:
        out.append(
            Violation(path=path, code="range", message=f"{value} < minimum {spec.minimum}")
        )
    if spec.maximum is not None and value > spec.maximum:
        out.append(
            Violation(path=path, code="range", message=f"{value} > maximum {spec.maximum}")
        )


def _validate_object(value: Any, spec: FieldSpec, path: str, out: list[Violation]) -> None:
    if not isinstance(value, dict):
        out.append(_type_violation(path, "object", value))
        return

    for name, prop in spec.properties.items():
        prop_path = child_path(path, name)
        prop_value = value.get(name)
        if prop_value is None:
            if prop.required:
                out.append(
                    Violation(path=prop_path, code="missing", message="required field is missing")
                )
            continue
        _validate(prop_value, prop, prop_path, out)

        if prop.derived is not None and is_number(prop_value):
            expected = compute_derived(value, prop.derived)
            if expected is not None and abs(prop_value - expected) > prop.derived.tolerance:
                out.append(
                    Violation(
                        path=prop_path,
                        code="derived",
                        message=(
                            f"value {prop_value} disagrees with recomputed {expected} "
                            f"(tolerance {prop.derived.tolerance})"
                        ),
                    )
                )


def _validate_array(value: Any, spec: FieldSpec, path: str, out: list[Violation]) -> None:
    if not isinstance(value, list):
        out.append(_type_violation(path, "array", value))
        return

    low, high = spec.lower_bound, spec.upper_bound
    if (low is not None and len(value) < low) or (high is not None and len(value) > high):
        bounds = f"exactly {low}" if spec.exact_items is not None else f"[{low}, {high}]"
        out.append(
            Violation(
                path=path,
                code="cardinality",
                message=f"{len(value)} items, expected {bounds}",
            )
        )

    if spec.key_field is not None:
        _validate_keys(value, spec, path, out)

    if spec.items is not None:
        for i, item in enumerate(value):
            _validate(item, spec.items, index_path(path, i), out)


def _validate_keys(value: list[Any], spec: FieldSpec, path: str, out: list[Violation]) -> None:
    key_field = spec.key_field
    assert key_field is not None
    allowed = set(spec.required_keys)
    seen: set[Any] = set()

    for i, item in enumerate(value):
        key = item_key(item, key_field)
        if key is None:
            continue
        if key in seen:
            out.append(
                Violation(
                    path=index_path(path, i),
                    code="duplicate_key",
                    message=f"duplicate {key_field} {key!r}",
                )
            )
            continue
        seen.add(key)
        if allowed and key not in allowed:
            out.append(
                Violation(
                    path=index_path(path, i),
                    code="unknown_key",
                    message=f"unexpected {key_field} {key!r}",
                )
            )

    for key in spec.required_keys:
        if key not in seen:
            out.append(
                Violation(
                    path=path,
                    code="missing_key",
                    message=f"missing entry with {key_field} {key!r}",
                )
            )


def _type_violation(path: str, expected: str, value: Any) -> Violation:
    return Violation(
        path=path,
        code="type",
        message=f"expected {expected}, got {type(value).__name__}",
    )
