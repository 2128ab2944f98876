# src/schema/repairer.py - v1
"""Deterministic repair of malformed LLM output.

validate_and_repair() returns valid input untouched. Otherwise it runs
four passes over a deep copy, each over the whole tree, in this order:

1. arrays: null -> [], keyed collections deduplicated, trimmed to a
   stable prefix, padded with marked placeholders
2. missing required entries: keyed entries and declared placeholders
3. enums: normalized spelling -> synonym -> allowed value -> default
4. derived numbers: recomputed bottom-up from repaired components

Later passes assume the shapes produced by earlier ones. The result is
re-validated and anything still invalid raises UnrepairableSchemaError.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

from gapflow.schema.errors import UnrepairableSchemaError
from gapflow.schema.models import (
    PLACEHOLDER_FLAG,
    PLACEHOLDER_PREFIX,
    FieldSpec,
    RepairResult,
)
from gapflow.schema.validator import (
    ROOT,
    child_path,
    compute_derived,
    index_path,
    is_number,
    item_key,
    validate,
)
from gapflow.scoring.aggregator import round_half_up

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^a-z]")


def validate_and_repair(raw: Any, schema: FieldSpec) -> RepairResult:
    """Validate raw against schema, repairing it when possible.

    Args:
        raw: Parsed producer output (typically a dict from JSON).
        schema: Declared shape.

    Returns:
        RepairResult with the valid value and the repairs applied.

    Raises:
        UnrepairableSchemaError: Violations remain after every repair pass.
    """
    if not validate(raw, schema):
        return RepairResult(value=raw, repairs=[])

    repairs: list[str] = []
    value = copy.deepcopy(raw)
    value = _repair_arrays(value, schema, ROOT, repairs)
    value = _fill_missing(value, schema, ROOT, repairs)
    value = _normalize_enums(value, schema, ROOT, repairs)
    value = _recompute_derived(value, schema, ROOT, repairs)

    remaining = validate(value, schema)
    if remaining:
        logger.debug("Repair left %d violation(s): %s", len(remaining), remaining[0].message)
        raise UnrepairableSchemaError(remaining[0].path, remaining)

    logger.debug("Applied %d repair(s)", len(repairs))
    return RepairResult(value=value, repairs=repairs)


def normalize_token(text: str) -> str:
    """Lowercase, letters only: "Category Leader" -> "categoryleader"."""
    return _NON_LETTERS.sub("", text.lower())


def match_enum(value: Any, spec: FieldSpec) -> str | None:
    """Allowed value matching a raw spelling or one of its synonyms."""
    allowed = spec.allowed or []
    if value in allowed:
        return value
    if not isinstance(value, str):
        return None
    token = normalize_token(value)
    synonyms = {normalize_token(k): v for k, v in spec.synonyms.items()}
    if token in synonyms and synonyms[token] in allowed:
        return synonyms[token]
    for candidate in allowed:
        if normalize_token(candidate) == token:
            return candidate
    return None


def normalize_enum(value: Any, spec: FieldSpec) -> Any:
    """Map a raw enum spelling onto an allowed value, else the default."""
    matched = match_enum(value, spec)
    return matched if matched is not None else spec.default


# --- Placeholders ---


def mark_placeholder(value: Any) -> Any:
    """Make a synthetic value recognizable as such."""
    if isinstance(value, str):
        return value if value.startswith(PLACEHOLDER_PREFIX) else PLACEHOLDER_PREFIX + value
    if isinstance(value, dict):
        return {**value, PLACEHOLDER_FLAG: True}
    return value


def _substitute(template: Any, key: str) -> Any:
    if isinstance(template, str):
        return template.replace("{key}", key)
    if isinstance(template, dict):
        return {k: _substitute(v, key) for k, v in template.items()}
    if isinstance(template, list):
        return [_substitute(v, key) for v in template]
    return template


def synthesize(spec: FieldSpec | None, label: str) -> Any:
    """Neutral stand-in value for a spec (numbers take the range midpoint)."""
    if spec is None:
        return mark_placeholder(f"{label} to be defined")
    kind = spec.type
    if kind == "string":
        return mark_placeholder(f"{label} to be defined")
    if kind in ("number", "integer"):
        if spec.minimum is not None and spec.maximum is not None:
            return round_half_up((spec.minimum + spec.maximum) / 2)
        return spec.minimum if spec.minimum is not None else 0
    if kind == "boolean":
        return False
    if kind == "enum":
        return spec.default if spec.default is not None else (spec.allowed or [None])[0]
    if kind == "array":
        return [synthesize(spec.items, label) for _ in range(spec.lower_bound or 0)]
    if kind == "object":
        obj = {
            name: synthesize(prop, f"{label} {name}")
            for name, prop in spec.properties.items()
            if prop.required and prop.derived is None
        }
        return mark_placeholder(obj)
    return None


def _element_placeholder(spec: FieldSpec, position: int) -> Any:
    if spec.placeholder is not None:
        return mark_placeholder(_substitute(copy.deepcopy(spec.placeholder), str(position)))
    return synthesize(spec.items, "Additional item")


def _keyed_placeholder(spec: FieldSpec, key: str) -> Any:
    key_field = spec.key_field
    assert key_field is not None
    if spec.key_placeholder is not None:
        entry = _substitute(copy.deepcopy(spec.key_placeholder), key)
    else:
        entry = synthesize(spec.items, key)
        if not isinstance(entry, dict):
            entry = {}
    entry[key_field] = key
    return mark_placeholder(entry)


# --- Pass 1: arrays ---


def _repair_arrays(value: Any, spec: FieldSpec, path: str, repairs: list[str]) -> Any:
    if spec.type == "object" and isinstance(value, dict):
        for name, prop in spec.properties.items():
            prop_path = child_path(path, name)
            if prop.type == "array" and prop.required and value.get(name) is None:
                value[name] = []
                repairs.append(f"{prop_path}: missing array set to []")
            if value.get(name) is not None:
                value[name] = _repair_arrays(value[name], prop, prop_path, repairs)
        return value

    if spec.type == "array" and isinstance(value, list):
        if spec.key_field is not None:
            value = _drop_bad_keys(value, spec, path, repairs)

        high = spec.upper_bound
        if high is not None and len(value) > high:
            repairs.append(f"{path}: trimmed {len(value)} -> {high} items")
            value = value[:high]

        low = spec.lower_bound
        if low is not None and len(value) < low and not spec.required_keys:
            before = len(value)
            while len(value) < low:
                value.append(_element_placeholder(spec, len(value) + 1))
            repairs.append(f"{path}: padded {before} -> {low} items with placeholders")

        if spec.items is not None:
            value = [
                _repair_arrays(item, spec.items, index_path(path, i), repairs)
                for i, item in enumerate(value)
            ]
    return value


def _drop_bad_keys(value: list[Any], spec: FieldSpec, path: str, repairs: list[str]) -> list[Any]:
    key_field = spec.key_field
    assert key_field is not None
    allowed = set(spec.required_keys)
    key_spec = spec.items.properties.get(key_field) if spec.items is not None else None
    seen: set[Any] = set()
    kept: list[Any] = []
    for item in value:
        key = item_key(item, key_field)
        if key is not None and key_spec is not None and key_spec.type == "enum":
            # Match "Brand" to "brand" before judging the key unknown
            canonical = match_enum(key, key_spec)
            if canonical is not None and canonical != key:
                item[key_field] = canonical
                repairs.append(f"{path}: normalized {key_field} {key!r} -> {canonical!r}")
                key = canonical
        if key is not None:
            if key in seen:
                repairs.append(f"{path}: dropped duplicate {key_field} {key!r}")
                continue
            if allowed and key not in allowed:
                repairs.append(f"{path}: dropped unknown {key_field} {key!r}")
                continue
            seen.add(key)
        kept.append(item)
    return kept


# --- Pass 2: missing required entries ---


def _fill_missing(value: Any, spec: FieldSpec, path: str, repairs: list[str]) -> Any:
    if spec.type == "object" and isinstance(value, dict):
        for name, prop in spec.properties.items():
            prop_path = child_path(path, name)
            if value.get(name) is None and prop.required and prop.placeholder is not None:
                if prop.type == "array":
                    continue
                filled = _substitute(copy.deepcopy(prop.placeholder), name)
                value[name] = mark_placeholder(filled)
                repairs.append(f"{prop_path}: missing field filled with placeholder")
            if value.get(name) is not None:
                value[name] = _fill_missing(value[name], prop, prop_path, repairs)
        return value

    if spec.type == "array" and isinstance(value, list):
        if spec.key_field is not None and spec.required_keys:
            present = {item_key(item, spec.key_field) for item in value}
            for key in spec.required_keys:
                if key not in present:
                    value.append(_keyed_placeholder(spec, key))
                    repairs.append(f"{path}: added placeholder for missing {key!r}")
        if spec.items is not None:
            value = [
                _fill_missing(item, spec.items, index_path(path, i), repairs)
                for i, item in enumerate(value)
            ]
    return value


# --- Pass 3: enums ---


def _normalize_enums(value: Any, spec: FieldSpec, path: str, repairs: list[str]) -> Any:
    if spec.type == "enum":
        if value in (spec.allowed or []):
            return value
        normalized = normalize_enum(value, spec)
        if normalized is not None:
            repairs.append(f"{path}: normalized {value!r} -> {normalized!r}")
            return normalized
        return value

    if spec.type == "object" and isinstance(value, dict):
        for name, prop in spec.properties.items():
            prop_path = child_path(path, name)
            current = value.get(name)
            if current is None:
                if prop.type == "enum" and prop.required and prop.default is not None:
                    value[name] = prop.default
                    repairs.append(f"{prop_path}: missing enum set to {prop.default!r}")
                continue
            value[name] = _normalize_enums(current, prop, prop_path, repairs)
        return value

    if spec.type == "array" and isinstance(value, list) and spec.items is not None:
        return [
            _normalize_enums(item, spec.items, index_path(path, i), repairs)
            for i, item in enumerate(value)
        ]
    return value


# --- Pass 4: derived values ---


def _recompute_derived(value: Any, spec: FieldSpec, path: str, repairs: list[str]) -> Any:
    if spec.type == "array" and isinstance(value, list) and spec.items is not None:
        return [
            _recompute_derived(item, spec.items, index_path(path, i), repairs)
            for i, item in enumerate(value)
        ]

    if spec.type != "object" or not isinstance(value, dict):
        return value

    for name, prop in spec.properties.items():
        if value.get(name) is not None:
            value[name] = _recompute_derived(value[name], prop, child_path(path, name), repairs)

    for name, prop in spec.properties.items():
        if prop.derived is None:
            continue
        expected = compute_derived(value, prop.derived)
        if expected is None:
            continue
        supplied = value.get(name)
        prop_path = child_path(path, name)
        if not is_number(supplied):
            value[name] = expected
            repairs.append(f"{prop_path}: derived value set to {expected}")
        elif abs(supplied - expected) > prop.derived.tolerance:
            logger.warning(
                "%s mismatch: producer %s, recomputed %s; using recomputed",
                prop_path, supplied, expected,
            )
            value[name] = expected
            repairs.append(f"{prop_path}: overwrote {supplied} with recomputed {expected}")
    return value
