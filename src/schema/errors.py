# src/schema/errors.py - v1
"""Schema repair errors."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gapflow.schema.models import Violation


class UnrepairableSchemaError(ValueError):
    """Output still violates its schema after every repair rule ran.

    Attributes:
        path: Location of the first remaining violation (e.g. "$.dimensionSummaries[2].score").
        violations: All remaining violations.
    """

    def __init__(self, path: str, violations: list[Violation]) -> None:
        self.path = path
        self.violations = violations
        detail = violations[0].message if violations else "invalid value"
        super().__init__(f"Unrepairable schema violation at {path}: {detail}")
