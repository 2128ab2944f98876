# src/core/models.py - v1
"""Core domain models: Run, StepResult, ScoreCard.

A Run is a self-contained value. The engine copies it before each
transition, so two runs never share mutable state.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

RunStatus = Literal["pending", "running", "completed", "failed"]
StepSource = Literal["computed", "fallback", "skipped"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScoreCard(BaseModel):
    """Derived scores for a run. Rebuilt as a whole, never patched."""

    model_config = {"frozen": True}

    dimension_scores: dict[str, float]
    overall_score: int = Field(ge=0, le=100)
    maturity_stage: str


class StepResult(BaseModel):
    """Outcome of one step execution, merged into Run.fields."""

    step_id: str
    values: dict[str, Any] = Field(default_factory=dict)
    source: StepSource = "computed"
    duration_ms: int = 0

    @property
    def degraded(self) -> bool:
        return self.source == "fallback"


class Run(BaseModel):
    """One execution of the staged workflow."""

    # === IDENTITY ===
    id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # === PROGRESS ===
    step_order: list[str] = Field(default_factory=list)
    completed_steps: list[str] = Field(default_factory=list)
    status: RunStatus = "pending"
    current_step: str | None = None
    current_finding: str | None = None
    progress: int = 0
    error: str | None = None

    # === ACCUMULATED WORK ===
    fields: dict[str, Any] = Field(default_factory=dict)
    degraded_steps: list[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def next_step(self) -> str | None:
        """Return the first step of step_order not yet completed."""
        done = set(self.completed_steps)
        for step_id in self.step_order:
            if step_id not in done:
                return step_id
        return None

    def has_field(self, name: str) -> bool:
        return self.fields.get(name) is not None

    def touch(self) -> None:
        self.updated_at = utc_now()

    def merge_fields(self, values: dict[str, Any]) -> None:
        """Merge validated step output into the field map."""
        self.fields.update(values)

    def mark_step_completed(self, step_id: str, degraded: bool = False) -> None:
        """Record step completion and move current_step forward."""
        if step_id not in self.completed_steps:
            self.completed_steps.append(step_id)
        if degraded and step_id not in self.degraded_steps:
            self.degraded_steps.append(step_id)
        self.error = None
        self.progress = self._compute_progress()

        following = self.next_step()
        if following is None:
            self.status = "completed"
            self.current_step = None
        else:
            self.current_step = following
        self.touch()

    def mark_completed(self) -> None:
        self.status = "completed"
        self.current_step = None
        self.progress = self._compute_progress()
        self.touch()

    def mark_failed(self, message: str) -> None:
        self.status = "failed"
        self.current_step = None
        self.error = message or "Unknown error"
        self.touch()

    def _compute_progress(self) -> int:
        if not self.step_order:
            return 100
        done = len(set(self.completed_steps) & set(self.step_order))
        return int(done * 100 / len(self.step_order))
