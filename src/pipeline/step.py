# src/pipeline/step.py - v1
"""Step definition: one named, bounded, idempotent unit of work."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from gapflow.core.models import Run

StepOutput = dict[str, Any]
ComputeFn = Callable[[Run], Union[StepOutput, Awaitable[StepOutput]]]
FallbackFn = Callable[[Run], Union[StepOutput, Awaitable[StepOutput]]]


@dataclass(frozen=True)
class StepDefinition:
    """A step of a linear workflow.

    Attributes:
        id: Unique step identifier.
        compute: Produces the step's fields from a snapshot of the run.
            Sync or async. Sync compute runs in a worker thread so the
            time budget bounds it too; a timed-out thread runs to completion
            in the background.
        fallback: Degraded, structurally valid substitute. Required for
            non-fatal steps.
        is_done: Idempotency guard. Defaults to "every produced field is
            already present".
        produces: Field names the step writes.
        requires: Field names that must be present before compute runs.
        time_budget_ms: Budget for compute; None uses the engine default.
        fatal: Failures mark the run failed instead of using the fallback.
        finding: Short teaser shown while the step runs.
    """

    id: str
    compute: ComputeFn
    fallback: FallbackFn | None = None
    is_done: Callable[[Run], bool] | None = None
    produces: tuple[str, ...] = ()
    requires: tuple[str, ...] = ()
    time_budget_ms: int | None = None
    fatal: bool = False
    finding: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Step id must be non-empty")
        if not self.fatal and self.fallback is None:
            raise ValueError(f"Non-fatal step '{self.id}' must declare a fallback")
        if self.time_budget_ms is not None and self.time_budget_ms <= 0:
            raise ValueError(f"Step '{self.id}' time budget must be > 0")

    def done(self, run: Run) -> bool:
        if self.is_done is not None:
            return bool(self.is_done(run))
        return bool(self.produces) and all(run.has_field(f) for f in self.produces)

    def missing_requirements(self, run: Run) -> list[str]:
        return [name for name in self.requires if not run.has_field(name)]
