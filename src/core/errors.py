# src/core/errors.py - v1
"""Exception taxonomy for the step engine and its collaborators.

Only fatal-step failures change a run's status. Timeouts, producer
malformation and persistence errors are absorbed by the engine.
"""

from __future__ import annotations


class PreconditionError(Exception):
    """A step's required upstream field is absent from the run."""

    def __init__(self, step_id: str, missing: list[str]) -> None:
        self.step_id = step_id
        self.missing = missing
        super().__init__(
            f"Missing required data for step '{step_id}': {', '.join(missing)}"
        )


class StepTimeoutError(Exception):
    """A step exceeded its time budget and declares no fallback."""

    def __init__(self, step_id: str, budget_ms: int) -> None:
        self.step_id = step_id
        self.budget_ms = budget_ms
        super().__init__(
            f"Step '{step_id}' exceeded its time budget of {budget_ms}ms"
        )


class StepFailure(Exception):
    """Fatal failure of a step; converted into run.status=failed."""

    def __init__(self, step_id: str, message: str) -> None:
        self.step_id = step_id
        self.message = message
        super().__init__(f"Step '{step_id}' failed: {message}")


class UnknownFieldError(ValueError):
    """A step produced a field name the registry does not know."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Unknown run field(s): {', '.join(sorted(names))}")


class StoreError(Exception):
    """A RunStore operation failed."""


class RunNotFoundError(StoreError):
    """No run is stored under the requested id."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")
