# src/pipeline/engine.py - v1
"""StepEngine: advance a Run through a fixed, linear step order.

Each advance() executes at most one step:

1. terminal run -> returned unchanged
2. no step left -> completed, persisted
3. status=running, current_step=next, progress event
4. idempotency guard -> skip compute
5. compute raced against the step's time budget (sync compute runs in a
   worker thread); on expiry the fallback is used and the compute is
   abandoned, never cancelled
6. non-fatal failure -> fallback; fatal failure -> run failed
7. validated merge into fields, step appended to completed_steps
8. best-effort persistence

The argument run is never mutated; a new Run value is returned.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from typing import Any, Iterable

from gapflow.config.settings import Settings
from gapflow.core.errors import PreconditionError, StepFailure, StepTimeoutError
from gapflow.core.fields import FieldRegistry, open_registry
from gapflow.core.ids import generate_run_id
from gapflow.core.models import Run, StepResult
from gapflow.core.retry import RetryConfig, uniform_configs, with_retry
from gapflow.logging.context import clear_context, set_run_context, set_step_context
from gapflow.pipeline.progress import EventKind, ProgressEvent, ProgressObserver
from gapflow.pipeline.step import StepDefinition
from gapflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)

DEFAULT_TIME_BUDGET_MS = 7000
DEFAULT_PERSIST_TIMEOUT_S = 5.0


class StepEngine:
    """Owns the step order and advances runs one step at a time.

    Args:
        steps: Step definitions in execution order.
        store: Run store for best-effort persistence (None = no persistence).
        registry: Field registry validating every merge (default: open).
        default_budget_ms: Budget for steps that declare none.
        budget_overrides: Per-step budgets taking priority over step declarations.
        observer: Receives progress events.
        persist_timeout_s: Upper bound on one persistence attempt sequence.
        persist_retry_configs: Retry policy for transient store errors.
    """

    def __init__(
        self,
        steps: Iterable[StepDefinition],
        store: BaseRunStore | None = None,
        registry: FieldRegistry | None = None,
        default_budget_ms: int = DEFAULT_TIME_BUDGET_MS,
        budget_overrides: dict[str, int] | None = None,
        observer: ProgressObserver | None = None,
        persist_timeout_s: float = DEFAULT_PERSIST_TIMEOUT_S,
        persist_retry_configs: dict[str, RetryConfig] | None = None,
    ) -> None:
        self._steps: dict[str, StepDefinition] = {}
        for step in steps:
            if step.id in self._steps:
                raise ValueError(f"Duplicate step id: {step.id!r}")
            self._steps[step.id] = step
        if not self._steps:
            raise ValueError("StepEngine requires at least one step")
        if default_budget_ms <= 0:
            raise ValueError("default_budget_ms must be > 0")

        self._store = store
        self._registry = registry or open_registry()
        self._default_budget_ms = default_budget_ms
        self._budget_overrides = dict(budget_overrides or {})
        self._observer = observer
        self._persist_timeout_s = persist_timeout_s
        self._persist_retry_configs = persist_retry_configs
        self._abandoned: set[asyncio.Future[Any]] = set()

    @classmethod
    def from_settings(
        cls,
        steps: Iterable[StepDefinition],
        settings: Settings,
        store: BaseRunStore | None = None,
        registry: FieldRegistry | None = None,
        observer: ProgressObserver | None = None,
    ) -> StepEngine:
        """Engine configured from application settings."""
        return cls(
            steps,
            store=store,
            registry=registry,
            default_budget_ms=settings.step_time_budget_ms,
            budget_overrides=settings.step_time_budgets_map,
            observer=observer,
            persist_timeout_s=settings.persist_timeout_s,
            persist_retry_configs=uniform_configs(
                settings.persist_max_retries, settings.persist_retry_delay_s
            ),
        )

    @property
    def step_order(self) -> list[str]:
        return list(self._steps)

    @property
    def abandoned_count(self) -> int:
        """Timed-out compute tasks still running in the background."""
        return len(self._abandoned)

    def budget_for(self, step: StepDefinition) -> int:
        if step.id in self._budget_overrides:
            return self._budget_overrides[step.id]
        if step.time_budget_ms is not None:
            return step.time_budget_ms
        return self._default_budget_ms

    def new_run(self, inputs: dict[str, Any] | None = None, run_id: str | None = None) -> Run:
        """Create a pending run for this engine's step order."""
        order = self.step_order
        return Run(
            id=run_id or generate_run_id(),
            inputs=dict(inputs or {}),
            step_order=order,
            current_step=order[0],
        )

    async def advance(self, run: Run) -> Run:
        """Execute at most one step and return the updated run."""
        if run.is_terminal:
            return run.model_copy(deep=True)

        work = run.model_copy(deep=True)
        set_run_context(work.id)
        try:
            return await self._advance(work)
        finally:
            clear_context()

    async def _advance(self, work: Run) -> Run:
        step_id = work.next_step()
        if step_id is None:
            work.mark_completed()
            logger.info("Run %s has no remaining steps, marked completed", work.id)
            self._emit(work, "finished")
            await self._persist(work)
            return work

        set_step_context(step_id)
        step = self._steps.get(step_id)
        if step is None:
            work.mark_failed(f"Unknown step '{step_id}' in step order")
            logger.error("Run %s: %s", work.id, work.error)
            self._emit(work, "failed", step_id, message=work.error)
            await self._persist(work)
            return work

        work.status = "running"
        work.current_step = step_id
        work.current_finding = step.finding
        work.touch()
        self._emit(work, "started", step_id)

        try:
            result = await self._execute(step, work)
        except Exception as e:
            work.mark_failed(str(e))
            logger.error("Run %s failed at step '%s': %s", work.id, step_id, e)
            self._emit(work, "failed", step_id, message=work.error)
            await self._persist(work)
            return work

        work.merge_fields(result.values)
        work.mark_step_completed(step_id, degraded=result.degraded)
        logger.info(
            "Step '%s' %s in %dms (progress %d%%)",
            step_id, result.source, result.duration_ms, work.progress,
        )

        kind: EventKind = "completed"
        if result.source == "skipped":
            kind = "skipped"
        elif result.degraded:
            kind = "degraded"
        self._emit(work, kind, step_id)
        if work.status == "completed":
            self._emit(work, "finished")

        await self._persist(work)
        return work

    # --- Step execution ---

    async def _execute(self, step: StepDefinition, run: Run) -> StepResult:
        """Run one step; returns a result or raises for a fatal failure."""
        if step.done(run):
            logger.info("Step '%s' already done, skipping compute", step.id)
            return StepResult(step_id=step.id, source="skipped")

        budget_ms = self.budget_for(step)
        start = time.monotonic()
        try:
            missing = step.missing_requirements(run)
            if missing:
                raise PreconditionError(step.id, missing)
            values = await self._race(step, run.model_copy(deep=True), budget_ms)
            validated = self._registry.validate(values)
        except StepTimeoutError:
            if step.fallback is None:
                raise
            logger.warning(
                "Step '%s' exceeded %dms budget, using fallback", step.id, budget_ms
            )
            return await self._fallback(step, run, start)
        except Exception as e:
            if step.fatal:
                raise
            logger.warning("Step '%s' failed (%s), using fallback", step.id, e)
            return await self._fallback(step, run, start)

        return StepResult(
            step_id=step.id,
            values=validated,
            source="computed",
            duration_ms=_elapsed_ms(start),
        )

    async def _race(self, step: StepDefinition, snapshot: Run, budget_ms: int) -> Any:
        """Await compute for at most budget_ms, abandoning it on expiry."""
        task = asyncio.ensure_future(_run_compute(step.compute, snapshot))
        done, _ = await asyncio.wait({task}, timeout=budget_ms / 1000)
        if task in done:
            return task.result()
        self._abandon(task, step.id)
        raise StepTimeoutError(step.id, budget_ms)

    async def _fallback(self, step: StepDefinition, run: Run, start: float) -> StepResult:
        assert step.fallback is not None
        try:
            values = await _invoke(step.fallback, run.model_copy(deep=True))
            validated = self._registry.validate(values)
        except Exception as e:
            raise StepFailure(step.id, f"fallback failed: {e}") from e
        return StepResult(
            step_id=step.id,
            values=validated,
            source="fallback",
            duration_ms=_elapsed_ms(start),
        )

    def _abandon(self, task: asyncio.Future[Any], step_id: str) -> None:
        # Tracked until done so a late result or error is consumed quietly.
        self._abandoned.add(task)
        task.add_done_callback(functools.partial(self._on_abandoned_done, step_id))

    def _on_abandoned_done(self, step_id: str, task: asyncio.Future[Any]) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Abandoned compute of step '%s' raised: %s", step_id, exc)
        else:
            logger.debug("Abandoned compute of step '%s' finished late, result discarded", step_id)

    # --- Collaborators ---

    async def _persist(self, run: Run) -> None:
        if self._store is None:
            return
        try:
            await asyncio.wait_for(
                with_retry(
                    self._store.upsert,
                    run.model_copy(deep=True),
                    operation=f"upsert run {run.id}",
                    retry_configs=self._persist_retry_configs,
                ),
                timeout=self._persist_timeout_s,
            )
        except Exception as e:
            logger.error("Failed to persist run %s: %s", run.id, e)

    def _emit(
        self,
        run: Run,
        kind: EventKind,
        step_id: str | None = None,
        message: str | None = None,
    ) -> None:
        if self._observer is None:
            return
        event = ProgressEvent(
            run_id=run.id,
            kind=kind,
            step_id=step_id,
            progress=run.progress,
            finding=run.current_finding,
            message=message,
        )
        try:
            self._observer.notify(event)
        except Exception as e:
            logger.warning("Progress observer failed on %s event: %s", kind, e)


async def _invoke(fn: Any, run: Run) -> Any:
    result = fn(run)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _run_compute(fn: Any, run: Run) -> Any:
    # Sync callables go to a worker thread so the budget race can expire.
    if inspect.iscoroutinefunction(fn):
        return await fn(run)
    result = await asyncio.to_thread(fn, run)
    if inspect.isawaitable(result):
        result = await result
    return result


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
