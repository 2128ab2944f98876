# tests/unit/pipeline/test_engine.py - v1
"""Tests for pipeline/engine.py - StepEngine.advance semantics."""

from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from gapflow.core.fields import FieldRegistry
from gapflow.core.retry import uniform_configs
from gapflow.logging.context import get_context
from gapflow.pipeline.engine import StepEngine
from gapflow.pipeline.progress import ProgressChannel
from gapflow.pipeline.step import StepDefinition
from gapflow.storage.memory_store import InMemoryRunStore


# --- Helpers ---


def _const(**values):
    def compute(run):
        return dict(values)
    return compute


def _step(step_id: str, fatal: bool = False, **kwargs) -> StepDefinition:
    kwargs.setdefault("compute", _const(**{step_id: f"{step_id}-value"}))
    kwargs.setdefault("produces", (step_id,))
    if not fatal:
        kwargs.setdefault("fallback", _const(**{step_id: f"{step_id}-fallback"}))
    return StepDefinition(id=step_id, fatal=fatal, **kwargs)


def _engine(*steps: StepDefinition, **kwargs) -> StepEngine:
    return StepEngine(list(steps), **kwargs)


async def _drive(engine: StepEngine, run, limit: int = 20):
    runs = [run]
    while not runs[-1].is_terminal and len(runs) <= limit:
        runs.append(await engine.advance(runs[-1]))
    return runs


class TestConstruction:
    def test_duplicate_ids(self):
        with pytest.raises(ValueError, match="Duplicate"):
            _engine(_step("a"), _step("a"))

    def test_empty(self):
        with pytest.raises(ValueError, match="at least one"):
            StepEngine([])

    def test_new_run(self):
        engine = _engine(_step("a"), _step("b"))
        run = engine.new_run({"url": "acme.io"})
        assert run.step_order == ["a", "b"]
        assert run.current_step == "a"
        assert run.status == "pending"
        assert run.id.startswith("GAP-")

    def test_budget_precedence(self):
        step = _step("a", time_budget_ms=500)
        engine = _engine(step, default_budget_ms=1000)
        assert engine.budget_for(step) == 500
        engine = _engine(step, budget_overrides={"a": 200})
        assert engine.budget_for(step) == 200
        assert _engine(_step("b"), default_budget_ms=1000).budget_for(_step("b")) == 1000


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self):
        engine = _engine(_step("a"), _step("b"), _step("c"))
        runs = await _drive(engine, engine.new_run())
        final = runs[-1]
        assert final.status == "completed"
        assert final.completed_steps == ["a", "b", "c"]
        assert final.fields == {"a": "a-value", "b": "b-value", "c": "c-value"}
        assert final.current_step is None
        assert final.degraded_steps == []
        assert len(runs) == 4

    @pytest.mark.asyncio
    async def test_argument_not_mutated(self):
        engine = _engine(_step("a"), _step("b"))
        run = engine.new_run()
        after = await engine.advance(run)
        assert run.completed_steps == []
        assert run.status == "pending"
        assert after.completed_steps == ["a"]
        assert after.status == "running"
        assert after.current_step == "b"

    @pytest.mark.asyncio
    async def test_async_compute(self):
        async def compute(run):
            await asyncio.sleep(0)
            return {"a": 1}

        engine = _engine(_step("a", compute=compute))
        run = await engine.advance(engine.new_run())
        assert run.fields["a"] == 1

    @pytest.mark.asyncio
    async def test_progress_monotonic(self):
        engine = _engine(_step("a"), _step("b"), _step("c"), _step("d"))
        runs = await _drive(engine, engine.new_run())
        progress = [r.progress for r in runs]
        assert progress == sorted(progress)
        assert progress[-1] == 100
        steps = [len(r.completed_steps) for r in runs]
        assert steps == sorted(steps)

    @pytest.mark.asyncio
    async def test_compute_sees_previous_fields(self):
        seen = {}

        def compute_b(run):
            seen.update(run.fields)
            return {"b": run.fields["a"] + "!"}

        engine = _engine(_step("a"), _step("b", compute=compute_b, requires=("a",)))
        runs = await _drive(engine, engine.new_run())
        assert seen == {"a": "a-value"}
        assert runs[-1].fields["b"] == "a-value!"


class TestTerminalRuns:
    @pytest.mark.asyncio
    async def test_terminal_run_unchanged(self):
        store = InMemoryRunStore()
        engine = _engine(_step("a"), store=store)
        done = await engine.advance(engine.new_run())
        writes = store.writes
        again = await engine.advance(done)
        assert again == done
        assert again is not done
        assert store.writes == writes

    @pytest.mark.asyncio
    async def test_all_steps_completed_but_not_marked(self):
        engine = _engine(_step("a"))
        run = engine.new_run().model_copy(update={"completed_steps": ["a"]})
        result = await engine.advance(run)
        assert result.status == "completed"
        assert result.current_step is None

    @pytest.mark.asyncio
    async def test_unknown_step_in_order_fails_run(self):
        engine = _engine(_step("a"))
        run = engine.new_run().model_copy(update={"step_order": ["a", "ghost"], "completed_steps": ["a"]})
        result = await engine.advance(run)
        assert result.status == "failed"
        assert "ghost" in result.error


class TestLogContext:
    @pytest.mark.asyncio
    async def test_context_visible_during_compute(self):
        seen = []

        def compute(run):
            seen.append(get_context())
            return {"a": 1}

        engine = _engine(_step("a", compute=compute))
        run = engine.new_run()
        await engine.advance(run)
        assert seen[0].run_id == run.id
        assert seen[0].step == "a"

    @pytest.mark.asyncio
    async def test_context_cleared_after_advance(self):
        engine = _engine(_step("a"), _step("b"))
        await engine.advance(engine.new_run())
        assert get_context().as_dict() == {}

    @pytest.mark.asyncio
    async def test_context_cleared_after_unknown_step(self):
        engine = _engine(_step("a"))
        run = engine.new_run().model_copy(update={"step_order": ["a", "ghost"], "completed_steps": ["a"]})
        await engine.advance(run)
        assert get_context().as_dict() == {}


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_done_step_skips_compute(self):
        compute = MagicMock(return_value={"a": "new"})
        engine = _engine(_step("a", compute=compute))
        run = engine.new_run().model_copy(update={"fields": {"a": "existing"}})
        result = await engine.advance(run)
        compute.assert_not_called()
        assert result.fields["a"] == "existing"
        assert result.completed_steps == ["a"]
        assert result.degraded_steps == []

    @pytest.mark.asyncio
    async def test_custom_is_done(self):
        compute = MagicMock(return_value={"a": 1})
        step = _step("a", compute=compute, is_done=lambda run: run.inputs.get("skip", False))
        engine = _engine(step)
        await engine.advance(engine.new_run({"skip": True}))
        compute.assert_not_called()

    @pytest.mark.asyncio
    async def test_re_advancing_same_snapshot_is_stable(self):
        calls = []

        def compute(run):
            calls.append(run.id)
            return {"a": "v"}

        engine = _engine(_step("a", compute=compute), _step("b"))
        first = await engine.advance(engine.new_run())
        second = await engine.advance(first)
        third = await engine.advance(first)
        assert second.completed_steps == third.completed_steps == ["a", "b"]
        assert len(calls) == 1


class TestFatalFailures:
    @pytest.mark.asyncio
    async def test_fatal_exception_fails_run(self):
        def boom(run):
            raise RuntimeError("no data")

        engine = _engine(_step("a", fatal=True, compute=boom), _step("b"))
        result = await engine.advance(engine.new_run())
        assert result.status == "failed"
        assert result.error == "no data"
        assert result.completed_steps == []
        assert result.current_step is None

    @pytest.mark.asyncio
    async def test_fatal_precondition(self):
        compute = MagicMock(return_value={"b": 1})
        engine = _engine(_step("b", fatal=True, compute=compute, requires=("context",)))
        result = await engine.advance(engine.new_run())
        compute.assert_not_called()
        assert result.status == "failed"
        assert "context" in result.error

    @pytest.mark.asyncio
    async def test_precondition_unmet_by_earlier_step(self):
        compute_b = MagicMock(return_value={"b": 1})
        engine = _engine(
            _step("a"),
            _step("b", fatal=True, compute=compute_b, requires=("profile",)),
        )
        runs = await _drive(engine, engine.new_run())
        final = runs[-1]
        compute_b.assert_not_called()
        assert final.status == "failed"
        assert final.error
        assert "profile" in final.error
        assert final.completed_steps == ["a"]
        assert "profile" not in final.fields

    @pytest.mark.asyncio
    async def test_fatal_timeout_without_fallback(self):
        async def slow(run):
            await asyncio.sleep(1)
            return {"a": 1}

        engine = _engine(_step("a", fatal=True, compute=slow, time_budget_ms=20))
        result = await engine.advance(engine.new_run())
        assert result.status == "failed"
        assert "time budget" in result.error

    @pytest.mark.asyncio
    async def test_fatal_registry_violation(self):
        registry = FieldRegistry({"a": int})
        engine = _engine(_step("a", fatal=True, compute=_const(a="not-int")), registry=registry)
        result = await engine.advance(engine.new_run())
        assert result.status == "failed"


class TestNonFatalFailures:
    @pytest.mark.asyncio
    async def test_exception_uses_fallback(self):
        def boom(run):
            raise ValueError("malformed")

        engine = _engine(_step("a", compute=boom), _step("b"))
        result = await engine.advance(engine.new_run())
        assert result.status == "running"
        assert result.fields["a"] == "a-fallback"
        assert result.completed_steps == ["a"]
        assert result.degraded_steps == ["a"]

    @pytest.mark.asyncio
    async def test_precondition_uses_fallback(self):
        engine = _engine(_step("a", requires=("missing",)))
        result = await engine.advance(engine.new_run())
        assert result.fields["a"] == "a-fallback"
        assert result.degraded_steps == ["a"]

    @pytest.mark.asyncio
    async def test_unknown_field_uses_fallback(self):
        registry = FieldRegistry({"a": str})
        engine = _engine(_step("a", compute=_const(zzz=1)), registry=registry)
        result = await engine.advance(engine.new_run())
        assert result.fields == {"a": "a-fallback"}

    @pytest.mark.asyncio
    async def test_failing_fallback_fails_run(self):
        def boom(run):
            raise ValueError("bad")

        engine = _engine(_step("a", compute=boom, fallback=boom))
        result = await engine.advance(engine.new_run())
        assert result.status == "failed"
        assert "fallback failed" in result.error


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_timeout_bound_and_abandon(self):
        finished = asyncio.Event()

        async def slow(run):
            await asyncio.sleep(0.3)
            finished.set()
            return {"a": "late"}

        engine = _engine(_step("a", compute=slow, time_budget_ms=50))
        start = time.monotonic()
        result = await engine.advance(engine.new_run())
        elapsed = time.monotonic() - start

        assert elapsed < 0.25
        assert result.fields["a"] == "a-fallback"
        assert result.degraded_steps == ["a"]
        assert engine.abandoned_count == 1

        # Abandoned, not cancelled: the compute still runs to completion
        await asyncio.wait_for(finished.wait(), timeout=2)
        await asyncio.sleep(0.01)
        assert engine.abandoned_count == 0
        assert result.fields["a"] == "a-fallback"

    @pytest.mark.asyncio
    async def test_late_error_swallowed(self):
        async def slow_fail(run):
            await asyncio.sleep(0.1)
            raise RuntimeError("late failure")

        engine = _engine(_step("a", compute=slow_fail, time_budget_ms=10))
        result = await engine.advance(engine.new_run())
        assert result.degraded_steps == ["a"]
        await asyncio.sleep(0.2)
        assert engine.abandoned_count == 0

    @pytest.mark.asyncio
    async def test_blocking_sync_compute_bounded(self):
        release = threading.Event()

        def blocking(run):
            release.wait(timeout=2)
            return {"a": "late"}

        engine = _engine(_step("a", compute=blocking, time_budget_ms=50))
        start = time.monotonic()
        result = await engine.advance(engine.new_run())
        elapsed = time.monotonic() - start

        assert elapsed < 0.5
        assert result.fields["a"] == "a-fallback"
        assert engine.abandoned_count == 1

        release.set()
        for _ in range(100):
            if engine.abandoned_count == 0:
                break
            await asyncio.sleep(0.01)
        assert engine.abandoned_count == 0

    @pytest.mark.asyncio
    async def test_fatal_timeout_with_fallback(self):
        async def slow(run):
            await asyncio.sleep(1)
            return {"a": 1}

        step = _step("a", fatal=True, compute=slow, fallback=_const(a="fb"), time_budget_ms=20)
        engine = _engine(step)
        result = await engine.advance(engine.new_run())
        assert result.status == "completed"
        assert result.fields["a"] == "fb"


class TestPersistence:
    @pytest.mark.asyncio
    async def test_every_transition_persisted(self):
        store = InMemoryRunStore()
        engine = _engine(_step("a"), _step("b"), store=store)
        run = await engine.advance(engine.new_run())
        stored = await store.get(run.id)
        assert stored == run

    @pytest.mark.asyncio
    async def test_persist_failure_does_not_change_outcome(self):
        store = InMemoryRunStore()
        store.upsert = AsyncMock(side_effect=ValueError("disk full"))
        engine = _engine(_step("a"), store=store)
        result = await engine.advance(engine.new_run())
        assert result.status == "completed"
        assert result.fields["a"] == "a-value"

    @pytest.mark.asyncio
    async def test_transient_persist_failure_retried(self):
        store = InMemoryRunStore()
        real_upsert = store.upsert
        attempts = []

        async def flaky(run):
            attempts.append(run.id)
            if len(attempts) == 1:
                raise ConnectionError("blip")
            await real_upsert(run)

        store.upsert = flaky
        engine = _engine(
            _step("a"), store=store, persist_retry_configs=uniform_configs(2, 0.0),
        )
        run = await engine.advance(engine.new_run())
        assert len(attempts) == 2
        assert await store.get(run.id) == run

    @pytest.mark.asyncio
    async def test_persist_timeout_bounded(self):
        store = InMemoryRunStore()

        async def hang(run):
            await asyncio.sleep(5)

        store.upsert = hang
        engine = _engine(_step("a"), store=store, persist_timeout_s=0.05)
        start = time.monotonic()
        result = await engine.advance(engine.new_run())
        assert time.monotonic() - start < 1
        assert result.status == "completed"


class TestProgressEvents:
    @pytest.mark.asyncio
    async def test_event_sequence(self):
        channel = ProgressChannel()
        engine = _engine(
            _step("a", finding="Looking at a..."), _step("b"), observer=channel,
        )
        await _drive(engine, engine.new_run())
        events = channel.drain()
        assert [(e.kind, e.step_id) for e in events] == [
            ("started", "a"), ("completed", "a"),
            ("started", "b"), ("completed", "b"),
            ("finished", None),
        ]
        assert events[0].finding == "Looking at a..."
        assert [e.progress for e in events] == sorted(e.progress for e in events)

    @pytest.mark.asyncio
    async def test_degraded_and_failed_events(self):
        def boom(run):
            raise RuntimeError("x")

        channel = ProgressChannel()
        engine = _engine(_step("a", compute=boom), _step("b", fatal=True, compute=boom), observer=channel)
        await _drive(engine, engine.new_run())
        kinds = [e.kind for e in channel.drain()]
        assert kinds == ["started", "degraded", "started", "failed"]

    @pytest.mark.asyncio
    async def test_observer_error_does_not_affect_step(self):
        observer = MagicMock()
        observer.notify.side_effect = RuntimeError("observer down")
        engine = _engine(_step("a"), observer=observer)
        result = await engine.advance(engine.new_run())
        assert result.status == "completed"
        assert observer.notify.call_count == 3

    @pytest.mark.asyncio
    async def test_full_channel_drops(self):
        channel = ProgressChannel(maxsize=1)
        engine = _engine(_step("a"), _step("b"), observer=channel)
        await _drive(engine, engine.new_run())
        assert len(channel) == 1
        assert channel.dropped == 4


class TestFromSettings:
    def test_budgets_from_settings(self, settings):
        settings = settings.model_copy(update={"step_time_budgets": "a=1234"})
        engine = StepEngine.from_settings([_step("a"), _step("b")], settings)
        assert engine.budget_for(_step("a")) == 1234
        assert engine.budget_for(_step("b")) == settings.step_time_budget_ms
