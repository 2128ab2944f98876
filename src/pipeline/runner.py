# src/pipeline/runner.py - v1
"""Drive a run to a terminal status by calling StepEngine.advance repeatedly.

Hosts that advance once per external trigger (an HTTP poll, a queue
message) call advance() themselves; drive_run() is the in-process loop
used by the CLI and tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from gapflow.core.models import Run
from gapflow.pipeline.engine import StepEngine

logger = logging.getLogger(__name__)

DEFAULT_MAX_ADVANCES = 20


@dataclass
class DriveResult:
    """Result of driving a run."""

    run: Run
    advances: int = 0
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.run.status == "completed"

    @property
    def finished(self) -> bool:
        return self.run.is_terminal


async def drive_run(
    engine: StepEngine,
    run: Run,
    max_advances: int | None = None,
) -> DriveResult:
    """Advance run until terminal or max_advances is reached.

    Args:
        engine: Engine owning the run's steps.
        run: Run to advance (not mutated).
        max_advances: Bound on advance() calls; defaults to steps + 1.
    """
    limit = max_advances if max_advances is not None else len(run.step_order) + 1
    start_ns = time.monotonic_ns()
    result = DriveResult(run=run)

    while not result.run.is_terminal and result.advances < limit:
        result.run = await engine.advance(result.run)
        result.advances += 1

    result.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    if not result.run.is_terminal:
        logger.warning(
            "Run %s still %s after %d advances", result.run.id, result.run.status, limit
        )
    else:
        logger.info(
            "Run %s %s: %d/%d steps, %d degraded, %dms",
            result.run.id,
            result.run.status,
            len(result.run.completed_steps),
            len(result.run.step_order),
            len(result.run.degraded_steps),
            result.duration_ms,
        )
    return result
