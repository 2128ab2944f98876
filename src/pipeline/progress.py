# src/pipeline/progress.py - v1
"""Best-effort progress notifications from the step engine.

The engine writes events to an injected observer. Delivery never blocks
a step and an observer error never changes a step's outcome.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Literal, Protocol

from pydantic import BaseModel, Field

from gapflow.core.models import utc_now

logger = logging.getLogger(__name__)

EventKind = Literal["started", "completed", "skipped", "degraded", "failed", "finished"]

TERMINAL_EVENTS: frozenset[str] = frozenset({"failed", "finished"})


class ProgressEvent(BaseModel):
    """One notification about a run's progress."""

    run_id: str
    kind: EventKind
    step_id: str | None = None
    progress: int = 0
    finding: str | None = None
    message: str | None = None
    at: datetime = Field(default_factory=utc_now)


class ProgressObserver(Protocol):
    def notify(self, event: ProgressEvent) -> None:
        ...


class ProgressChannel:
    """Single-consumer bounded queue of progress events.

    notify() never waits: when the queue is full the event is dropped
    and counted.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def notify(self, event: ProgressEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Progress queue full, dropped %s event for %s", event.kind, event.run_id)

    async def get(self) -> ProgressEvent:
        return await self._queue.get()

    def drain(self) -> list[ProgressEvent]:
        """Return every queued event without waiting."""
        events: list[ProgressEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    async def stream(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until a terminal one (failed or finished)."""
        while True:
            event = await self._queue.get()
            yield event
            if event.kind in TERMINAL_EVENTS:
                return

    def __len__(self) -> int:
        return self._queue.qsize()
