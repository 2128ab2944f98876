# src/api/facade.py - v1
"""Public API facade: start, advance and read growth report runs.

Usage:
    service = ReportService.from_settings(settings)
    run = await service.start({"url": "example.com"})
    while not run.is_terminal:
        run = await service.advance(run.id)

A host calls advance() once per external trigger (HTTP poll, queue
message); run_to_completion() drives the whole run in-process.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from gapflow.config.settings import Settings
from gapflow.core.errors import RunNotFoundError
from gapflow.core.models import Run
from gapflow.pipeline.runner import DriveResult, drive_run

if TYPE_CHECKING:
    from gapflow.llm.generator import ExternalGenerator
    from gapflow.pipeline.engine import StepEngine
    from gapflow.pipeline.progress import ProgressObserver
    from gapflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior marketing strategist producing growth assessments. "
    "Respond only with valid JSON."
)


class ReportService:
    """Run lifecycle on top of a StepEngine and a RunStore."""

    def __init__(self, engine: StepEngine, store: BaseRunStore, max_advances: int | None = None) -> None:
        self._engine = engine
        self._store = store
        self._max_advances = max_advances

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        generator: ExternalGenerator | None = None,
        store: BaseRunStore | None = None,
        observer: ProgressObserver | None = None,
    ) -> ReportService:
        """Wire the report workflow from settings.

        Args:
            settings: Loaded from .env if None.
            generator: Defaults to an LLMGenerator for the configured provider.
            store: Defaults to the configured run store backend.
            observer: Progress observer passed to the engine.
        """
        from gapflow.pipeline.steps.workflow import build_report_engine
        from gapflow.storage.store_factory import create_run_store

        settings = settings or Settings()
        if generator is None:
            from gapflow.llm.client_factory import create_default_client
            from gapflow.llm.generator import LLMGenerator

            generator = LLMGenerator(
                create_default_client(settings),
                system=SYSTEM_PROMPT,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
            )
        store = store or create_run_store(settings)
        engine = build_report_engine(generator, settings, store=store, observer=observer)
        return cls(engine, store, max_advances=settings.max_advances)

    @property
    def engine(self) -> StepEngine:
        return self._engine

    async def start(self, inputs: dict[str, Any]) -> Run:
        """Create and store a pending run.

        Raises:
            StoreError: The run could not be stored.
        """
        run = self._engine.new_run(inputs)
        await self._store.upsert(run)
        logger.info("Started run %s for %s", run.id, inputs.get("url"))
        return run

    async def get(self, run_id: str) -> Run | None:
        return await self._store.get(run_id)

    async def advance(self, run_id: str) -> Run:
        """Load a run and execute its next step.

        Raises:
            RunNotFoundError: Unknown run id.
        """
        run = await self._store.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return await self._engine.advance(run)

    async def run_to_completion(self, inputs: dict[str, Any]) -> DriveResult:
        run = await self.start(inputs)
        return await drive_run(self._engine, run, self._max_advances)

    async def list_runs(self) -> list[str]:
        return await self._store.list_ids()
