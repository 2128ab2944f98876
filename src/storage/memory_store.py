# src/storage/memory_store.py - v1
"""In-memory run store for tests. One dict per instance, never global."""

from __future__ import annotations

from gapflow.core.models import Run
from gapflow.storage.base_run_store import BaseRunStore


class InMemoryRunStore(BaseRunStore):
    """Keeps serialized copies, so callers never share a Run with the store."""

    def __init__(self) -> None:
        self._runs: dict[str, str] = {}
        self.writes = 0

    async def get(self, run_id: str) -> Run | None:
        raw = self._runs.get(run_id)
        return None if raw is None else Run.model_validate_json(raw)

    async def upsert(self, run: Run) -> None:
        self._runs[run.id] = run.model_dump_json()
        self.writes += 1

    async def list_ids(self) -> list[str]:
        return list(self._runs)
