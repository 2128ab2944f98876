# src/storage/json_store.py - v1
"""JSON file-based run store (default STORE_BACKEND=json).

One JSON file per run under STORE_ROOT, replaced atomically on write.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from gapflow.core.errors import StoreError
from gapflow.core.models import Run
from gapflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)


class JsonRunStore(BaseRunStore):
    """File-based run store using JSON files."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, run_id: str) -> Run | None:
        """Retrieve a run; unreadable files are logged and treated as absent."""
        path = self._run_path(run_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Run.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to read run %s: %s", run_id, e)
            return None

    async def upsert(self, run: Run) -> None:
        """Write the run to a temp file then rename over the old one."""
        path = self._run_path(run.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(run.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Failed to write run {run.id}: {e}") from e

    async def list_ids(self) -> list[str]:
        if not self._root.is_dir():
            return []
        paths = sorted(self._root.glob("*.json"), key=lambda p: p.stat().st_mtime)
        return [p.stem for p in paths]

    def _run_path(self, run_id: str) -> Path:
        safe_id = run_id.replace("/", "_").replace("\\", "_")
        return self._root / f"{safe_id}.json"
