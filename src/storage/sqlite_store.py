# src/storage/sqlite_store.py - v1
"""SQLite-based run store (STORE_BACKEND=sqlite).

Uses stdlib sqlite3. Status and timestamps are copied into columns so
runs can be listed without deserializing them.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from gapflow.core.models import Run
from gapflow.storage.base_run_store import BaseRunStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);
"""


class SqliteRunStore(BaseRunStore):
    """SQLite-backed run store."""

    def __init__(self, db_path: Path | str) -> None:
        target = str(db_path)
        if target != ":memory:":
            path = Path(target).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        self._conn = sqlite3.connect(target)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, run_id: str) -> Run | None:
        cursor = self._conn.execute("SELECT data FROM runs WHERE id = ?", (run_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        try:
            return Run.model_validate_json(row[0])
        except ValidationError as e:
            logger.warning("Failed to deserialize run %s: %s", run_id, e)
            return None

    async def upsert(self, run: Run) -> None:
        self._conn.execute(
            """INSERT OR REPLACE INTO runs (id, data, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                run.id,
                run.model_dump_json(),
                run.status,
                run.created_at.isoformat(),
                run.updated_at.isoformat(),
            ),
        )
        self._conn.commit()

    async def list_ids(self) -> list[str]:
        cursor = self._conn.execute("SELECT id FROM runs ORDER BY created_at, id")
        return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
