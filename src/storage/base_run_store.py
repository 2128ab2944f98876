# src/storage/base_run_store.py - v1
"""Abstract run store interface.

Writes are id-keyed idempotent upserts: writing the same Run twice is a
no-op in effect, and the last writer wins.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from gapflow.core.models import Run

logger = logging.getLogger(__name__)

# Attributes a patch may not change.
IMMUTABLE_ATTRS: frozenset[str] = frozenset({"id", "created_at"})


class BaseRunStore(ABC):
    """Unified interface for run storage backends."""

    @abstractmethod
    async def get(self, run_id: str) -> Run | None:
        """Retrieve a run by id, None if unknown."""

    @abstractmethod
    async def upsert(self, run: Run) -> None:
        """Insert or replace a run (a partially-filled run is accepted)."""

    @abstractmethod
    async def list_ids(self) -> list[str]:
        """All stored run ids, oldest first."""

    async def patch(self, run_id: str, updates: dict[str, Any]) -> None:
        """Shallow-merge top-level Run attributes into a stored run.

        Unknown ids are logged and ignored.

        Raises:
            ValueError: An update names an unknown or immutable attribute.
        """
        check_patch(updates)
        run = await self.get(run_id)
        if run is None:
            logger.warning("patch ignored: run %s not found", run_id)
            return
        data = run.model_dump()
        data.update(updates)
        patched = Run.model_validate(data)
        patched.touch()
        await self.upsert(patched)


def check_patch(updates: dict[str, Any]) -> None:
    unknown = [k for k in updates if k not in Run.model_fields]
    if unknown:
        raise ValueError(f"Unknown Run attribute(s): {', '.join(sorted(unknown))}")
    frozen = [k for k in updates if k in IMMUTABLE_ATTRS]
    if frozen:
        raise ValueError(f"Immutable Run attribute(s): {', '.join(sorted(frozen))}")
