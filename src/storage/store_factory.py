# src/storage/store_factory.py - v1
"""Factory for run store instantiation."""

from __future__ import annotations

from gapflow.config.settings import Settings
from gapflow.storage.base_run_store import BaseRunStore


def create_run_store(settings: Settings | None = None) -> BaseRunStore:
    """Instantiate the configured run store backend (json or sqlite)."""
    backend = "json" if settings is None else settings.store_backend
    root = "output/.runs" if settings is None else str(settings.store_root)

    if backend == "json":
        from gapflow.storage.json_store import JsonRunStore
        return JsonRunStore(root=root)

    if backend == "sqlite":
        from gapflow.storage.sqlite_store import SqliteRunStore
        return SqliteRunStore(db_path=f"{root}/gapflow_runs.db")

    raise ValueError(f"Unsupported store backend: {backend!r}")
