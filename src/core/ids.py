# src/core/ids.py - v1
"""Run identifier generation: GAP-<epoch ms>-<7 base36 chars>."""

from __future__ import annotations

import re
import secrets
import time

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
RUN_ID_PATTERN = re.compile(r"^GAP-\d+-[0-9a-z]{7}$")


def generate_run_id(prefix: str = "GAP", now_ms: int | None = None) -> str:
    """Return a new run id, e.g. GAP-1718000000000-k3x9q0a."""
    ts = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(7))
    return f"{prefix}-{ts}-{suffix}"


def is_valid_run_id(run_id: str) -> bool:
    return bool(RUN_ID_PATTERN.match(run_id))
