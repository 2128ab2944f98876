# src/core/retry.py - v1
"""Retry with exponential backoff for transient collaborator failures.

Used around RunStore writes. The engine never retries generator calls;
that belongs to whoever drives the engine.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """All retries exhausted for an operation."""

    def __init__(self, operation: str, error_type: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.error_type = error_type
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"'{operation}' failed after {attempts} attempts ({error_type}): {last_error}"
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for a specific error type."""

    max_retries: int
    base_delay_s: float
    backoff_factor: float = 2.0
    jitter: bool = True


DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "timeout": RetryConfig(max_retries=2, base_delay_s=0.5, backoff_factor=1.0),
    "connection": RetryConfig(max_retries=3, base_delay_s=0.5),
    "locked": RetryConfig(max_retries=3, base_delay_s=0.2),
    "rate_limit": RetryConfig(max_retries=3, base_delay_s=1.0),
    "server_error": RetryConfig(max_retries=2, base_delay_s=1.0),
}


def classify_error(error: Exception) -> str:
    """Classify an exception into a retry error type."""
    msg = str(error).lower()
    name = type(error).__name__.lower()

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)) or "timeout" in name:
        return "timeout"
    if isinstance(error, sqlite3.OperationalError) and "locked" in msg:
        return "locked"
    if isinstance(error, ConnectionError) or "connection" in name or "connection" in msg:
        return "connection"
    if "429" in msg or "rate limit" in msg:
        return "rate_limit"
    if any(c in msg for c in ("500", "502", "503", "504")):
        return "server_error"
    return "permanent"


def uniform_configs(max_retries: int, base_delay_s: float) -> dict[str, RetryConfig]:
    """Same policy for every transient error type."""
    return {
        key: RetryConfig(max_retries=max_retries, base_delay_s=base_delay_s)
        for key in DEFAULT_RETRY_CONFIGS
    }


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "unknown",
    retry_configs: dict[str, RetryConfig] | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function, retrying transient failures.

    Raises:
        RetryExhausted: Permanent error, or all retries exhausted.
    """
    configs = DEFAULT_RETRY_CONFIGS if retry_configs is None else retry_configs
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            error_type = classify_error(e)
            attempts += 1
            config = configs.get(error_type)

            if config is None or attempts > config.max_retries:
                raise RetryExhausted(operation, error_type, attempts, e) from e

            delay = _compute_delay(config, attempts - 1)
            logger.warning(
                "'%s' %s error (attempt %d/%d), retrying in %.2fs",
                operation, error_type, attempts, config.max_retries, delay,
            )
            await asyncio.sleep(delay)
