# tests/unit/core/test_retry.py - v1
"""Tests for core/retry.py - error classification and backoff."""

from __future__ import annotations

import asyncio
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from gapflow.core.retry import (
    RetryConfig,
    RetryExhausted,
    _compute_delay,
    classify_error,
    uniform_configs,
    with_retry,
)


class TestClassifyError:
    def test_timeout(self):
        assert classify_error(asyncio.TimeoutError()) == "timeout"
        assert classify_error(TimeoutError()) == "timeout"

    def test_locked(self):
        assert classify_error(sqlite3.OperationalError("database is locked")) == "locked"

    def test_connection(self):
        assert classify_error(ConnectionResetError()) == "connection"

    def test_rate_limit(self):
        assert classify_error(RuntimeError("HTTP 429 Too Many Requests")) == "rate_limit"

    def test_server_error(self):
        assert classify_error(RuntimeError("upstream returned 503")) == "server_error"

    def test_permanent(self):
        assert classify_error(ValueError("bad value")) == "permanent"


class TestComputeDelay:
    def test_exponential_without_jitter(self):
        config = RetryConfig(max_retries=3, base_delay_s=1.0, jitter=False)
        assert _compute_delay(config, 0) == 1.0
        assert _compute_delay(config, 2) == 4.0

    def test_jitter_bounds(self):
        config = RetryConfig(max_retries=3, base_delay_s=1.0)
        for _ in range(50):
            assert 0.5 <= _compute_delay(config, 0) <= 1.5


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        fn = AsyncMock(return_value="ok")
        assert await with_retry(fn, 1, operation="op") == "ok"
        fn.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        fn = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])
        with patch("gapflow.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await with_retry(fn, operation="op") == "ok"
        assert fn.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_permanent_raises_immediately(self):
        fn = AsyncMock(side_effect=ValueError("bad"))
        with pytest.raises(RetryExhausted) as exc_info:
            await with_retry(fn, operation="op")
        assert exc_info.value.error_type == "permanent"
        assert exc_info.value.attempts == 1
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        configs = uniform_configs(max_retries=2, base_delay_s=0.0)
        with pytest.raises(RetryExhausted) as exc_info:
            await with_retry(fn, operation="op", retry_configs=configs)
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(RetryExhausted):
            await with_retry(fn, retry_configs=uniform_configs(0, 0.0))
        assert fn.await_count == 1
