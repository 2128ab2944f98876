# tests/unit/logging/test_context.py - v1
"""Tests for logging/context.py - contextual logging variables."""

from __future__ import annotations

import asyncio

import pytest

from gapflow.logging.context import (
    clear_context,
    get_context,
    set_run_context,
    set_step_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.step is None

    def test_set_run_context_resets_step(self):
        set_step_context("assessment")
        set_run_context("GAP-1-aaaaaaa")
        ctx = get_context()
        assert ctx.run_id == "GAP-1-aaaaaaa"
        assert ctx.step is None

    def test_set_step_context(self):
        set_run_context("r1")
        set_step_context("scoring")
        assert get_context().step == "scoring"

    def test_as_dict_filters_none(self):
        set_run_context("r1")
        d = get_context().as_dict()
        assert d == {"run_id": "r1"}

    def test_clear(self):
        set_run_context("r1")
        set_step_context("a")
        clear_context()
        assert get_context().as_dict() == {}

    @pytest.mark.asyncio
    async def test_tasks_inherit_context(self):
        set_run_context("r1")
        set_step_context("a")

        async def read():
            return get_context().step

        task = asyncio.ensure_future(read())
        set_step_context("b")
        assert await task == "a"
