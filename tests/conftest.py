# tests/conftest.py - v1
"""Shared test fixtures for all unit tests.

Provides a scripted generator, an in-memory run store, settings without
a .env file, and well-formed report sections. All I/O is local.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

from gapflow.config.settings import Settings
from gapflow.core.models import Run
from gapflow.storage.memory_store import InMemoryRunStore


class ScriptedGenerator:
    """ExternalGenerator returning queued replies in call order.

    A reply may be a string, a dict (serialized to JSON), an exception
    (raised), or a callable taking (prompt, context).
    """

    def __init__(self, *replies: Any, delay_s: float = 0.0) -> None:
        self.replies = list(replies)
        self.delay_s = delay_s
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def generate(self, prompt: str, context: dict[str, Any] | None = None) -> str:
        self.calls.append((prompt, context))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if not self.replies:
            raise RuntimeError("generator has no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt, context)
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


# === FIXTURES: Infrastructure ===


@pytest.fixture(autouse=True)
def _reset_gapflow_logger():
    """Undo setup_logging() so log levels do not leak between tests."""
    yield
    root = logging.getLogger("gapflow")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, store_root=tmp_path / "runs")


@pytest.fixture
def memory_store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def sample_run() -> Run:
    return Run(
        id="GAP-1700000000000-abc1234",
        inputs={"url": "acme.io"},
        step_order=["a", "b", "c"],
        current_step="a",
    )


# === FIXTURES: Report sections ===


def dimension_summaries(scores: dict[str, float] | None = None) -> list[dict[str, Any]]:
    scores = scores or {
        "brand": 70, "content": 55, "seo": 40,
        "website": 65, "digitalFootprint": 50, "authority": 60,
    }
    return [
        {
            "id": dim,
            "score": score,
            "summary": f"{dim} summary",
            "keyIssue": f"{dim} issue",
        }
        for dim, score in scores.items()
    ]


@pytest.fixture
def assessment_payload() -> dict[str, Any]:
    """Valid initial assessment (mean of dimension scores = 57)."""
    return {
        "executiveSummary": "Solid brand, weak search presence.",
        "marketingReadinessScore": 57,
        "maturityStage": "Established",
        "topOpportunities": ["Fix SEO basics", "Publish case studies", "Grow backlinks"],
        "quickWins": [
            {"action": "Add meta descriptions", "dimensionId": "seo"},
            {"action": "Claim business profiles", "dimensionId": "digitalFootprint"},
            {"action": "Add testimonials to homepage"},
        ],
        "dimensionSummaries": dimension_summaries(),
    }


@pytest.fixture
def quick_wins_payload() -> dict[str, Any]:
    return {
        "quickWins": [
            {"action": "Add meta descriptions", "dimensionId": "seo",
             "impactLevel": "high", "effortLevel": "low"},
            {"action": "Claim business profiles", "dimensionId": "digitalFootprint",
             "impactLevel": "medium", "effortLevel": "low"},
            {"action": "Publish two case studies", "dimensionId": "content",
             "impactLevel": "high", "effortLevel": "medium"},
        ]
    }


@pytest.fixture
def strategic_plan_payload() -> dict[str, Any]:
    phase = {"whyItMatters": "Momentum", "actions": ["Do one thing", "Do another"]}
    return {
        "strategicPriorities": [
            {"title": f"Priority {i}", "description": f"Description {i}"} for i in range(1, 4)
        ],
        "kpis": [
            {
                "name": f"KPI {i}",
                "whatItMeasures": "Something",
                "whyItMatters": "Because",
                "whatGoodLooksLike": "More",
            }
            for i in range(1, 5)
        ],
        "roadmap90Days": {"phase0_30": phase, "phase30_60": phase, "phase60_90": phase},
    }


@pytest.fixture
def executive_summary_payload() -> dict[str, Any]:
    return {
        "headline": "Ready to grow with focused SEO work",
        "narrative": "The company has a credible brand but is hard to find.",
        "strengths": ["Clear positioning"],
        "keyIssues": ["Low organic visibility"],
    }


@pytest.fixture
def report_replies(
    assessment_payload, quick_wins_payload, strategic_plan_payload, executive_summary_payload,
) -> list[dict[str, Any]]:
    """Generator replies for the four LLM-backed steps, in step order."""
    return [
        assessment_payload,
        quick_wins_payload,
        strategic_plan_payload,
        executive_summary_payload,
    ]


@pytest.fixture
def make_generator():
    """Factory for ScriptedGenerator instances."""
    return ScriptedGenerator
