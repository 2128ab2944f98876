# src/pipeline/steps/workflow.py - v1
"""The growth report workflow: fixed step order and its engine."""

from __future__ import annotations

from typing import Mapping

from gapflow.config.settings import Settings
from gapflow.llm.generator import ExternalGenerator
from gapflow.pipeline.engine import StepEngine
from gapflow.pipeline.progress import ProgressObserver
from gapflow.pipeline.step import StepDefinition
from gapflow.pipeline.steps.builtin import assemble_step, init_step, scoring_step
from gapflow.pipeline.steps.models import build_report_registry
from gapflow.pipeline.steps.sections import (
    AssessmentSection,
    ExecutiveSummarySection,
    QuickWinsSection,
    StrategicInitiativesSection,
)
from gapflow.storage.base_run_store import BaseRunStore

REPORT_STEP_ORDER: tuple[str, ...] = (
    "init",
    "assessment",
    "quick_wins",
    "strategic_initiatives",
    "scoring",
    "executive_summary",
    "assemble_plan",
)


def build_report_steps(
    generator: ExternalGenerator,
    weights: Mapping[str, float] | None = None,
    score_tolerance: float = 2.0,
) -> list[StepDefinition]:
    """Step definitions in REPORT_STEP_ORDER."""
    return [
        init_step(),
        AssessmentSection(generator).definition(),
        QuickWinsSection(generator).definition(),
        StrategicInitiativesSection(generator).definition(),
        scoring_step(weights, score_tolerance),
        ExecutiveSummarySection(generator).definition(),
        assemble_step(),
    ]


def build_report_engine(
    generator: ExternalGenerator,
    settings: Settings,
    store: BaseRunStore | None = None,
    observer: ProgressObserver | None = None,
    weights: Mapping[str, float] | None = None,
) -> StepEngine:
    """Engine running the report workflow with the strict report registry."""
    steps = build_report_steps(generator, weights, settings.score_tolerance)
    return StepEngine.from_settings(
        steps,
        settings,
        store=store,
        registry=build_report_registry(),
        observer=observer,
    )
