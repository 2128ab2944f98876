# src/pipeline/steps/builtin.py - v1
"""Deterministic report steps: init, scoring, assemble_plan.

All three are fatal: without a target URL, dimension scores, or the
pieces of the report there is nothing meaningful to fall back to.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlparse

from gapflow.core.errors import PreconditionError
from gapflow.core.models import Run, utc_now
from gapflow.pipeline.step import StepDefinition
from gapflow.schema.repairer import validate_and_repair
from gapflow.schema.report_schemas import FULL_REPORT_SCHEMA
from gapflow.scoring.aggregator import build_scorecard, check_consistency

logger = logging.getLogger(__name__)


def normalize_url(raw: str) -> str:
    """Add a scheme when missing and strip trailing slashes."""
    url = raw.strip()
    if not url:
        return url
    if "://" not in url:
        url = f"https://{url}"
    return url.rstrip("/")


def build_context(run: Run) -> dict[str, Any]:
    """init: normalize request inputs into the context field."""
    raw_url = run.inputs.get("url")
    if not isinstance(raw_url, str) or not raw_url.strip():
        raise PreconditionError("init", ["inputs.url"])

    url = normalize_url(raw_url)
    domain = urlparse(url).netloc.lower()
    if not domain:
        raise PreconditionError("init", ["inputs.url (valid host)"])
    if domain.startswith("www."):
        domain = domain[4:]

    return {
        "context": {
            "url": url,
            "domain": domain,
            "company_name": run.inputs.get("company_name"),
            "notes": run.inputs.get("notes"),
        }
    }


def make_scoring(
    weights: Mapping[str, float] | None = None,
    tolerance: float = 2.0,
):
    """scoring: rebuild the scorecard from the assessment's dimension scores."""

    def compute_scorecard(run: Run) -> dict[str, Any]:
        assessment = run.fields["assessment"]
        scores = {d["id"]: d["score"] for d in assessment["dimensionSummaries"]}
        scorecard = build_scorecard(scores, weights)

        check = check_consistency(
            assessment["marketingReadinessScore"], scores, weights, tolerance
        )
        if not check.consistent:
            logger.info(
                "Assessment readiness %s differs from weighted overall %s by %.1f",
                check.supplied, check.computed, check.difference,
            )
        return {"scorecard": scorecard.model_dump()}

    return compute_scorecard


def assemble_report(run: Run) -> dict[str, Any]:
    """assemble_plan: combine every section into the final report."""
    context = run.fields["context"]
    assessment = run.fields["assessment"]
    scorecard = run.fields["scorecard"]
    plan = run.fields.get("strategicPlan") or {}
    summary = run.fields.get("executiveSummary") or {
        "headline": "TBD - Headline to be written",
        "narrative": assessment["executiveSummary"],
        "strengths": [],
        "keyIssues": [],
        "is_placeholder": True,
    }

    analyses = [
        {
            "id": dim["id"],
            "score": scorecard["dimension_scores"].get(dim["id"], dim["score"]),
            "summary": dim["summary"],
            "keyFindings": [dim["keyIssue"]],
            "is_placeholder": dim.get("is_placeholder", False),
        }
        for dim in assessment["dimensionSummaries"]
    ]

    raw = {
        "runId": run.id,
        "url": context["url"],
        "companyName": context.get("company_name"),
        "overallScore": scorecard["overall_score"],
        "maturityStage": scorecard["maturity_stage"],
        "executiveSummary": summary,
        "dimensionAnalyses": analyses,
        "quickWins": run.fields.get("quickWins") or [],
        "strategicPriorities": plan.get("strategicPriorities") or [],
        "kpis": plan.get("kpis") or [],
        "roadmap90Days": plan.get("roadmap90Days"),
        "degradedSections": list(run.degraded_steps),
        "generatedAt": utc_now().isoformat(),
    }

    result = validate_and_repair(raw, FULL_REPORT_SCHEMA)
    if result.repairs:
        logger.warning(
            "Assembled report repaired (%d): %s", len(result.repairs), "; ".join(result.repairs)
        )
    return {"report": result.value}


def init_step() -> StepDefinition:
    return StepDefinition(
        id="init",
        compute=build_context,
        produces=("context",),
        fatal=True,
        finding="Preparing the assessment...",
    )


def scoring_step(weights: Mapping[str, float] | None = None, tolerance: float = 2.0) -> StepDefinition:
    return StepDefinition(
        id="scoring",
        compute=make_scoring(weights, tolerance),
        produces=("scorecard",),
        requires=("assessment",),
        fatal=True,
        finding="Calculating overall score and maturity stage...",
    )


def assemble_step() -> StepDefinition:
    return StepDefinition(
        id="assemble_plan",
        compute=assemble_report,
        produces=("report",),
        requires=("context", "assessment", "scorecard"),
        fatal=True,
        finding="Assembling the growth plan...",
    )
