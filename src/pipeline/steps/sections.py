# src/pipeline/steps/sections.py - v1
"""LLM-backed report sections.

Each section prompts the ExternalGenerator, extracts the JSON object
from its reply, and forces it into the section's declared shape with
validate_and_repair(). Fallbacks are built from fields already on the
run and pass through the same repair, so a degraded section always has
the same shape as a computed one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from gapflow.core.models import Run
from gapflow.llm.generator import ExternalGenerator
from gapflow.llm.json_output import parse_json_object
from gapflow.pipeline.step import StepDefinition
from gapflow.schema.models import FieldSpec
from gapflow.schema.repairer import validate_and_repair
from gapflow.schema.report_schemas import (
    EXECUTIVE_SUMMARY_SCHEMA,
    INITIAL_ASSESSMENT_SCHEMA,
    QUICK_WINS_SCHEMA,
    STRATEGIC_PLAN_SCHEMA,
)

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).parent / "prompts"


class ReportSection(ABC):
    """One LLM-generated section of the report, exposed as a step."""

    step_id: str
    field: str
    schema: FieldSpec
    prompt_name: str
    requires: tuple[str, ...] = ()
    finding: str | None = None

    def __init__(self, generator: ExternalGenerator) -> None:
        self._generator = generator
        self._prompt_template: str | None = None

    def _load_prompt(self) -> str:
        if self._prompt_template is None:
            path = _PROMPT_DIR / f"{self.prompt_name}.txt"
            self._prompt_template = path.read_text(encoding="utf-8")
        return self._prompt_template

    def _format_prompt(self, run: Run) -> str:
        ctx = run.fields.get("context") or {}
        return self._load_prompt().format(
            url=ctx.get("url", run.inputs.get("url", "")),
            company=ctx.get("company_name") or ctx.get("domain") or "the company",
        )

    @abstractmethod
    def build_context(self, run: Run) -> dict[str, Any]:
        """Run data handed to the generator alongside the prompt."""

    @abstractmethod
    def build_fallback(self, run: Run) -> dict[str, Any]:
        """Raw degraded section, repaired into shape by fallback()."""

    def extract(self, value: dict[str, Any]) -> dict[str, Any]:
        """Map the repaired section onto run fields."""
        return {self.field: value}

    def _repair(self, raw: dict[str, Any], origin: str) -> dict[str, Any]:
        result = validate_and_repair(raw, self.schema)
        if result.repairs:
            logger.warning(
                "%s %s output repaired (%d): %s",
                self.step_id, origin, len(result.repairs), "; ".join(result.repairs),
            )
        return self.extract(result.value)

    async def compute(self, run: Run) -> dict[str, Any]:
        prompt = self._format_prompt(run)
        text = await self._generator.generate(prompt, self.build_context(run))
        return self._repair(parse_json_object(text), "generator")

    def fallback(self, run: Run) -> dict[str, Any]:
        return self._repair(self.build_fallback(run), "fallback")

    def definition(self, time_budget_ms: int | None = None) -> StepDefinition:
        return StepDefinition(
            id=self.step_id,
            compute=self.compute,
            fallback=self.fallback,
            produces=(self.field,),
            requires=self.requires,
            time_budget_ms=time_budget_ms,
            fatal=False,
            finding=self.finding,
        )


def _dimensions(run: Run) -> list[dict[str, Any]]:
    assessment = run.fields.get("assessment") or {}
    return list(assessment.get("dimensionSummaries") or [])


def _weakest(run: Run, count: int) -> list[dict[str, Any]]:
    """Lowest-scoring real dimensions first; placeholders last."""
    dims = [d for d in _dimensions(run) if not d.get("is_placeholder")]
    return sorted(dims, key=lambda d: (d.get("score", 50), d.get("id", "")))[:count]


def _strongest(run: Run, count: int) -> list[dict[str, Any]]:
    dims = [d for d in _dimensions(run) if not d.get("is_placeholder")]
    return sorted(dims, key=lambda d: (-d.get("score", 50), d.get("id", "")))[:count]


class AssessmentSection(ReportSection):
    """Initial assessment: six dimension scores and headline findings."""

    step_id = "assessment"
    field = "assessment"
    schema = INITIAL_ASSESSMENT_SCHEMA
    prompt_name = "assessment"
    requires = ("context",)
    finding = "Scoring brand, content, SEO, website, footprint and authority..."

    def build_context(self, run: Run) -> dict[str, Any]:
        return {"context": run.fields.get("context"), "inputs": run.inputs}

    def build_fallback(self, run: Run) -> dict[str, Any]:
        # Repair turns this into marked placeholders with neutral scores
        return {}


class QuickWinsSection(ReportSection):
    """Three to five immediate tactical actions."""

    step_id = "quick_wins"
    field = "quickWins"
    schema = QUICK_WINS_SCHEMA
    prompt_name = "quick_wins"
    requires = ("assessment",)
    finding = "Identifying quick wins..."

    def build_context(self, run: Run) -> dict[str, Any]:
        return {"assessment": run.fields.get("assessment")}

    def extract(self, value: dict[str, Any]) -> dict[str, Any]:
        return {"quickWins": value["quickWins"]}

    def build_fallback(self, run: Run) -> dict[str, Any]:
        wins: list[dict[str, Any]] = []
        weakest = _weakest(run, 5)
        default_dim = weakest[0]["id"] if weakest else "brand"
        assessment = run.fields.get("assessment") or {}
        for win in assessment.get("quickWins") or []:
            if win.get("is_placeholder"):
                continue
            wins.append({
                "action": win["action"],
                "dimensionId": win.get("dimensionId") or default_dim,
                "impactLevel": "medium",
                "effortLevel": "low",
            })
        for dim in weakest:
            wins.append({
                "action": f"Address {dim['id']}: {dim['keyIssue']}",
                "dimensionId": dim["id"],
                "impactLevel": "high" if dim.get("score", 50) < 40 else "medium",
                "effortLevel": "medium",
            })
        return {"quickWins": wins}


class StrategicInitiativesSection(ReportSection):
    """Strategic priorities, KPIs and the 90-day roadmap."""

    step_id = "strategic_initiatives"
    field = "strategicPlan"
    schema = STRATEGIC_PLAN_SCHEMA
    prompt_name = "strategic_initiatives"
    requires = ("assessment",)
    finding = "Drafting strategic priorities and a 90-day roadmap..."

    def build_context(self, run: Run) -> dict[str, Any]:
        return {
            "assessment": run.fields.get("assessment"),
            "quickWins": run.fields.get("quickWins"),
        }

    def build_fallback(self, run: Run) -> dict[str, Any]:
        priorities = [
            {
                "title": f"Strengthen {dim['id']}",
                "description": dim["keyIssue"],
            }
            for dim in _weakest(run, 3)
        ]
        return {"strategicPriorities": priorities, "kpis": []}


class ExecutiveSummarySection(ReportSection):
    """Headline, narrative, strengths and key issues."""

    step_id = "executive_summary"
    field = "executiveSummary"
    schema = EXECUTIVE_SUMMARY_SCHEMA
    prompt_name = "executive_summary"
    requires = ("assessment", "scorecard")
    finding = "Writing the executive summary..."

    def build_context(self, run: Run) -> dict[str, Any]:
        return {
            "assessment": run.fields.get("assessment"),
            "scorecard": run.fields.get("scorecard"),
            "strategicPlan": run.fields.get("strategicPlan"),
        }

    def build_fallback(self, run: Run) -> dict[str, Any]:
        scorecard = run.fields.get("scorecard") or {}
        score = scorecard.get("overall_score")
        stage = scorecard.get("maturity_stage")
        summary: dict[str, Any] = {
            "strengths": [f"{d['id']}: {d['summary']}" for d in _strongest(run, 3)],
            "keyIssues": [f"{d['id']}: {d['keyIssue']}" for d in _weakest(run, 3)],
        }
        if score is not None and stage:
            summary["headline"] = f"Marketing Readiness: {score}/100 ({stage})"
            summary["narrative"] = (
                f"Overall marketing readiness scores {score}/100, placing the company "
                f"at the {stage} stage. Detailed narrative was not available for this run."
            )
        return summary
