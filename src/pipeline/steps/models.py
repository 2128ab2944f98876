# src/pipeline/steps/models.py - v1
"""Typed run fields of the growth report workflow.

Every merge into Run.fields goes through build_report_registry(), so a
step cannot store a value of the wrong shape under a known name.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from gapflow.core.fields import FieldRegistry
from gapflow.core.models import ScoreCard


class ReportContext(BaseModel):
    """Normalized request inputs."""

    url: str
    domain: str
    company_name: str | None = None
    notes: str | None = None


class DimensionSummary(BaseModel):
    id: str
    score: float = Field(ge=0, le=100)
    summary: str
    keyIssue: str  # noqa: N815
    is_placeholder: bool = False


class InitialQuickWin(BaseModel):
    action: str
    dimensionId: str | None = None  # noqa: N815
    is_placeholder: bool = False


class InitialAssessment(BaseModel):
    """Section produced by the assessment step."""

    executiveSummary: str  # noqa: N815
    marketingReadinessScore: float = Field(ge=0, le=100)  # noqa: N815
    maturityStage: str  # noqa: N815
    topOpportunities: list[str]  # noqa: N815
    quickWins: list[InitialQuickWin]  # noqa: N815
    dimensionSummaries: list[DimensionSummary]  # noqa: N815


class QuickWin(BaseModel):
    action: str
    dimensionId: str  # noqa: N815
    impactLevel: str = "medium"  # noqa: N815
    effortLevel: str = "low"  # noqa: N815
    is_placeholder: bool = False


class StrategicPriority(BaseModel):
    title: str
    description: str
    is_placeholder: bool = False


class Kpi(BaseModel):
    name: str
    whatItMeasures: str  # noqa: N815
    whyItMatters: str  # noqa: N815
    whatGoodLooksLike: str  # noqa: N815
    is_placeholder: bool = False


class RoadmapPhase(BaseModel):
    whyItMatters: str  # noqa: N815
    actions: list[str]
    is_placeholder: bool = False


class Roadmap(BaseModel):
    phase0_30: RoadmapPhase
    phase30_60: RoadmapPhase
    phase60_90: RoadmapPhase
    is_placeholder: bool = False


class StrategicPlan(BaseModel):
    """Section produced by the strategic_initiatives step."""

    strategicPriorities: list[StrategicPriority]  # noqa: N815
    kpis: list[Kpi]
    roadmap90Days: Roadmap  # noqa: N815


class ExecutiveSummary(BaseModel):
    headline: str
    narrative: str
    strengths: list[str]
    keyIssues: list[str]  # noqa: N815
    is_placeholder: bool = False


class DimensionAnalysis(BaseModel):
    id: str
    score: float = Field(ge=0, le=100)
    summary: str
    keyFindings: list[str]  # noqa: N815
    is_placeholder: bool = False


class GrowthReport(BaseModel):
    """Final assembled report."""

    runId: str  # noqa: N815
    url: str
    companyName: str | None = None  # noqa: N815
    overallScore: int = Field(ge=0, le=100)  # noqa: N815
    maturityStage: str  # noqa: N815
    executiveSummary: ExecutiveSummary  # noqa: N815
    dimensionAnalyses: list[DimensionAnalysis]  # noqa: N815
    quickWins: list[QuickWin]  # noqa: N815
    strategicPriorities: list[StrategicPriority]  # noqa: N815
    kpis: list[Kpi]
    roadmap90Days: Roadmap  # noqa: N815
    degradedSections: list[str] = Field(default_factory=list)  # noqa: N815
    generatedAt: str  # noqa: N815


REPORT_FIELD_TYPES: dict[str, Any] = {
    "context": ReportContext,
    "assessment": InitialAssessment,
    "quickWins": list[QuickWin],
    "strategicPlan": StrategicPlan,
    "scorecard": ScoreCard,
    "executiveSummary": ExecutiveSummary,
    "report": GrowthReport,
}


def build_report_registry() -> FieldRegistry:
    """Strict registry of the report workflow's fields."""
    return FieldRegistry(REPORT_FIELD_TYPES, strict=True)
