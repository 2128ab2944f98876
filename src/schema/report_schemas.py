# src/schema/report_schemas.py - v1
"""Declared shapes of the growth report sections.

Kept as plain dicts and loaded into FieldSpec trees at import.
"""

from __future__ import annotations

from typing import Any

from gapflow.schema.models import FieldSpec, load_schema
from gapflow.scoring.aggregator import DIMENSIONS, MATURITY_STAGES

# Raw spellings seen from the model, compared after normalize_token().
MATURITY_SYNONYMS: dict[str, str] = {
    "early": "Foundational",
    "earlystage": "Foundational",
    "foundation": "Foundational",
    "developing": "Emerging",
    "scaling": "Established",
    "mature": "Advanced",
    "leader": "CategoryLeader",
    "leading": "CategoryLeader",
    "categoryleader": "CategoryLeader",
}

LEVELS = ["low", "medium", "high"]

_MATURITY: dict[str, Any] = {
    "type": "enum",
    "allowed": list(MATURITY_STAGES),
    "synonyms": MATURITY_SYNONYMS,
    "default": "Emerging",
}

_DIMENSION_ID: dict[str, Any] = {"type": "enum", "allowed": list(DIMENSIONS)}

_SCORE: dict[str, Any] = {"type": "number", "minimum": 0, "maximum": 100}

_QUICK_WIN_IA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {"type": "string"},
        "dimensionId": {**_DIMENSION_ID, "required": False},
    },
}

_QUICK_WIN: dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {"type": "string"},
        "dimensionId": _DIMENSION_ID,
        "impactLevel": {"type": "enum", "allowed": LEVELS, "default": "medium"},
        "effortLevel": {"type": "enum", "allowed": LEVELS, "default": "low"},
    },
}

_PRIORITY: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
    },
}

_KPI: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "whatItMeasures": {"type": "string"},
        "whyItMatters": {"type": "string"},
        "whatGoodLooksLike": {"type": "string"},
    },
}

_PHASE: dict[str, Any] = {
    "type": "object",
    "properties": {
        "whyItMatters": {"type": "string"},
        "actions": {"type": "array", "items": {"type": "string"}, "min_items": 1},
    },
    "placeholder": {
        "whyItMatters": "TBD - Strategic rationale for {key}",
        "actions": [
            "TBD - Action 1 for {key}",
            "TBD - Action 2 for {key}",
            "TBD - Action 3 for {key}",
        ],
    },
}

_ROADMAP: dict[str, Any] = {
    "type": "object",
    "properties": {
        "phase0_30": _PHASE,
        "phase30_60": _PHASE,
        "phase60_90": _PHASE,
    },
    "placeholder": {},
}

QUICK_WIN_PLACEHOLDER: dict[str, Any] = {
    "dimensionId": "brand",
    "action": "TBD - Additional quick win to be identified",
    "impactLevel": "medium",
    "effortLevel": "low",
}

STRATEGIC_PRIORITY_PLACEHOLDER: dict[str, Any] = {
    "title": "TBD - Additional strategic priority",
    "description": "To be defined based on deeper analysis of business context and goals.",
}

KPI_PLACEHOLDER: dict[str, Any] = {
    "name": "TBD - Additional KPI",
    "whatItMeasures": "To be defined",
    "whyItMatters": "To be determined based on strategic priorities",
    "whatGoodLooksLike": "Benchmarks to be established",
}

INITIAL_ASSESSMENT: dict[str, Any] = {
    "type": "object",
    "properties": {
        "executiveSummary": {
            "type": "string",
            "placeholder": "TBD - Executive summary to be completed",
        },
        "marketingReadinessScore": {
            **_SCORE,
            "derived": {"fn": "mean", "source": "dimensionSummaries", "tolerance": 2},
        },
        "maturityStage": _MATURITY,
        "topOpportunities": {
            "type": "array",
            "items": {"type": "string"},
            "exact_items": 3,
            "placeholder": "TBD - Additional opportunity to be identified",
        },
        "quickWins": {
            "type": "array",
            "items": _QUICK_WIN_IA,
            "exact_items": 3,
            "placeholder": {"action": "TBD - Additional quick win to be identified"},
        },
        "dimensionSummaries": {
            "type": "array",
            "exact_items": len(DIMENSIONS),
            "items": {
                "type": "object",
                "properties": {
                    "id": _DIMENSION_ID,
                    "score": _SCORE,
                    "summary": {"type": "string"},
                    "keyIssue": {"type": "string"},
                },
            },
            "key_field": "id",
            "required_keys": list(DIMENSIONS),
            "key_placeholder": {
                "score": 50,
                "summary": "TBD - {key} analysis to be completed",
                "keyIssue": "TBD - Key issue for {key} to be identified",
            },
        },
    },
}

QUICK_WINS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "quickWins": {
            "type": "array",
            "items": _QUICK_WIN,
            "min_items": 3,
            "max_items": 5,
            "placeholder": QUICK_WIN_PLACEHOLDER,
        },
    },
}

STRATEGIC_PLAN: dict[str, Any] = {
    "type": "object",
    "properties": {
        "strategicPriorities": {
            "type": "array",
            "items": _PRIORITY,
            "min_items": 3,
            "max_items": 7,
            "placeholder": STRATEGIC_PRIORITY_PLACEHOLDER,
        },
        "kpis": {
            "type": "array",
            "items": _KPI,
            "min_items": 4,
            "max_items": 8,
            "placeholder": KPI_PLACEHOLDER,
        },
        "roadmap90Days": _ROADMAP,
    },
}

EXECUTIVE_SUMMARY: dict[str, Any] = {
    "type": "object",
    "properties": {
        "headline": {
            "type": "string",
            "placeholder": "TBD - Headline to be written",
        },
        "narrative": {
            "type": "string",
            "placeholder": "TBD - Executive narrative to be written",
        },
        "strengths": {
            "type": "array",
            "items": {"type": "string"},
            "min_items": 1,
            "max_items": 5,
            "placeholder": "TBD - Strength to be identified",
        },
        "keyIssues": {
            "type": "array",
            "items": {"type": "string"},
            "min_items": 1,
            "max_items": 5,
            "placeholder": "TBD - Key issue to be identified",
        },
    },
}

FULL_REPORT: dict[str, Any] = {
    "type": "object",
    "properties": {
        "overallScore": _SCORE,
        "maturityStage": _MATURITY,
        "executiveSummary": {"type": "object", "properties": {
            "headline": {"type": "string"},
            "narrative": {"type": "string"},
        }},
        "dimensionAnalyses": {
            "type": "array",
            "exact_items": len(DIMENSIONS),
            "items": {
                "type": "object",
                "properties": {
                    "id": _DIMENSION_ID,
                    "score": _SCORE,
                    "summary": {"type": "string"},
                    "keyFindings": {
                        "type": "array",
                        "items": {"type": "string"},
                        "min_items": 1,
                    },
                },
            },
            "key_field": "id",
            "required_keys": list(DIMENSIONS),
            "key_placeholder": {
                "score": 50,
                "summary": "TBD - {key} analysis to be completed",
                "keyFindings": [
                    "TBD - Key finding 1 for {key}",
                    "TBD - Key finding 2 for {key}",
                    "TBD - Key finding 3 for {key}",
                ],
            },
        },
        "quickWins": QUICK_WINS["properties"]["quickWins"],
        "strategicPriorities": STRATEGIC_PLAN["properties"]["strategicPriorities"],
        "kpis": STRATEGIC_PLAN["properties"]["kpis"],
        "roadmap90Days": _ROADMAP,
    },
}

INITIAL_ASSESSMENT_SCHEMA: FieldSpec = load_schema(INITIAL_ASSESSMENT)
QUICK_WINS_SCHEMA: FieldSpec = load_schema(QUICK_WINS)
STRATEGIC_PLAN_SCHEMA: FieldSpec = load_schema(STRATEGIC_PLAN)
EXECUTIVE_SUMMARY_SCHEMA: FieldSpec = load_schema(EXECUTIVE_SUMMARY)
FULL_REPORT_SCHEMA: FieldSpec = load_schema(FULL_REPORT)
