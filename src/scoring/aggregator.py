# src/scoring/aggregator.py - v1
"""Weighted score aggregation and maturity classification.

Pure functions: no I/O, no randomness. Used by the scoring step and for
standalone consistency checks of externally supplied scores.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping

from pydantic import BaseModel

from gapflow.core.models import ScoreCard

DIMENSIONS: tuple[str, ...] = (
    "brand", "content", "seo", "website", "digitalFootprint", "authority",
)

DEFAULT_WEIGHTS: dict[str, float] = {
    "brand": 0.15,
    "content": 0.15,
    "seo": 0.10,
    "website": 0.10,
    "digitalFootprint": 0.30,
    "authority": 0.20,
}

# Ascending (threshold, stage); the highest threshold <= score wins.
MATURITY_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (0, "Foundational"),
    (40, "Emerging"),
    (55, "Established"),
    (70, "Advanced"),
    (85, "CategoryLeader"),
)

MATURITY_STAGES: tuple[str, ...] = tuple(stage for _, stage in MATURITY_THRESHOLDS)


class AggregateResult(BaseModel):
    """Overall score, its maturity stage and the normalized weights used."""

    model_config = {"frozen": True}

    overall_score: int
    maturity_stage: str
    weights: dict[str, float]


class ConsistencyCheck(BaseModel):
    """Comparison of a supplied overall score against a recomputation."""

    model_config = {"frozen": True}

    supplied: float
    computed: int
    difference: float
    consistent: bool


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (72.5 -> 73), unlike round()."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> float:
    return min(100.0, max(0.0, value))


def _check_finite(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


def resolve_weights(
    dimensions: Iterable[str],
    weights: Mapping[str, float] | None = None,
    default_weights: Mapping[str, float] = DEFAULT_WEIGHTS,
) -> dict[str, float]:
    """Weight per scored dimension, normalized to sum to 1.

    Dimensions without a supplied weight take their default weight, or
    a uniform share when no default is declared either.

    Raises:
        ValueError: Negative or non-finite weight, or all weights zero.
    """
    dims = list(dimensions)
    if not dims:
        raise ValueError("No dimensions to weight")

    uniform = 1.0 / len(dims)
    raw: dict[str, float] = {}
    for dim in dims:
        if weights is not None and dim in weights:
            w = weights[dim]
        else:
            w = default_weights.get(dim, uniform)
        _check_finite(f"weight[{dim}]", w)
        raw[dim] = float(w)

    total = sum(raw.values())
    if total <= 0:
        raise ValueError("Weights of the scored dimensions sum to zero")
    return {dim: w / total for dim, w in raw.items()}


def classify_maturity(
    score: float,
    thresholds: tuple[tuple[int, str], ...] = MATURITY_THRESHOLDS,
) -> str:
    """Stage of the highest threshold <= score (lowest stage below all)."""
    stage = thresholds[0][1]
    for threshold, label in thresholds:
        if score >= threshold:
            stage = label
        else:
            break
    return stage


def aggregate(
    dimension_scores: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
    default_weights: Mapping[str, float] = DEFAULT_WEIGHTS,
) -> AggregateResult:
    """Combine per-dimension scores into an overall score and stage.

    Args:
        dimension_scores: Score per dimension id. Values above 100 are clamped.
        weights: Optional weights; missing keys fall back to default_weights.
        default_weights: Declared default weight per dimension.

    Raises:
        ValueError: Empty input, negative or non-finite score or weight.
    """
    if not dimension_scores:
        raise ValueError("At least one dimension score is required")

    scores: dict[str, float] = {}
    for dim, value in dimension_scores.items():
        _check_finite(f"score[{dim}]", value)
        scores[dim] = clamp_score(float(value))

    normalized = resolve_weights(scores, weights, default_weights)
    weighted = sum(scores[dim] * normalized[dim] for dim in scores)
    overall = int(clamp_score(round_half_up(weighted)))

    return AggregateResult(
        overall_score=overall,
        maturity_stage=classify_maturity(overall),
        weights=normalized,
    )


def build_scorecard(
    dimension_scores: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
) -> ScoreCard:
    """Whole new ScoreCard for the given dimension scores."""
    result = aggregate(dimension_scores, weights)
    return ScoreCard(
        dimension_scores={d: clamp_score(float(s)) for d, s in dimension_scores.items()},
        overall_score=result.overall_score,
        maturity_stage=result.maturity_stage,
    )


def score_dimension(components: Iterable[tuple[float, float]]) -> int:
    """Dimension score from (points earned, points possible) components.

    Raises:
        ValueError: No points possible, or a negative component.
    """
    earned = 0.0
    possible = 0.0
    for points, max_points in components:
        _check_finite("points", points)
        _check_finite("max_points", max_points)
        earned += min(points, max_points)
        possible += max_points
    if possible <= 0:
        raise ValueError("Dimension has no points possible")
    return int(clamp_score(round_half_up(earned / possible * 100)))


def check_consistency(
    supplied_overall: float,
    dimension_scores: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
    tolerance: float = 2.0,
) -> ConsistencyCheck:
    """Check an externally supplied overall score against a recomputation."""
    computed = aggregate(dimension_scores, weights).overall_score
    difference = abs(float(supplied_overall) - computed)
    return ConsistencyCheck(
        supplied=float(supplied_overall),
        computed=computed,
        difference=difference,
        consistent=difference <= tolerance,
    )
