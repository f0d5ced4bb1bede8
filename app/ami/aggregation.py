"""Weighted aggregation, grade mapping and overall confidence for AMI assessments.

AMI = round(sum(score_i * weight_i) / sum(5 * weight_i) * 100) over scored
dimensions only; weights of unscored dimensions are redistributed
proportionally among the scored ones.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.ami.schema import DIMENSION_WEIGHTS, MAX_DIMENSION_SCORE


@dataclass(frozen=True)
class AggregationResult:
    scored_count: int
    not_scored_count: int
    renormalized_weights: dict[str, float] = field(default_factory=dict)
    raw_weighted_sum: float = 0.0
    max_possible_weighted: int = 0
    score_percent: int | None = None
    grade: str | None = None

    def as_payload(self) -> dict[str, object]:
        return {
            "scored_count": self.scored_count,
            "not_scored_count": self.not_scored_count,
            "renormalized_weights": dict(self.renormalized_weights),
            "raw_weighted_sum": self.raw_weighted_sum,
            "max_possible_weighted": self.max_possible_weighted,
            "score_percent": self.score_percent,
            "grade": self.grade,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_scored(dimension: Mapping[str, Any]) -> bool:
    return bool(dimension.get("scored")) and dimension.get("score") is not None


def _weighable(dimension: Mapping[str, Any]) -> bool:
    dimension_id = dimension.get("dimension_id")
    score = dimension.get("score")
    return (
        isinstance(dimension_id, str)
        and dimension_id in DIMENSION_WEIGHTS
        and isinstance(score, int | float)
        and not isinstance(score, bool)
    )


def scored_dimensions(dimensions: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    return [item for item in dimensions if is_scored(item)]


def score_to_grade(score: int | None) -> str | None:
    if score is None:
        return None
    if score >= 80:
        return "A"
    if score >= 60:
        return "B"
    if score >= 40:
        return "C"
    if score >= 20:
        return "D"
    return "F"


def compute_aggregation(dimensions: Iterable[Mapping[str, Any]]) -> AggregationResult:
    """Aggregate dimension scores into an overall percent and grade."""
    all_dimensions = list(dimensions)
    scored = scored_dimensions(all_dimensions)
    if not scored:
        return AggregationResult(scored_count=0, not_scored_count=len(all_dimensions))

    # Malformed ids and scores are reported by the validator; they carry no weight here.
    # Canonical id order keeps the float sums independent of input order.
    weighted = sorted(
        (item for item in scored if _weighable(item)),
        key=lambda item: item["dimension_id"],
    )
    total_weight = sum(DIMENSION_WEIGHTS[item["dimension_id"]] for item in weighted)
    renormalized: dict[str, float] = {}
    if total_weight > 0:
        for item in weighted:
            dimension_id = item["dimension_id"]
            renormalized[dimension_id] = DIMENSION_WEIGHTS[dimension_id] / total_weight

    raw_weighted_sum = 0.0
    for item in weighted:
        raw_weighted_sum += item["score"] * renormalized[item["dimension_id"]]
    score_percent = _round_half_up(raw_weighted_sum / MAX_DIMENSION_SCORE * 100)
    return AggregationResult(
        scored_count=len(scored),
        not_scored_count=len(all_dimensions) - len(scored),
        renormalized_weights=renormalized,
        raw_weighted_sum=raw_weighted_sum,
        max_possible_weighted=MAX_DIMENSION_SCORE,
        score_percent=score_percent,
        grade=score_to_grade(score_percent),
    )


def compute_overall_confidence(dimensions: Iterable[Mapping[str, Any]]) -> str:
    scored = scored_dimensions(dimensions)
    if not scored:
        return "low"
    confidences = [item.get("confidence") for item in scored]
    if all(value == "verified" for value in confidences):
        return "high"
    if any(value == "unverified" for value in confidences):
        return "low"
    return "medium"
