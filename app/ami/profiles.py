"""Deterministic PASS/FAIL evaluation of assessments against compliance profiles."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from app.ami.aggregation import is_scored
from app.ami.gates import assessment_source_ids, dimension_source_ids
from app.ami.schema import (
    DIMENSION_DISPLAY_NAMES,
    MAX_DIMENSION_SCORE,
    ComplianceProfile,
    SourceCatalog,
)
from app.ami.signals import max_evidence_age_days

CONFIDENCE_RANK = {"unverified": 0, "inferred": 1, "verified": 2}

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class ProfileReason:
    code: str
    message: str
    severity: Severity = "error"

    def as_payload(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message, "severity": self.severity}


@dataclass(frozen=True)
class ProfileEvaluation:
    passed: bool
    reasons: list[ProfileReason] = field(default_factory=list)
    computed: dict[str, Any] = field(default_factory=dict)

    def as_payload(self) -> dict[str, object]:
        return {
            "pass": self.passed,
            "reasons": [reason.as_payload() for reason in self.reasons],
            "computed": dict(self.computed),
        }


def _display_name(dimension_id: Any) -> str:
    return DIMENSION_DISPLAY_NAMES.get(dimension_id, str(dimension_id))


def _find_dimension(
    dimensions: list[Mapping[str, Any]],
    dimension_id: str,
) -> Mapping[str, Any] | None:
    for dimension in dimensions:
        if dimension.get("dimension_id") == dimension_id:
            return dimension
    return None


def _has_primary_source(dimension: Mapping[str, Any], catalog: SourceCatalog) -> bool:
    return any(
        catalog.get(sid) is not None and catalog[sid].reliability == "primary"
        for sid in dimension_source_ids(dimension)
    )


def evaluate_assessment_against_profile(
    assessment: Mapping[str, Any],
    source_catalog: SourceCatalog | None,
    profile: ComplianceProfile | Mapping[str, Any],
) -> ProfileEvaluation:
    """Apply every configured profile rule; rule order fixes reason order."""
    if not isinstance(profile, BaseModel):
        profile = ComplianceProfile.model_validate(profile)
    rules = profile.rules
    catalog: SourceCatalog = source_catalog or {}
    dimensions = [
        item for item in (assessment.get("dimensions") or []) if isinstance(item, Mapping)
    ]
    scored = [item for item in dimensions if is_scored(item)]
    not_scored_count = len(dimensions) - len(scored)
    all_source_ids = assessment_source_ids(dimensions)
    review = assessment.get("review") if isinstance(assessment.get("review"), Mapping) else {}
    review_state = review.get("state") or None
    reviewers = review.get("reviewers")
    has_signatures = isinstance(reviewers, list) and len(reviewers) > 0
    overall_score = assessment.get("overall_score")
    status = assessment.get("status")
    max_age_days = max_evidence_age_days(assessment)

    computed = {
        "scored_count": len(scored),
        "not_scored_count": not_scored_count,
        "distinct_sources_total": len(all_source_ids),
        "max_source_age_days": max_age_days,
        "overall_score": overall_score,
        "status": status,
        "review_state": review_state,
        "has_reviewer_signatures": has_signatures,
    }

    reasons: list[ProfileReason] = []

    if rules.require_scored and status != "scored":
        reasons.append(
            ProfileReason(
                "PROFILE_STATUS_NOT_SCORED",
                f'Assessment status is "{status}"; profile requires "scored"',
            )
        )

    if rules.require_published and review_state != "published":
        reasons.append(
            ProfileReason(
                "PROFILE_REVIEW_STATE_FAIL",
                f'Review state is "{review_state or "none"}"; profile requires "published"',
            )
        )

    if rules.require_reviewer_signature and not has_signatures:
        reasons.append(
            ProfileReason(
                "PROFILE_SIGNATURE_MISSING",
                "Profile requires at least one reviewer signature",
            )
        )

    if rules.max_not_scored is not None and not_scored_count > rules.max_not_scored:
        reasons.append(
            ProfileReason(
                "PROFILE_NOT_SCORED_EXCEEDED",
                f"{not_scored_count} dimensions not scored; "
                f"profile allows max {rules.max_not_scored}",
            )
        )

    if rules.min_overall_score_percent is not None:
        if overall_score is None or overall_score < rules.min_overall_score_percent:
            shown = "null" if overall_score is None else overall_score
            reasons.append(
                ProfileReason(
                    "PROFILE_OVERALL_SCORE_FAIL",
                    f"Overall score is {shown}; "
                    f"profile requires >= {rules.min_overall_score_percent}",
                )
            )

    for dimension_id, min_score in rules.min_scores.items():
        dimension = _find_dimension(dimensions, dimension_id)
        if dimension is None or not is_scored(dimension) or dimension["score"] < min_score:
            scored_value = dimension is not None and dimension.get("scored")
            actual = dimension.get("score") if scored_value else "not scored"
            reasons.append(
                ProfileReason(
                    "PROFILE_MIN_SCORE_FAIL",
                    f"{_display_name(dimension_id)} score is {actual}; "
                    f"profile requires >= {min_score}",
                )
            )

    for dimension_id, min_confidence in rules.min_confidence.items():
        dimension = _find_dimension(dimensions, dimension_id)
        if dimension is None or not dimension.get("scored"):
            continue
        actual_rank = CONFIDENCE_RANK.get(dimension.get("confidence"), -1)
        if actual_rank < CONFIDENCE_RANK[min_confidence]:
            reasons.append(
                ProfileReason(
                    "PROFILE_CONFIDENCE_FAIL",
                    f'{_display_name(dimension_id)} confidence is "{dimension.get("confidence")}"; '
                    f'profile requires at least "{min_confidence}"',
                )
            )

    if (
        rules.min_distinct_sources_total is not None
        and len(all_source_ids) < rules.min_distinct_sources_total
    ):
        reasons.append(
            ProfileReason(
                "PROFILE_SOURCE_DIVERSITY_FAIL",
                f"{len(all_source_ids)} distinct sources found; "
                f"profile requires >= {rules.min_distinct_sources_total}",
            )
        )

    if rules.min_distinct_sources_per_dimension_ge4 is not None:
        required = rules.min_distinct_sources_per_dimension_ge4
        for dimension in scored:
            if dimension["score"] < 4:
                continue
            found = dimension_source_ids(dimension)
            if len(found) < required:
                reasons.append(
                    ProfileReason(
                        "PROFILE_SOURCE_DIVERSITY_FAIL",
                        f"{_display_name(dimension.get('dimension_id'))} "
                        f"(score {dimension['score']}) has {len(found)} source(s); "
                        f"profile requires >= {required} for dimensions scoring >= 4",
                    )
                )

    if rules.require_primary_for_score5:
        for dimension in scored:
            if dimension["score"] != MAX_DIMENSION_SCORE:
                continue
            if not _has_primary_source(dimension, catalog):
                reasons.append(
                    ProfileReason(
                        "PROFILE_SOURCE_DIVERSITY_FAIL",
                        f"{_display_name(dimension.get('dimension_id'))} (score 5) has no "
                        "primary source; profile requires primary source for score 5",
                    )
                )

    if (
        rules.max_source_age_days is not None
        and max_age_days is not None
        and max_age_days > rules.max_source_age_days
    ):
        reasons.append(
            ProfileReason(
                "PROFILE_SOURCE_STALENESS_FAIL",
                f"Oldest source is {max_age_days} days old; "
                f"profile allows max {rules.max_source_age_days} days",
                severity="warning",
            )
        )

    return ProfileEvaluation(
        passed=not any(reason.severity == "error" for reason in reasons),
        reasons=reasons,
        computed=computed,
    )
