from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.ami.schema import DIMENSION_IDS


class AssessmentNotFoundError(LookupError):
    def __init__(self, assessment_id: str) -> None:
        super().__init__(assessment_id)
        self.assessment_id = assessment_id


@dataclass(frozen=True)
class DimensionChange:
    dimension_id: str
    old_score: int | None
    new_score: int | None
    delta: int | None
    confidence_changed: bool

    def as_payload(self) -> dict[str, object]:
        return {
            "dimension_id": self.dimension_id,
            "old_score": self.old_score,
            "new_score": self.new_score,
            "delta": self.delta,
            "confidence_changed": self.confidence_changed,
        }


@dataclass(frozen=True)
class AssessmentDiff:
    overall_score_delta: int | None
    grade_changed: bool
    confidence_changed: bool
    dimension_changes: list[DimensionChange] = field(default_factory=list)

    def as_payload(self) -> dict[str, object]:
        return {
            "overall_score_delta": self.overall_score_delta,
            "grade_changed": self.grade_changed,
            "confidence_changed": self.confidence_changed,
            "dimension_changes": [change.as_payload() for change in self.dimension_changes],
        }


def _find_dimension(
    assessment: Mapping[str, Any] | None,
    dimension_id: str,
) -> Mapping[str, Any] | None:
    if assessment is None:
        return None
    for dimension in assessment.get("dimensions") or []:
        if isinstance(dimension, Mapping) and dimension.get("dimension_id") == dimension_id:
            return dimension
    return None


def _scored_value(dimension: Mapping[str, Any] | None) -> int | None:
    if dimension is None or not dimension.get("scored"):
        return None
    return dimension.get("score")


def diff_assessments(
    current: Mapping[str, Any],
    previous: Mapping[str, Any] | None,
) -> AssessmentDiff:
    """Compare two versions of one system's assessment; previous may be absent."""
    changes: list[DimensionChange] = []
    for dimension_id in DIMENSION_IDS:
        current_dimension = _find_dimension(current, dimension_id)
        previous_dimension = _find_dimension(previous, dimension_id)
        old_score = _scored_value(previous_dimension)
        new_score = _scored_value(current_dimension)
        delta = new_score - old_score if old_score is not None and new_score is not None else None
        confidence_changed = previous_dimension is not None and (
            previous_dimension.get("confidence")
            != (current_dimension or {}).get("confidence")
        )
        changes.append(
            DimensionChange(
                dimension_id=dimension_id,
                old_score=old_score,
                new_score=new_score,
                delta=delta,
                confidence_changed=confidence_changed,
            )
        )

    overall_delta = None
    if previous is not None:
        old_overall = previous.get("overall_score")
        new_overall = current.get("overall_score")
        if old_overall is not None and new_overall is not None:
            overall_delta = new_overall - old_overall

    return AssessmentDiff(
        overall_score_delta=overall_delta,
        grade_changed=previous is not None and previous.get("grade") != current.get("grade"),
        confidence_changed=previous is not None
        and previous.get("overall_confidence") != current.get("overall_confidence"),
        dimension_changes=changes,
    )


def select_diff_pair(
    assessments: Sequence[Mapping[str, Any]],
    *,
    to_id: str | None = None,
    from_id: str | None = None,
) -> tuple[Mapping[str, Any], Mapping[str, Any] | None]:
    """Resolve (current, previous) from a newest-first list of one system's versions.

    Without explicit ids the newest version is compared with the one it names in
    `previous_assessment_id`, falling back to the next older stored version.
    """
    by_id = {item.get("assessment_id"): item for item in assessments}
    if to_id:
        if to_id not in by_id:
            raise AssessmentNotFoundError(to_id)
        current = by_id[to_id]
    else:
        current = assessments[0]

    if from_id:
        if from_id not in by_id:
            raise AssessmentNotFoundError(from_id)
        return current, by_id[from_id]

    previous_id = current.get("previous_assessment_id")
    if previous_id:
        return current, by_id.get(previous_id)

    ids = [item.get("assessment_id") for item in assessments]
    index = ids.index(current.get("assessment_id"))
    if index < len(assessments) - 1:
        return current, assessments[index + 1]
    return current, None
