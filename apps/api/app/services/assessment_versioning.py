"""New assessment versions spawned by accepted corrections and challenges."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from app.ami.aggregation import compute_aggregation, compute_overall_confidence
from app.ami.canonical import compute_integrity_hash, utc_timestamp
from app.ami.gates import Rubrics, validate_assessment
from app.ami.schema import SourceCatalog, build_assessment_id
from app.submissions.schema import (
    VERSIONING_SUBMISSION_TYPES,
    AssessmentUpdates,
    ReviewDecision,
    Submission,
)
from app.submissions.workflow import ReviewOutcome, SubmissionRepository, review_submission
from apps.api.app.services import assessment_store
from apps.api.app.services.audit import (
    log_assessment_event,
    log_structured_event,
    log_submission_event,
)

logger = logging.getLogger(__name__)


class LinkingSubmissionRepository(SubmissionRepository, Protocol):
    def link_assessment(
        self,
        submission_id: str,
        assessment_id: str,
        *,
        now: datetime | None = None,
    ) -> Submission | None: ...


@dataclass(frozen=True)
class VersionResult:
    assessment: dict[str, Any] | None
    errors: list[str] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def created(self) -> bool:
        return self.assessment is not None


@dataclass(frozen=True)
class ReviewResult:
    outcome: ReviewOutcome
    version: VersionResult | None = None

    def as_payload(self) -> dict[str, object]:
        submission = self.outcome.submission
        payload: dict[str, object] = {
            "submission_id": submission.submission_id if submission else None,
            "status": submission.status if submission else None,
            "review": submission.review.model_dump(mode="json")
            if submission and submission.review
            else None,
        }
        if self.version is not None and self.version.assessment is not None:
            payload["resulting_assessment_id"] = self.version.assessment["assessment_id"]
            payload["resulting_version"] = self.version.assessment["version"]
        elif self.version is not None and self.version.errors:
            payload["version_errors"] = list(self.version.errors)
        return payload


def _apply_dimension_overrides(
    assessment: dict[str, Any],
    updates: AssessmentUpdates,
) -> None:
    by_id = {
        dimension.get("dimension_id"): dimension
        for dimension in assessment.get("dimensions") or []
        if isinstance(dimension, dict)
    }
    for override in updates.dimensions:
        dimension = by_id.get(override.dimension_id)
        if dimension is None:
            continue
        if override.score is not None:
            dimension["score"] = override.score
        if override.rationale:
            dimension["rationale"] = override.rationale
        if override.confidence:
            dimension["confidence"] = override.confidence
        if override.rubric_refs is not None:
            dimension["rubric_refs"] = list(override.rubric_refs)
        if override.evidence is not None:
            dimension["evidence"] = copy.deepcopy(override.evidence)


def build_new_assessment_version(
    original: Mapping[str, Any],
    submission: Submission,
    updates: AssessmentUpdates,
    *,
    version: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Clone, bump, apply overrides, re-aggregate and re-hash; nothing is persisted."""
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    system_id = original["system_id"]
    assessment = copy.deepcopy(dict(original))
    assessment.pop("integrity", None)
    assessment["assessment_id"] = build_assessment_id(system_id, version, moment.date())
    assessment["version"] = version
    assessment["assessed_at"] = utc_timestamp(moment)
    assessment["previous_assessment_id"] = original["assessment_id"]

    _apply_dimension_overrides(assessment, updates)

    if assessment.get("status") == "scored":
        aggregation = compute_aggregation(assessment["dimensions"])
        assessment["overall_score"] = aggregation.score_percent
        assessment["grade"] = aggregation.grade
        assessment["overall_confidence"] = compute_overall_confidence(assessment["dimensions"])

    assessment["review"] = {"state": "draft", "reviewers": []}
    assessment["notes"] = f"Created from {submission.type} submission {submission.submission_id}"
    assessment["integrity"] = compute_integrity_hash(assessment, hashed_at=moment)
    return assessment


def create_new_assessment_version(
    data_root: Path,
    submission: Submission,
    updates: AssessmentUpdates | None,
    *,
    source_catalog: SourceCatalog | None = None,
    rubrics: Rubrics | None = None,
    now: datetime | None = None,
) -> VersionResult:
    """Build and store the next version; an invalid candidate is discarded."""
    if updates is None:
        return VersionResult(assessment=None, skipped_reason="no_assessment_updates")
    if not submission.assessment_id:
        return VersionResult(assessment=None, skipped_reason="no_assessment_reference")

    original = assessment_store.get_assessment_by_id(data_root, submission.assessment_id)
    if original is None:
        return VersionResult(assessment=None, skipped_reason="assessment_not_found")

    candidate = build_new_assessment_version(
        original,
        submission,
        updates,
        version=assessment_store.next_version(data_root, original["system_id"]),
        now=now,
    )
    validation = validate_assessment(candidate, source_catalog=source_catalog, rubrics=rubrics)
    if not validation.valid:
        log_assessment_event(
            "assessment.version_discarded",
            candidate,
            submission_id=submission.submission_id,
            errors=validation.errors,
        )
        return VersionResult(assessment=None, errors=list(validation.errors))

    assessment_store.upsert_assessment(data_root, candidate)
    log_assessment_event(
        "assessment.version_created",
        candidate,
        submission_id=submission.submission_id,
        previous_assessment_id=candidate["previous_assessment_id"],
    )
    return VersionResult(assessment=candidate)


def apply_review_decision(
    repository: LinkingSubmissionRepository,
    data_root: Path,
    submission_id: str,
    decision: ReviewDecision,
    *,
    source_catalog: SourceCatalog | None = None,
    rubrics: Rubrics | None = None,
    now: datetime | None = None,
) -> ReviewResult:
    """Run the state machine, then spawn and link a new version when one is due."""
    outcome = review_submission(repository, submission_id, decision, now=now)
    if not outcome.success or outcome.submission is None:
        log_structured_event(
            "submission.review_rejected",
            submission_id=submission_id,
            error=outcome.error,
            message=outcome.message,
        )
        return ReviewResult(outcome=outcome)

    submission = outcome.submission
    log_submission_event(
        "submission.reviewed",
        submission,
        reviewer_handle=submission.review.reviewer_handle if submission.review else None,
    )
    if not (
        submission.status == "accepted"
        and submission.type in VERSIONING_SUBMISSION_TYPES
        and submission.assessment_id
    ):
        return ReviewResult(outcome=outcome)

    version = create_new_assessment_version(
        data_root,
        submission,
        decision.assessment_updates,
        source_catalog=source_catalog,
        rubrics=rubrics,
        now=now,
    )
    if version.assessment is not None:
        linked = repository.link_assessment(
            submission.submission_id, version.assessment["assessment_id"], now=now
        )
        if linked is not None:
            outcome = ReviewOutcome(success=True, submission=linked)
    elif version.skipped_reason:
        logger.info(
            "No new assessment version for %s: %s",
            submission.submission_id,
            version.skipped_reason,
        )
    return ReviewResult(outcome=outcome, version=version)
