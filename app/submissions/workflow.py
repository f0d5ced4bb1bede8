"""Submission review state machine.

received -> under_review | rejected
under_review -> accepted | rejected
accepted and rejected are terminal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from app.ami.canonical import compute_submission_signature_hash, utc_timestamp
from app.submissions.schema import (
    SUBMISSION_STATUSES,
    ReviewDecision,
    Submission,
    SubmissionReview,
)

VALID_REVIEW_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "received": ("under_review", "rejected"),
    "under_review": ("accepted", "rejected"),
}


class ConcurrentUpdateError(RuntimeError):
    """The stored record changed between read and write."""


class SubmissionRepository(Protocol):
    def get(self, submission_id: str) -> Submission | None: ...

    def save_review(self, submission: Submission, *, expected_updated_at: str) -> Submission: ...


@dataclass(frozen=True)
class ReviewOutcome:
    success: bool
    submission: Submission | None = None
    error: str | None = None
    message: str | None = None

    def as_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": self.success}
        if self.submission is not None:
            payload["submission"] = self.submission.model_dump(mode="json")
        if self.error is not None:
            payload["error"] = self.error
        if self.message is not None:
            payload["message"] = self.message
        return payload


def is_valid_transition(current_status: str, new_status: str) -> bool:
    return new_status in VALID_REVIEW_TRANSITIONS.get(current_status, ())


def review_submission(
    repository: SubmissionRepository,
    submission_id: str,
    decision: ReviewDecision | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> ReviewOutcome:
    """Apply one signed review decision; failures come back as typed outcomes."""
    if not isinstance(decision, ReviewDecision):
        decision = ReviewDecision.model_validate(dict(decision))

    submission = repository.get(submission_id)
    if submission is None:
        return ReviewOutcome(success=False, error="submission_not_found")

    status = decision.status
    if not status or status not in SUBMISSION_STATUSES:
        return ReviewOutcome(success=False, error="invalid_status")

    if not is_valid_transition(submission.status, status):
        return ReviewOutcome(
            success=False,
            error="invalid_transition",
            message=f"Cannot transition from '{submission.status}' to '{status}'",
        )

    if not decision.reviewer_name or not decision.reviewer_handle:
        return ReviewOutcome(success=False, error="reviewer_signature_required")

    reviewed_at = utc_timestamp(now)
    review = SubmissionReview(
        status=status,
        reviewer_name=decision.reviewer_name,
        reviewer_handle=decision.reviewer_handle,
        reasoning=decision.reasoning or None,
        reviewed_at=reviewed_at,
        signature_hash=compute_submission_signature_hash(
            decision.reviewer_handle, reviewed_at, submission_id
        ),
    )
    updated = submission.model_copy(
        update={"status": status, "review": review, "updated_at": reviewed_at}
    )
    try:
        stored = repository.save_review(updated, expected_updated_at=submission.updated_at)
    except ConcurrentUpdateError as exc:
        return ReviewOutcome(success=False, error="concurrent_update", message=str(exc))
    return ReviewOutcome(success=True, submission=stored)
