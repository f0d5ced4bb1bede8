"""Submission intake and internal review endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.submissions.schema import SUBMISSION_STATUSES, ReviewDecision, validate_submission
from apps.api.app.core.auth import InternalCaller, require_internal_token
from apps.api.app.core.config import get_settings
from apps.api.app.db.session import get_db_session
from apps.api.app.services.assessment_versioning import apply_review_decision
from apps.api.app.services.audit import log_submission_event
from apps.api.app.services.reference_data import load_reference_data
from apps.api.app.services.submission_store import SqlSubmissionRepository

router = APIRouter(prefix="/ami/submissions", tags=["submissions"])

_REVIEW_ERROR_STATUS = {
    "submission_not_found": status.HTTP_404_NOT_FOUND,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "concurrent_update": status.HTTP_409_CONFLICT,
}


class SubmissionCreatedResponse(BaseModel):
    submission_id: str
    type: str
    system_id: str
    status: str
    submitted_at: str


class SubmissionSummary(BaseModel):
    submission_id: str
    type: str
    system_id: str
    assessment_id: str | None
    status: str
    submitted_at: str
    updated_at: str
    resulting_assessment_id: str | None


class SubmissionListResponse(BaseModel):
    meta: dict[str, int]
    submissions: list[SubmissionSummary]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SubmissionCreatedResponse)
def create_submission(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db_session),
) -> SubmissionCreatedResponse:
    validation = validate_submission(payload)
    if not validation.valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "validation_failed", "errors": validation.errors},
        )
    submission = SqlSubmissionRepository(db).create(payload)
    log_submission_event(
        "submission.created",
        submission,
        assessment_id=submission.assessment_id,
        contact=submission.contact.model_dump(),
    )
    return SubmissionCreatedResponse(
        submission_id=submission.submission_id,
        type=submission.type,
        system_id=submission.system_id,
        status=submission.status,
        submitted_at=submission.submitted_at,
    )


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    system_id: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    _caller: InternalCaller = Depends(require_internal_token),
    db: Session = Depends(get_db_session),
) -> SubmissionListResponse:
    if status_filter and status_filter not in SUBMISSION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_parameter",
                "parameter": "status",
                "valid_values": list(SUBMISSION_STATUSES),
            },
        )
    rows = SqlSubmissionRepository(db).list(system_id=system_id, status=status_filter)
    return SubmissionListResponse(
        meta={"total": len(rows)},
        submissions=[
            SubmissionSummary(
                submission_id=row.submission_id,
                type=row.type,
                system_id=row.system_id,
                assessment_id=row.assessment_id,
                status=row.status,
                submitted_at=row.submitted_at,
                updated_at=row.updated_at,
                resulting_assessment_id=row.resulting_assessment_id,
            )
            for row in rows
        ],
    )


@router.get("/{submission_id}")
def get_submission(
    submission_id: str,
    _caller: InternalCaller = Depends(require_internal_token),
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    submission = SqlSubmissionRepository(db).get(submission_id)
    if submission is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "submission_not_found", "submission_id": submission_id},
        )
    return submission.model_dump(mode="json")


@router.post("/{submission_id}/review")
def review_submission_endpoint(
    submission_id: str,
    decision: ReviewDecision,
    _caller: InternalCaller = Depends(require_internal_token),
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    """Apply a signed review; an accepted correction or challenge spawns a new version."""
    settings = get_settings()
    reference = load_reference_data(settings)
    result = apply_review_decision(
        SqlSubmissionRepository(db),
        settings.data_root,
        submission_id,
        decision,
        source_catalog=reference.catalog_or_none,
        rubrics=reference.rubrics,
    )
    outcome = result.outcome
    if not outcome.success:
        detail: dict[str, Any] = {"error": outcome.error}
        if outcome.message:
            detail["message"] = outcome.message
        raise HTTPException(
            status_code=_REVIEW_ERROR_STATUS.get(outcome.error or "", status.HTTP_400_BAD_REQUEST),
            detail=detail,
        )
    return result.as_payload()
