"""Submission records, review decisions and intake validation."""

from __future__ import annotations

import re
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.ami.gates import ValidationResult
from app.ami.schema import Confidence

SUBMISSION_TYPES = ("assessment_request", "correction", "challenge", "self_assessment_draft")
SUBMISSION_STATUSES = ("received", "under_review", "accepted", "rejected")
VERSIONING_SUBMISSION_TYPES = frozenset({"correction", "challenge"})

SYSTEM_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")

SubmissionType = Literal["assessment_request", "correction", "challenge", "self_assessment_draft"]
SubmissionStatus = Literal["received", "under_review", "accepted", "rejected"]


class SubmissionClaim(BaseModel):
    model_config = ConfigDict(extra="allow")

    summary: str
    dimension_id: str | None = None


class SubmissionEvidence(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    description: str


class SubmissionContact(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    email: str


class SubmissionReview(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: SubmissionStatus
    reviewer_name: str
    reviewer_handle: str
    reasoning: str | None = None
    reviewed_at: str
    signature_hash: str


class Submission(BaseModel):
    model_config = ConfigDict(extra="forbid")

    submission_id: str
    type: SubmissionType
    system_id: str
    assessment_id: str | None = None
    status: SubmissionStatus = "received"
    claims: list[SubmissionClaim]
    evidence: list[SubmissionEvidence]
    contact: SubmissionContact
    notes: str | None = None
    review: SubmissionReview | None = None
    resulting_assessment_id: str | None = None
    submitted_at: str
    updated_at: str


class DimensionOverride(BaseModel):
    """Partial update applied to one dimension of a cloned assessment."""

    model_config = ConfigDict(extra="forbid")

    dimension_id: str = Field(min_length=1)
    score: int | None = Field(default=None, ge=0, le=5)
    rationale: str | None = None
    confidence: Confidence | None = None
    rubric_refs: list[str] | None = None
    evidence: list[dict[str, Any]] | None = None


class AssessmentUpdates(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dimensions: list[DimensionOverride] = Field(default_factory=list)


class ReviewDecision(BaseModel):
    # status stays a plain string so unknown values surface as `invalid_status`.
    status: str | None = None
    reviewer_name: str | None = None
    reviewer_handle: str | None = None
    reasoning: str | None = None
    assessment_updates: AssessmentUpdates | None = None


def _present(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def validate_submission(payload: Any) -> ValidationResult:
    """Intake checks for a public submission payload; all problems are collected."""
    if not isinstance(payload, Mapping):
        return ValidationResult(valid=False, errors=["submission must be an object"])

    errors: list[str] = []
    submission_type = payload.get("type")
    if submission_type not in SUBMISSION_TYPES:
        errors.append(f"type must be one of: {', '.join(SUBMISSION_TYPES)}")
    needs_assessment = submission_type in VERSIONING_SUBMISSION_TYPES

    system_id = payload.get("system_id")
    if not _present(system_id):
        errors.append("system_id is required")
    elif SYSTEM_ID_PATTERN.match(system_id) is None:
        errors.append("system_id must be lowercase alphanumeric with hyphens/underscores")

    claims = payload.get("claims")
    if not isinstance(claims, list) or not claims:
        errors.append("claims must be a non-empty array")
    else:
        for index, claim in enumerate(claims):
            if not isinstance(claim, Mapping):
                errors.append(f"claims[{index}] must be an object")
                continue
            summary = claim.get("summary")
            if not isinstance(summary, str) or not summary.strip():
                errors.append(f"claims[{index}].summary is required")
            if needs_assessment and not claim.get("dimension_id"):
                errors.append(
                    f"claims[{index}].dimension_id is required for {submission_type} submissions"
                )

    evidence = payload.get("evidence")
    if not isinstance(evidence, list) or not evidence:
        errors.append("evidence must be a non-empty array with sources")
    else:
        for index, item in enumerate(evidence):
            if not isinstance(item, Mapping):
                errors.append(f"evidence[{index}] must be an object")
                continue
            if not _present(item.get("url")):
                errors.append(f"evidence[{index}].url is required")
            if not _present(item.get("description")):
                errors.append(f"evidence[{index}].description is required")

    contact = payload.get("contact")
    if not isinstance(contact, Mapping):
        errors.append("contact is required")
    else:
        if not _present(contact.get("name")):
            errors.append("contact.name is required")
        if not _present(contact.get("email")):
            errors.append("contact.email is required")

    if needs_assessment and not payload.get("assessment_id"):
        errors.append("assessment_id is required for correction and challenge submissions")

    return ValidationResult(valid=not errors, errors=errors)


def generate_submission_id(system_id: str, *, now: datetime | None = None) -> str:
    """`SUB_<YYYYMMDD>_<system_id>_<8 hex>`."""
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    return f"SUB_{moment.strftime('%Y%m%d')}_{system_id}_{secrets.token_hex(4)}"
