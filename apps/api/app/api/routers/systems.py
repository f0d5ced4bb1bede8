"""Per-system assessment history, creation, diff and profile evaluation."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.ami.aggregation import compute_aggregation, compute_overall_confidence
from app.ami.canonical import compute_integrity_hash, utc_timestamp
from app.ami.diff import AssessmentNotFoundError, diff_assessments, select_diff_pair
from app.ami.gates import validate_assessment
from app.ami.schema import METHODOLOGY_VERSION, build_assessment_id
from app.submissions.schema import SYSTEM_ID_PATTERN
from apps.api.app.api.routers.ami import build_profile_evaluation, require_profile
from apps.api.app.core.auth import InternalCaller, require_internal_token
from apps.api.app.core.config import get_settings
from apps.api.app.services import assessment_store
from apps.api.app.services.audit import log_assessment_event
from apps.api.app.services.reference_data import load_reference_data

router = APIRouter(prefix="/systems", tags=["systems"])


def _checked_system_id(system_id: str) -> str:
    if SYSTEM_ID_PATTERN.match(system_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_system_id",
                "message": "Must be lowercase alphanumeric with hyphens/underscores",
            },
        )
    return system_id


@router.get("/{system_id}/ami")
def get_system_ami(system_id: str) -> dict[str, Any]:
    system_id = _checked_system_id(system_id)
    assessments = assessment_store.list_assessments(get_settings().data_root, system_id)
    return {
        "system_id": system_id,
        "total_assessments": len(assessments),
        "latest": assessments[0] if assessments else None,
        "history": [
            {
                "assessment_id": item.get("assessment_id"),
                "version": item.get("version"),
                "overall_score": item.get("overall_score"),
                "grade": item.get("grade"),
                "overall_confidence": item.get("overall_confidence"),
                "status": item.get("status"),
                "assessed_at": item.get("assessed_at"),
            }
            for item in assessments
        ],
    }


@router.post("/{system_id}/ami", status_code=status.HTTP_201_CREATED)
def create_system_assessment(
    system_id: str,
    payload: dict[str, Any] = Body(...),
    caller: InternalCaller = Depends(require_internal_token),
) -> dict[str, Any]:
    """Validate, hash and store a new assessment version; review always starts as draft."""
    system_id = _checked_system_id(system_id)
    settings = get_settings()
    now = datetime.now(UTC)
    assessment = dict(payload)
    assessment["system_id"] = system_id
    # Stored versions are immutable; identity always comes from the store.
    latest = assessment_store.get_latest_assessment(settings.data_root, system_id)
    version = assessment_store.next_version(settings.data_root, system_id)
    assessment["assessment_id"] = build_assessment_id(system_id, version, now.date())
    assessment["version"] = version
    assessment["previous_assessment_id"] = latest["assessment_id"] if latest else None
    assessment.setdefault("assessed_at", utc_timestamp(now))
    assessment.setdefault("methodology_version", METHODOLOGY_VERSION)
    if assessment.get("status") == "scored" and isinstance(assessment.get("dimensions"), list):
        aggregation = compute_aggregation(assessment["dimensions"])
        assessment["overall_score"] = aggregation.score_percent
        assessment["grade"] = aggregation.grade
        assessment["overall_confidence"] = compute_overall_confidence(assessment["dimensions"])
    assessment["review"] = {"state": "draft", "reviewers": []}
    assessment.pop("integrity", None)

    reference = load_reference_data(settings)
    validation = validate_assessment(
        assessment,
        source_catalog=reference.catalog_or_none,
        rubrics=reference.rubrics,
    )
    if not validation.valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "validation_failed", "errors": validation.errors},
        )

    assessment["integrity"] = compute_integrity_hash(assessment, hashed_at=now)
    assessment_store.upsert_assessment(settings.data_root, assessment)
    log_assessment_event(
        "assessment.stored",
        assessment,
        token_configured=caller.token_configured,
    )
    return {
        "assessment_id": assessment["assessment_id"],
        "system_id": system_id,
        "version": assessment.get("version"),
        "overall_score": assessment.get("overall_score"),
        "grade": assessment.get("grade"),
        "status": assessment.get("status"),
    }


@router.get("/{system_id}/ami/diff")
def diff_system_ami(
    system_id: str,
    from_id: str | None = Query(default=None, alias="from"),
    to_id: str | None = Query(default=None, alias="to"),
) -> dict[str, Any]:
    system_id = _checked_system_id(system_id)
    assessments = assessment_store.list_assessments(get_settings().data_root, system_id)
    if not assessments:
        raise HTTPException(
            status_code=404,
            detail={"error": "no_assessments", "system_id": system_id},
        )
    try:
        current, previous = select_diff_pair(assessments, to_id=to_id, from_id=from_id)
    except AssessmentNotFoundError as exc:
        raise HTTPException(
            status_code=404,
            detail={"error": "assessment_not_found", "assessment_id": exc.assessment_id},
        ) from exc
    return {
        "system_id": system_id,
        "current": current,
        "previous": previous,
        "changes": diff_assessments(current, previous).as_payload(),
    }


@router.get("/{system_id}/ami/validate")
def evaluate_latest(
    system_id: str,
    profile: str | None = Query(default=None),
) -> dict[str, Any]:
    """Evaluate the latest assessment of a system against a compliance profile."""
    system_id = _checked_system_id(system_id)
    settings = get_settings()
    assessment = assessment_store.get_latest_assessment(settings.data_root, system_id)
    if assessment is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "no_assessment", "system_id": system_id},
        )
    selected = require_profile(profile)
    catalog = load_reference_data(settings).source_catalog
    return build_profile_evaluation(assessment, catalog, selected)
