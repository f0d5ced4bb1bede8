"""Assessment validation, profile and detail endpoints."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.ami.aggregation import compute_aggregation, compute_overall_confidence
from app.ami.canonical import verify_integrity, verify_reviewer_signatures
from app.ami.gates import resolve_source_ids, validate_assessment
from app.ami.loader import load_profiles
from app.ami.profiles import evaluate_assessment_against_profile
from app.ami.schema import ComplianceProfile, SourceCatalog
from app.ami.signals import compute_assessment_signals
from apps.api.app.core.config import get_settings
from apps.api.app.db.session import get_db_session
from apps.api.app.services import assessment_store
from apps.api.app.services.reference_data import load_reference_data, resolve_profile
from apps.api.app.services.submission_store import SqlSubmissionRepository

router = APIRouter(prefix="/ami", tags=["ami"])

_ASSESSMENT_ID_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[str]
    integrity_errors: list[str]
    computed_score_percent: int | None
    computed_grade: str | None
    computed_overall_confidence: str


class ProfileItem(BaseModel):
    id: str
    label: str
    description: str
    amiVersion: str
    default: bool
    rules: dict[str, Any]


class ProfileListResponse(BaseModel):
    meta: dict[str, int]
    profiles: list[ProfileItem]


def require_profile(profile_id: str | None) -> ComplianceProfile:
    profile = resolve_profile(get_settings(), profile_id)
    if profile is not None:
        return profile
    if profile_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "profile_not_found", "profile_id": profile_id},
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "no_default_profile"},
    )


def build_profile_evaluation(
    assessment: Mapping[str, Any],
    catalog: SourceCatalog,
    profile: ComplianceProfile,
) -> dict[str, Any]:
    result = evaluate_assessment_against_profile(assessment, catalog, profile)
    return {
        "assessment_id": assessment.get("assessment_id"),
        "system_id": assessment.get("system_id"),
        "profile_id": profile.id,
        "profile_label": profile.label,
        **result.as_payload(),
    }


def _expand_sources(assessment: Mapping[str, Any], catalog: SourceCatalog) -> dict[str, Any]:
    expanded: dict[str, Any] = {}
    for dimension in assessment.get("dimensions") or []:
        for item in dimension.get("evidence") or []:
            for sid in resolve_source_ids(item):
                if sid in expanded or sid not in catalog:
                    continue
                entry = catalog[sid]
                expanded[sid] = {
                    "source_id": entry.source_id,
                    "title": entry.title,
                    "url": entry.url,
                    "publisher": entry.publisher,
                    "tier": entry.tier,
                    "reliability": entry.reliability,
                    "access": entry.access,
                    "type": entry.type,
                }
    return expanded


@router.post("/validate", response_model=ValidateResponse)
def validate_payload(assessment: dict[str, Any] = Body(...)) -> ValidateResponse:
    """Dry-run validation of an assessment payload; nothing is stored."""
    reference = load_reference_data(get_settings())
    result = validate_assessment(
        assessment,
        source_catalog=reference.catalog_or_none,
        rubrics=reference.rubrics,
    )
    raw_dimensions = assessment.get("dimensions")
    if not isinstance(raw_dimensions, list):
        raw_dimensions = []
    dimensions = [item for item in raw_dimensions if isinstance(item, dict)]
    aggregation = compute_aggregation(dimensions)
    integrity_errors = verify_integrity(assessment) + verify_reviewer_signatures(assessment)
    return ValidateResponse(
        valid=result.valid and not integrity_errors,
        errors=result.errors,
        integrity_errors=integrity_errors,
        computed_score_percent=aggregation.score_percent,
        computed_grade=aggregation.grade,
        computed_overall_confidence=compute_overall_confidence(dimensions),
    )


@router.get("/profiles", response_model=ProfileListResponse)
def list_profiles() -> ProfileListResponse:
    profiles = load_profiles(get_settings().profiles_path)
    return ProfileListResponse(
        meta={"total": len(profiles)},
        profiles=[
            ProfileItem(
                id=profile.id,
                label=profile.label,
                description=profile.description,
                amiVersion=profile.ami_version,
                default=profile.default,
                rules=profile.rules.model_dump(by_alias=True, exclude_unset=True),
            )
            for profile in profiles
        ],
    )


@router.get("/assessments/{assessment_id}")
def get_assessment(
    assessment_id: str,
    db: Session = Depends(get_db_session),
) -> dict[str, Any]:
    """Stored assessment plus freshness signals, cited sources and public review history."""
    if _ASSESSMENT_ID_CHARS.match(assessment_id) is None:
        raise HTTPException(status_code=400, detail={"error": "invalid_assessment_id"})
    settings = get_settings()
    assessment = assessment_store.get_assessment_by_id(settings.data_root, assessment_id)
    if assessment is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "assessment_not_found", "assessment_id": assessment_id},
        )

    catalog = load_reference_data(settings).source_catalog
    signals = compute_assessment_signals(
        assessment,
        catalog,
        stale_after_days=settings.stale_evidence_days,
    )
    history = [
        {
            "submission_id": item.submission_id,
            "type": item.type,
            "status": item.status,
            "submitted_at": item.submitted_at,
            "resulting_assessment_id": item.resulting_assessment_id,
            "review": {
                "status": item.review.status,
                "reviewer_name": item.review.reviewer_name,
                "reasoning": item.review.reasoning,
                "reviewed_at": item.review.reviewed_at,
            }
            if item.review
            else None,
        }
        for item in SqlSubmissionRepository(db).list_for_assessment(assessment_id)
    ]
    return {
        **assessment,
        "_signals": signals.as_payload(),
        "_source_catalog": _expand_sources(assessment, catalog),
        "_submissions": history,
    }


@router.get("/assessments/{assessment_id}/evaluate")
def evaluate_assessment(
    assessment_id: str,
    profile: str | None = Query(default=None),
) -> dict[str, Any]:
    settings = get_settings()
    assessment = assessment_store.get_assessment_by_id(settings.data_root, assessment_id)
    if assessment is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "assessment_not_found", "assessment_id": assessment_id},
        )
    selected = require_profile(profile)
    catalog = load_reference_data(settings).source_catalog
    return build_profile_evaluation(assessment, catalog, selected)
