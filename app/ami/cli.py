"""CLI helpers for scaffolding, migrating, hashing and checking stored assessments."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from app.ami.canonical import compute_integrity_hash, utc_timestamp
from app.ami.loader import load_assessment_file
from app.ami.schema import (
    DIMENSION_IDS,
    METHODOLOGY_VERSION,
    SYSTEM_CATEGORIES,
    DimensionScore,
    EligibilityFlags,
    build_assessment_id,
)
from apps.api.app.services import assessment_store

PENDING_REASON = "Pending evidence collection"


def scaffold_assessment(
    data_root: Path,
    *,
    system_id: str,
    category: str,
    assessed_by: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build and store an `under_review` draft with every dimension unscored."""
    if category not in SYSTEM_CATEGORIES:
        raise ValueError(
            f"invalid category '{category}': expected one of {', '.join(SYSTEM_CATEGORIES)}"
        )
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    version = assessment_store.next_version(data_root, system_id)
    previous = assessment_store.list_assessments(data_root, system_id)
    assessment: dict[str, Any] = {
        "assessment_id": build_assessment_id(system_id, version, moment.date()),
        "system_id": system_id,
        "version": version,
        "assessed_at": utc_timestamp(moment),
        "overall_score": None,
        "grade": None,
        "overall_confidence": "low",
        "status": "under_review",
        "category": category,
        "eligibility": EligibilityFlags().model_dump(mode="json"),
        "dimensions": [
            DimensionScore.not_scored(dimension_id, PENDING_REASON).model_dump(mode="json")
            for dimension_id in DIMENSION_IDS
        ],
        "methodology_version": METHODOLOGY_VERSION,
        "assessed_by": assessed_by,
        "notes": None,
        "review": {"state": "draft", "reviewers": []},
        "previous_assessment_id": previous[0]["assessment_id"] if previous else None,
    }
    assessment["integrity"] = compute_integrity_hash(assessment, hashed_at=moment)
    assessment_store.upsert_assessment(data_root, assessment)
    return assessment


def migrate_legacy_source_ids(assessment: dict[str, Any]) -> bool:
    """Rewrite singular `source_id` evidence to `source_ids` in place; True when changed."""
    changed = False
    for dimension in assessment.get("dimensions") or []:
        for item in dimension.get("evidence") or []:
            if item.get("source_id") and not item.get("source_ids"):
                item["source_ids"] = [item["source_id"]]
                del item["source_id"]
                changed = True
    if not assessment.get("review"):
        assessment["review"] = {"state": "draft", "reviewers": []}
        changed = True
    return changed


def migrate_store(data_root: Path, *, dry_run: bool = False) -> list[str]:
    """Migrate every stored version, re-hash changed files and refresh latest projections."""
    migrated: list[str] = []
    for system_id in assessment_store.list_system_ids(data_root):
        directory = assessment_store.assessments_dir(data_root, system_id)
        latest = assessment_store.get_latest_assessment(data_root, system_id)
        for path in sorted(directory.glob("*.json")):
            assessment = load_assessment_file(path)
            if not migrate_legacy_source_ids(assessment):
                continue
            migrated.append(path.relative_to(data_root).as_posix())
            if dry_run:
                continue
            assessment["integrity"] = compute_integrity_hash(assessment)
            assessment_store.write_json_atomic(path, assessment)
            if latest is not None and latest.get("assessment_id") == assessment.get("assessment_id"):
                assessment_store.write_json_atomic(
                    assessment_store.latest_path(data_root, system_id), assessment
                )
    return migrated


def write_summary(summary_path: Path, payload: dict[str, Any]) -> Path:
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    summary_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return summary_path
