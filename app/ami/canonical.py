"""Deterministic canonicalization, integrity hashing and reviewer signatures."""

from __future__ import annotations

import copy
import hashlib
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

HASH_ALGORITHM = "sha256"


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a `Z` suffix."""
    value = (moment or datetime.now(UTC)).astimezone(UTC)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def canonicalize(value: Any) -> Any:
    """Return a copy of value whose mappings have lexicographically sorted keys."""
    if isinstance(value, Mapping):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def _plain(payload: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return copy.deepcopy(dict(payload))


def canonical_json(payload: Mapping[str, Any] | BaseModel) -> str:
    """Serialize payload as compact JSON over its canonical form."""
    return json.dumps(
        canonicalize(_plain(payload)),
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_assessment_hash(assessment: Mapping[str, Any] | BaseModel) -> str:
    """SHA-256 over the canonical assessment content, excluding its integrity block."""
    clone = _plain(assessment)
    clone.pop("integrity", None)
    return sha256_hex(canonical_json(clone))


def compute_integrity_hash(
    assessment: Mapping[str, Any] | BaseModel,
    *,
    hashed_at: datetime | None = None,
) -> dict[str, str]:
    return {
        "assessment_hash": compute_assessment_hash(assessment),
        "hash_algorithm": HASH_ALGORITHM,
        "hashed_at": utc_timestamp(hashed_at),
    }


def verify_integrity(assessment: Mapping[str, Any], *, label: str = "assessment") -> list[str]:
    """Compare the stored integrity hash with a fresh one; no block means nothing to verify."""
    integrity = assessment.get("integrity")
    if not integrity:
        return []
    stored = integrity.get("assessment_hash") if isinstance(integrity, Mapping) else None
    computed = compute_assessment_hash(assessment)
    if stored != computed:
        return [f'integrity hash mismatch in {label}: stored "{stored}" vs computed "{computed}"']
    return []


def compute_signature_hash(
    reviewer_handle: str,
    signed_at: str,
    system_id: str,
    assessment_id: str,
) -> str:
    """Reviewer signature over an assessment publication."""
    return sha256_hex(f"{reviewer_handle}{signed_at}{system_id}{assessment_id}")


def compute_submission_signature_hash(
    reviewer_handle: str,
    reviewed_at: str,
    submission_id: str,
) -> str:
    """Reviewer signature over a submission review decision."""
    return sha256_hex(f"{reviewer_handle}{reviewed_at}{submission_id}")


def verify_reviewer_signatures(
    assessment: Mapping[str, Any],
    *,
    label: str = "assessment",
) -> list[str]:
    errors: list[str] = []
    review = assessment.get("review")
    if not isinstance(review, Mapping) or review.get("state") != "published":
        return errors
    reviewers = review.get("reviewers")
    if not isinstance(reviewers, list):
        return errors

    for index, reviewer in enumerate(reviewers):
        if not isinstance(reviewer, Mapping):
            continue
        handle = reviewer.get("handle")
        signed_at = reviewer.get("signed_at")
        stored = reviewer.get("signature_hash")
        if not handle or not signed_at or not stored:
            continue
        expected = compute_signature_hash(
            handle,
            signed_at,
            str(assessment.get("system_id")),
            str(assessment.get("assessment_id")),
        )
        if stored != expected:
            errors.append(
                f"reviewer[{index}] signature_hash mismatch in {label}: "
                f'stored "{str(stored)[:16]}..." vs computed "{expected[:16]}..."'
            )
    return errors
