"""Structural and evidentiary validation of AMI assessments.

Every violation is collected so a single call surfaces all problems. Messages
for the anti-gaming gates carry the literal tag ``GATE VIOLATION`` so negative
test suites can assert on them by pattern:

1. scored dimension without evidence
2. evidence without source_ids
3. missing confidence (dimension or overall)
4. stored score/grade disagree with the aggregation; more than 2 unscored
5. score >= 4 needs 2 distinct sources
6. score 5 needs a primary or hard-evidence (commit/log/metric) source
7. scored assessment needs 3 distinct sources in total
8. scored dimension needs rubric_refs
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from app.ami.aggregation import compute_aggregation, compute_overall_confidence, is_scored
from app.ami.schema import (
    AMI_GRADES,
    CONFIDENCE_LEVELS,
    DIMENSION_DISPLAY_NAMES,
    DIMENSION_IDS,
    DIMENSION_WEIGHTS,
    ELIGIBILITY_FLAGS,
    EVIDENCE_TYPES,
    EXCLUSION_FLAGS,
    HARD_EVIDENCE_SOURCE_TYPES,
    MAX_DIMENSION_SCORE,
    MAX_EXCERPT_WORDS,
    MAX_NOT_SCORED_FOR_SCORED_STATUS,
    METHODOLOGY_VERSION,
    MIN_VERIFIED_SOURCES_FOR_SCORED,
    OVERALL_CONFIDENCE_LEVELS,
    REVIEW_STATES,
    SYSTEM_CATEGORIES,
    SYSTEM_STATUSES,
    WEIGHT_TOLERANCE,
    Assessment,
    SourceCatalog,
)

GATE = "GATE VIOLATION"
MIN_DISTINCT_SOURCES_HIGH_SCORE = 2
MIN_DISTINCT_SOURCES_SCORED = 3

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d+)?Z?)?$")
_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")
_ASSESSMENT_ID = re.compile(r"^AMI_ASSESS_(\d{8})_(.+)_v(\d+)$")

Rubrics = Mapping[str, Mapping[str, list[Mapping[str, Any]]]]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str]

    def as_payload(self) -> dict[str, object]:
        return {"valid": self.valid, "errors": list(self.errors)}


def is_iso_date(value: Any) -> bool:
    return isinstance(value, str) and _ISO_DATE.match(value) is not None


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


def resolve_source_ids(evidence: Any) -> list[str]:
    """Return `source_ids`, falling back to the legacy singular `source_id`."""
    if not isinstance(evidence, Mapping):
        return []
    source_ids = evidence.get("source_ids")
    if isinstance(source_ids, list) and source_ids:
        return source_ids
    if _non_empty(evidence.get("source_id")):
        return [evidence["source_id"]]
    return []


def _evidence_items(dimension: Mapping[str, Any]) -> list[Any]:
    evidence = dimension.get("evidence")
    return evidence if isinstance(evidence, list) else []


def distinct_source_ids(evidence: Iterable[Any]) -> set[str]:
    found: set[str] = set()
    for item in evidence:
        found.update(sid for sid in resolve_source_ids(item) if isinstance(sid, str))
    return found


def dimension_source_ids(dimension: Mapping[str, Any]) -> set[str]:
    return distinct_source_ids(_evidence_items(dimension))


def assessment_source_ids(dimensions: Iterable[Mapping[str, Any]]) -> set[str]:
    found: set[str] = set()
    for dimension in dimensions:
        if isinstance(dimension, Mapping):
            found |= dimension_source_ids(dimension)
    return found


def validate_evidence_item(evidence: Any, index: int) -> list[str]:
    errors: list[str] = []
    item = evidence if isinstance(evidence, Mapping) else {}
    prefix = f"evidence[{index}] ({item.get('id') or 'unknown'})"

    if not _non_empty(item.get("id")):
        errors.append(f"{prefix}: missing or empty id")

    source_ids = item.get("source_ids")
    if source_ids is None and item.get("source_id"):
        source_ids = [item["source_id"]]
    if not isinstance(source_ids, list) or not source_ids:
        errors.append(f"{prefix}: missing source_ids (or legacy source_id)")
    elif any(not _non_empty(sid) for sid in source_ids):
        errors.append(f"{prefix}: source_ids contains empty value")

    for key in ("url", "title", "publisher"):
        if not _non_empty(item.get(key)):
            errors.append(f"{prefix}: missing {key}")
    if not is_iso_date(item.get("published_date")):
        errors.append(f"{prefix}: invalid published_date")

    excerpt = item.get("excerpt")
    if not _non_empty(excerpt):
        errors.append(f"{prefix}: missing excerpt")
    elif count_words(excerpt) > MAX_EXCERPT_WORDS:
        errors.append(
            f"{prefix}: excerpt exceeds {MAX_EXCERPT_WORDS} words ({count_words(excerpt)})"
        )

    if not _non_empty(item.get("claim_supported")):
        errors.append(f"{prefix}: missing claim_supported")
    if item.get("evidence_type") not in EVIDENCE_TYPES:
        errors.append(f'{prefix}: invalid evidence_type "{item.get("evidence_type")}"')
    if item.get("confidence_contribution") not in CONFIDENCE_LEVELS:
        errors.append(
            f'{prefix}: invalid confidence_contribution "{item.get("confidence_contribution")}"'
        )
    relevance = item.get("relevance_weight")
    if not _is_number(relevance) or relevance < 0 or relevance > 1:
        errors.append(f"{prefix}: relevance_weight must be 0.0-1.0")
    if not is_iso_date(item.get("captured_at")):
        errors.append(f"{prefix}: invalid captured_at")
    if "archived_url" in item and item["archived_url"] is not None:
        if not _non_empty(item["archived_url"]):
            errors.append(f"{prefix}: archived_url must be a non-empty string when present")
    return errors


def validate_dimension_score(dimension: Any) -> list[str]:
    errors: list[str] = []
    dim = dimension if isinstance(dimension, Mapping) else {}
    dimension_id = dim.get("dimension_id")
    prefix = f'dimension "{dimension_id}"'

    if dimension_id not in DIMENSION_IDS:
        errors.append(f"{prefix}: invalid dimension_id")
        return errors

    expected_name = DIMENSION_DISPLAY_NAMES[dimension_id]
    if dim.get("dimension_name") != expected_name:
        errors.append(f'{prefix}: dimension_name should be "{expected_name}"')

    expected_weight = DIMENSION_WEIGHTS[dimension_id]
    weight = dim.get("weight")
    if not _is_number(weight) or abs(weight - expected_weight) > WEIGHT_TOLERANCE:
        errors.append(f"{prefix}: weight should be {expected_weight}, got {weight}")

    if not dim.get("scored"):
        if dim.get("score") is not None:
            errors.append(f"{prefix}: scored=false but score is not null")
        if not _non_empty(dim.get("not_scored_reason")):
            errors.append(f"{prefix}: not_scored dimension missing not_scored_reason")
        return errors

    score = dim.get("score")
    if not _is_int(score) or score < 0 or score > MAX_DIMENSION_SCORE:
        errors.append(f"{prefix}: scored=true but score is not integer 0-5 (got {score})")

    evidence = dim.get("evidence")
    if not isinstance(evidence, list) or not evidence:
        errors.append(f"{prefix}: {GATE}: scored dimension has no evidence items")
    items = evidence if isinstance(evidence, list) else []

    for index, item in enumerate(items):
        if not resolve_source_ids(item):
            errors.append(f"{prefix}: {GATE}: evidence[{index}] has no source_ids")

    if _is_int(score) and score >= 4:
        found = distinct_source_ids(items)
        if len(found) < MIN_DISTINCT_SOURCES_HIGH_SCORE:
            errors.append(
                f"{prefix}: {GATE}: score {score} requires >= "
                f"{MIN_DISTINCT_SOURCES_HIGH_SCORE} distinct sources (found {len(found)})"
            )

    if dim.get("confidence") not in CONFIDENCE_LEVELS:
        errors.append(f"{prefix}: {GATE}: scored dimension missing valid confidence")

    if not _non_empty(dim.get("rationale")):
        errors.append(f"{prefix}: scored dimension missing rationale")

    rubric_refs = dim.get("rubric_refs")
    if not isinstance(rubric_refs, list) or not rubric_refs:
        errors.append(f"{prefix}: {GATE}: scored dimension missing rubric_refs")
    elif any(not _non_empty(ref) for ref in rubric_refs):
        errors.append(f"{prefix}: rubric_refs must contain non-empty strings")

    for index, item in enumerate(items):
        errors.extend(validate_evidence_item(item, index))
    return errors


def validate_eligibility(eligibility: Any, status: str | None) -> list[str]:
    errors: list[str] = []
    if not isinstance(eligibility, Mapping):
        errors.append("missing eligibility object")
        return errors

    for flag in ELIGIBILITY_FLAGS:
        if not isinstance(eligibility.get(flag), bool):
            errors.append(f"eligibility.{flag} must be boolean")
    verified_count = eligibility.get("verified_sources_count")
    if not _is_int(verified_count):
        errors.append("eligibility.verified_sources_count must be an integer")

    exclusion_flags = eligibility.get("exclusion_flags")
    if exclusion_flags is not None and not isinstance(exclusion_flags, Mapping):
        errors.append("eligibility.exclusion_flags must be an object")
        exclusion_flags = None

    if status != "scored":
        return errors

    for flag in ELIGIBILITY_FLAGS:
        if not eligibility.get(flag):
            errors.append(f"SCORED status requires {flag}=true")
    if not _is_number(verified_count) or verified_count < MIN_VERIFIED_SOURCES_FOR_SCORED:
        errors.append(
            "SCORED status requires verified_sources_count >= "
            f"{MIN_VERIFIED_SOURCES_FOR_SCORED} (got {verified_count})"
        )
    if exclusion_flags:
        for flag in EXCLUSION_FLAGS:
            if exclusion_flags.get(flag):
                errors.append(f"SCORED but exclusion_flags.{flag} is true")
    return errors


def _validate_top_level(assessment: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    assessment_id = assessment.get("assessment_id")
    system_id = assessment.get("system_id")
    version = assessment.get("version")

    if not _non_empty(assessment_id):
        errors.append("missing assessment_id")
    if not _non_empty(system_id):
        errors.append("missing system_id")
    if not _is_int(version) or version < 1:
        errors.append("version must be a positive integer")
    if _non_empty(assessment_id) and _non_empty(system_id) and _is_int(version):
        match = _ASSESSMENT_ID.match(assessment_id)
        if match is None or match.group(2) != system_id or int(match.group(3)) != version:
            errors.append(
                f'assessment_id "{assessment_id}" does not match '
                f"AMI_ASSESS_<YYYYMMDD>_{system_id}_v{version}"
            )
    if not is_iso_date(assessment.get("assessed_at")):
        errors.append("invalid assessed_at")

    methodology_version = assessment.get("methodology_version")
    if not _non_empty(methodology_version):
        errors.append("missing methodology_version")
    elif methodology_version != METHODOLOGY_VERSION:
        errors.append(
            f'unsupported methodology_version "{methodology_version}" '
            f'(expected "{METHODOLOGY_VERSION}")'
        )
    if not _non_empty(assessment.get("assessed_by")):
        errors.append("missing assessed_by")

    overall_score = assessment.get("overall_score")
    if overall_score is not None and (
        not _is_int(overall_score) or overall_score < 0 or overall_score > 100
    ):
        errors.append(f"overall_score must be an integer 0-100 or null (got {overall_score})")
    grade = assessment.get("grade")
    if grade is not None and grade not in AMI_GRADES:
        errors.append(f'invalid grade "{grade}"')

    previous = assessment.get("previous_assessment_id")
    if previous is not None and not _non_empty(previous):
        errors.append("previous_assessment_id must be a non-empty string or null")
    return errors


def _validate_scored_consistency(
    dimensions: list[Mapping[str, Any]],
    assessment: Mapping[str, Any],
) -> list[str]:
    errors: list[str] = []
    not_scored_count = sum(1 for item in dimensions if not is_scored(item))
    if not_scored_count > MAX_NOT_SCORED_FOR_SCORED_STATUS:
        errors.append(
            f"{GATE}: {not_scored_count} dimensions not scored; status cannot be "
            f'"scored" (max {MAX_NOT_SCORED_FOR_SCORED_STATUS} allowed)'
        )

    computed = compute_aggregation(dimensions)
    overall_score = assessment.get("overall_score")
    grade = assessment.get("grade")
    if overall_score is None:
        errors.append(f'{GATE}: status is "scored" but overall_score is null')
    elif computed.score_percent is not None and overall_score != computed.score_percent:
        errors.append(
            f"{GATE}: stored overall_score ({overall_score}) does not match computed "
            f"({computed.score_percent}). Raw weighted sum: {computed.raw_weighted_sum:.4f}"
        )
    if grade is None:
        errors.append(f'{GATE}: status is "scored" but grade is null')
    elif computed.grade is not None and grade != computed.grade:
        errors.append(f'grade mismatch: stored "{grade}" vs computed "{computed.grade}"')

    computed_confidence = compute_overall_confidence(dimensions)
    overall_confidence = assessment.get("overall_confidence")
    if overall_confidence != computed_confidence:
        errors.append(
            f'overall_confidence mismatch: stored "{overall_confidence}" '
            f'vs computed "{computed_confidence}"'
        )
    if overall_confidence not in OVERALL_CONFIDENCE_LEVELS:
        errors.append(f"{GATE}: SCORED assessment missing valid overall_confidence")
    return errors


def _has_primary_or_hard_evidence(source_ids: Iterable[str], catalog: SourceCatalog) -> bool:
    for sid in sorted(source_ids):
        source = catalog.get(sid)
        if source is None:
            continue
        if source.reliability == "primary" or source.type in HARD_EVIDENCE_SOURCE_TYPES:
            return True
    return False


def _validate_score_five_sources(
    dimensions: list[Mapping[str, Any]],
    catalog: SourceCatalog,
) -> list[str]:
    errors: list[str] = []
    for dimension in dimensions:
        if not dimension.get("scored") or dimension.get("score") != MAX_DIMENSION_SCORE:
            continue
        if not _has_primary_or_hard_evidence(dimension_source_ids(dimension), catalog):
            errors.append(
                f'dimension "{dimension.get("dimension_id")}": {GATE}: score 5 requires '
                ">= 1 primary or hard-evidence source"
            )
    return errors


def _rubric_ids(dimension_rubric: Mapping[str, Any]) -> set[str]:
    ids: set[str] = set()
    for bullets in dimension_rubric.values():
        if not isinstance(bullets, list):
            continue
        for bullet in bullets:
            if isinstance(bullet, Mapping) and isinstance(bullet.get("id"), str):
                ids.add(bullet["id"])
    return ids


def _validate_rubric_refs(dimensions: list[Mapping[str, Any]], rubrics: Rubrics) -> list[str]:
    errors: list[str] = []
    for dimension in dimensions:
        refs = dimension.get("rubric_refs")
        if not dimension.get("scored") or not isinstance(refs, list):
            continue
        dimension_id = dimension.get("dimension_id")
        if not isinstance(dimension_id, str):
            continue
        dimension_rubric = rubrics.get(dimension_id)
        if not isinstance(dimension_rubric, Mapping) or not dimension_rubric:
            continue
        valid_ids = _rubric_ids(dimension_rubric)
        for ref in refs:
            if isinstance(ref, str) and ref not in valid_ids:
                errors.append(
                    f'dimension "{dimension_id}": rubric_ref "{ref}" '
                    "not found in meta rubric table"
                )
    return errors


def _validate_review(review: Any) -> list[str]:
    errors: list[str] = []
    if not review:
        return errors
    if not isinstance(review, Mapping):
        return ["review must be an object"]
    state = review.get("state")
    if state not in REVIEW_STATES:
        errors.append(f'invalid review.state "{state}"')
    if state != "published":
        return errors

    reviewers = review.get("reviewers")
    if not isinstance(reviewers, list) or not reviewers:
        errors.append("published assessment requires >= 1 reviewer signature")
        return errors
    for index, reviewer in enumerate(reviewers):
        entry = reviewer if isinstance(reviewer, Mapping) else {}
        prefix = f"review.reviewers[{index}]"
        if not _non_empty(entry.get("name")):
            errors.append(f"{prefix}: missing name")
        if not _non_empty(entry.get("handle")):
            errors.append(f"{prefix}: missing handle")
        if not is_iso_date(entry.get("signed_at")):
            errors.append(f"{prefix}: invalid signed_at")
        if not _non_empty(entry.get("signature_hash")):
            errors.append(f"{prefix}: missing signature_hash")
    return errors


def _validate_integrity_shape(integrity: Any) -> list[str]:
    # The hash value itself is checked by app.ami.canonical.verify_integrity.
    errors: list[str] = []
    if not integrity:
        return errors
    if not isinstance(integrity, Mapping):
        return ["integrity must be an object"]
    algorithm = integrity.get("hash_algorithm")
    if algorithm != "sha256":
        errors.append(f'unsupported integrity hash_algorithm "{algorithm}"')
    digest = integrity.get("assessment_hash")
    if not isinstance(digest, str) or _SHA256_HEX.match(digest) is None:
        errors.append("integrity.assessment_hash must be a 64-character hex digest")
    if not is_iso_date(integrity.get("hashed_at")):
        errors.append("integrity.hashed_at must be an ISO-8601 timestamp")
    return errors


def validate_assessment(
    assessment: Mapping[str, Any] | Assessment,
    *,
    source_catalog: SourceCatalog | None = None,
    rubrics: Rubrics | None = None,
) -> ValidationResult:
    """Validate an assessment payload against structure, eligibility and all 8 gates."""
    if isinstance(assessment, BaseModel):
        assessment = assessment.to_payload()
    if not isinstance(assessment, Mapping):
        return ValidationResult(valid=False, errors=["assessment must be an object"])

    errors = _validate_top_level(assessment)

    status = assessment.get("status")
    if status not in SYSTEM_STATUSES:
        errors.append(f'invalid status "{status}"')
        return ValidationResult(valid=False, errors=errors)
    if assessment.get("category") not in SYSTEM_CATEGORIES:
        errors.append(f'invalid category "{assessment.get("category")}"')

    errors.extend(validate_eligibility(assessment.get("eligibility"), status))

    dimensions = assessment.get("dimensions")
    if not isinstance(dimensions, list) or len(dimensions) != len(DIMENSION_IDS):
        size = len(dimensions) if isinstance(dimensions, list) else None
        errors.append(
            f"dimensions must be an array of exactly {len(DIMENSION_IDS)} items (got {size})"
        )
        return ValidationResult(valid=False, errors=errors)
    dimensions = [item if isinstance(item, Mapping) else {} for item in dimensions]

    present_ids = {
        item.get("dimension_id")
        for item in dimensions
        if isinstance(item.get("dimension_id"), str)
    }
    for dimension_id in DIMENSION_IDS:
        if dimension_id not in present_ids:
            errors.append(f"missing dimension: {dimension_id}")

    for dimension in dimensions:
        errors.extend(validate_dimension_score(dimension))

    if status == "scored":
        errors.extend(_validate_scored_consistency(dimensions, assessment))
        if source_catalog is not None:
            errors.extend(_validate_score_five_sources(dimensions, source_catalog))
        total_sources = assessment_source_ids(dimensions)
        if len(total_sources) < MIN_DISTINCT_SOURCES_SCORED:
            errors.append(
                f"{GATE}: SCORED assessment requires >= {MIN_DISTINCT_SOURCES_SCORED} "
                f"distinct sources (found {len(total_sources)})"
            )
        if rubrics:
            errors.extend(_validate_rubric_refs(dimensions, rubrics))
    else:
        if assessment.get("overall_score") is not None:
            errors.append(f'status is "{status}" but overall_score is not null')
        if assessment.get("grade") is not None:
            errors.append(f'status is "{status}" but grade is not null')

    errors.extend(_validate_review(assessment.get("review")))
    errors.extend(_validate_integrity_shape(assessment.get("integrity")))
    return ValidationResult(valid=not errors, errors=errors)
