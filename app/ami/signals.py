"""Evidence freshness metrics and anti-gaming warnings for assessments."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.ami.gates import dimension_source_ids
from app.ami.schema import SourceCatalog

DEFAULT_STALE_EVIDENCE_DAYS = 180
_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class AssessmentSignals:
    freshness_days_median: int | None
    freshness_days_max: int | None
    warnings: list[str] = field(default_factory=list)

    def as_payload(self) -> dict[str, object]:
        return {
            "freshness_days_median": self.freshness_days_median,
            "freshness_days_max": self.freshness_days_max,
            "warnings_count": len(self.warnings),
            "warnings": list(self.warnings),
        }


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO date or timestamp; naive values are read as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def evidence_ages_days(assessment: Mapping[str, Any]) -> list[int]:
    """Whole days between each evidence date (captured, else published) and assessed_at."""
    assessed_at = parse_timestamp(assessment.get("assessed_at"))
    if assessed_at is None:
        return []
    ages: list[int] = []
    for dimension in assessment.get("dimensions") or []:
        if not isinstance(dimension, Mapping):
            continue
        for item in dimension.get("evidence") or []:
            if not isinstance(item, Mapping):
                continue
            reference = parse_timestamp(item.get("captured_at")) or parse_timestamp(
                item.get("published_date")
            )
            if reference is None:
                continue
            delta = (assessed_at - reference).total_seconds()
            ages.append(math.floor(delta / _SECONDS_PER_DAY))
    return ages


def max_evidence_age_days(assessment: Mapping[str, Any]) -> int | None:
    ages = evidence_ages_days(assessment)
    return max(ages) if ages else None


def _self_reported_only_warnings(
    assessment: Mapping[str, Any],
    catalog: SourceCatalog,
) -> list[str]:
    warnings: list[str] = []
    for dimension in assessment.get("dimensions") or []:
        if not isinstance(dimension, Mapping) or not dimension.get("scored"):
            continue
        score = dimension.get("score")
        if not isinstance(score, int) or score < 4:
            continue
        source_ids = dimension_source_ids(dimension)
        if not source_ids:
            continue
        if all(
            catalog.get(sid) is not None and catalog[sid].reliability == "self_reported"
            for sid in source_ids
        ):
            warnings.append(
                f'HIGH_SCORE_SELF_REPORTED_ONLY: dimension "{dimension.get("dimension_id")}" '
                f"score {score} backed only by self-reported sources"
            )
    return warnings


def compute_assessment_signals(
    assessment: Mapping[str, Any],
    source_catalog: SourceCatalog | None,
    *,
    stale_after_days: int = DEFAULT_STALE_EVIDENCE_DAYS,
) -> AssessmentSignals:
    ages = sorted(evidence_ages_days(assessment))
    median = ages[len(ages) // 2] if ages else None
    oldest = ages[-1] if ages else None

    warnings: list[str] = []
    if source_catalog and assessment.get("status") == "scored":
        warnings.extend(_self_reported_only_warnings(assessment, source_catalog))
    if oldest is not None and oldest > stale_after_days:
        warnings.append(f"STALE_EVIDENCE: oldest evidence is {oldest} days before assessment date")
    return AssessmentSignals(
        freshness_days_median=median,
        freshness_days_max=oldest,
        warnings=warnings,
    )
