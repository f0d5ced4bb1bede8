"""Whole-store verification used as the CI gate over stored assessments."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from app.ami.canonical import utc_timestamp, verify_integrity, verify_reviewer_signatures
from app.ami.gates import Rubrics, resolve_source_ids, validate_assessment
from app.ami.schema import SourceCatalog

VERIFIED_CONFIDENCE_TIERS = frozenset({"T1", "T2"})


@dataclass(frozen=True)
class FileReport:
    file: str
    errors: list[str]

    def as_payload(self) -> dict[str, object]:
        return {"file": self.file, "errors": list(self.errors)}


@dataclass(frozen=True)
class VerificationSummary:
    generated_at_utc: str
    total_files: int
    valid: int
    invalid: int
    errors: list[FileReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.invalid == 0

    def as_payload(self) -> dict[str, object]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "total_files": self.total_files,
            "valid": self.valid,
            "invalid": self.invalid,
            "errors": [report.as_payload() for report in self.errors],
        }


def check_catalog_references(
    assessment: Mapping[str, Any],
    catalog: SourceCatalog,
) -> list[str]:
    """Unknown source ids, and `verified` dimensions lacking a T1/T2 source."""
    errors: list[str] = []
    if not catalog:
        return errors
    for dimension in assessment.get("dimensions") or []:
        if not isinstance(dimension, Mapping):
            continue
        evidence = dimension.get("evidence")
        if not isinstance(evidence, list):
            continue
        for item in evidence:
            for sid in resolve_source_ids(item):
                if sid not in catalog:
                    errors.append(
                        f'evidence "{item.get("id")}" references source_id "{sid}" '
                        "not found in source catalog"
                    )
        if dimension.get("scored") and dimension.get("confidence") == "verified":
            has_trusted_tier = any(
                catalog.get(sid) is not None and catalog[sid].tier in VERIFIED_CONFIDENCE_TIERS
                for item in evidence
                for sid in resolve_source_ids(item)
            )
            if not has_trusted_tier:
                errors.append(
                    f'dimension "{dimension.get("dimension_id")}" has confidence "verified" '
                    "but no T1/T2 source found"
                )
    return errors


def verify_assessment(
    assessment: Mapping[str, Any],
    *,
    label: str,
    expected_system_id: str | None = None,
    source_catalog: SourceCatalog | None = None,
    rubrics: Rubrics | None = None,
) -> list[str]:
    catalog = source_catalog or {}
    result = validate_assessment(
        assessment,
        source_catalog=catalog or None,
        rubrics=rubrics,
    )
    errors = list(result.errors)
    errors.extend(check_catalog_references(assessment, catalog))
    errors.extend(verify_integrity(assessment, label=label))
    errors.extend(verify_reviewer_signatures(assessment, label=label))
    if expected_system_id is not None and assessment.get("system_id") != expected_system_id:
        errors.append(
            f'system_id "{assessment.get("system_id")}" does not match '
            f'directory "{expected_system_id}"'
        )
    return errors


def verify_store(
    data_root: Path,
    *,
    source_catalog: SourceCatalog | None = None,
    rubrics: Rubrics | None = None,
    now: datetime | None = None,
) -> VerificationSummary:
    """Verify every `<data_root>/assessments/<system_id>/*.json` file."""
    assessments_root = data_root / "assessments"
    reports: list[FileReport] = []
    total = 0
    valid = 0
    system_dirs = (
        sorted(path for path in assessments_root.iterdir() if path.is_dir())
        if assessments_root.is_dir()
        else []
    )
    for system_dir in system_dirs:
        for file_path in sorted(system_dir.glob("*.json")):
            total += 1
            label = file_path.relative_to(data_root).as_posix()
            try:
                assessment = json.loads(file_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                reports.append(FileReport(file=label, errors=[f"JSON parse error: {exc.msg}"]))
                continue
            if not isinstance(assessment, dict):
                reports.append(FileReport(file=label, errors=["assessment must be an object"]))
                continue
            errors = verify_assessment(
                assessment,
                label=label,
                expected_system_id=system_dir.name,
                source_catalog=source_catalog,
                rubrics=rubrics,
            )
            if errors:
                reports.append(FileReport(file=label, errors=errors))
            else:
                valid += 1

    return VerificationSummary(
        generated_at_utc=utc_timestamp(now),
        total_files=total,
        valid=valid,
        invalid=len(reports),
        errors=reports,
    )
