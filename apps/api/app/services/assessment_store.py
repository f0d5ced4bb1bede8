"""JSON file store for versioned assessments.

Layout under the data root:
    assessments/<system_id>/<assessment_id>.json   every stored version
    latest/<system_id>.json                         projection of the highest version
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from app.ami.loader import load_assessment_file


def assessments_dir(data_root: Path, system_id: str | None = None) -> Path:
    base = data_root / "assessments"
    return base / system_id if system_id else base


def latest_path(data_root: Path, system_id: str) -> Path:
    return data_root / "latest" / f"{system_id}.json"


def write_json_atomic(path: Path, payload: Mapping[str, Any]) -> Path:
    """Write via a sibling temp file and os.replace so readers never see partial JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle, tmp_name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def list_system_ids(data_root: Path) -> list[str]:
    base = assessments_dir(data_root)
    if not base.is_dir():
        return []
    return sorted(entry.name for entry in base.iterdir() if entry.is_dir())


def list_assessments(data_root: Path, system_id: str) -> list[dict[str, Any]]:
    """All stored versions for a system, newest first."""
    directory = assessments_dir(data_root, system_id)
    if not directory.is_dir():
        return []
    items = [load_assessment_file(path) for path in sorted(directory.glob("*.json"))]
    return sorted(items, key=lambda item: item.get("version") or 0, reverse=True)


def get_assessment_by_id(data_root: Path, assessment_id: str) -> dict[str, Any] | None:
    for system_id in list_system_ids(data_root):
        candidate = assessments_dir(data_root, system_id) / f"{assessment_id}.json"
        if candidate.is_file():
            payload = load_assessment_file(candidate)
            if payload.get("assessment_id") == assessment_id:
                return payload
    # File names are conventional only; fall back to scanning contents.
    for system_id in list_system_ids(data_root):
        for item in list_assessments(data_root, system_id):
            if item.get("assessment_id") == assessment_id:
                return item
    return None


def get_latest_assessment(data_root: Path, system_id: str) -> dict[str, Any] | None:
    projection = latest_path(data_root, system_id)
    if projection.is_file():
        return load_assessment_file(projection)
    stored = list_assessments(data_root, system_id)
    return stored[0] if stored else None


def next_version(data_root: Path, system_id: str) -> int:
    versions = [item.get("version") or 0 for item in list_assessments(data_root, system_id)]
    return max(versions, default=0) + 1


def upsert_assessment(data_root: Path, assessment: Mapping[str, Any]) -> Path:
    """Store one version and refresh the latest projection when it is the newest."""
    system_id = assessment.get("system_id")
    assessment_id = assessment.get("assessment_id")
    if not system_id or not assessment_id:
        raise ValueError("assessment must have system_id and assessment_id")

    path = write_json_atomic(
        assessments_dir(data_root, system_id) / f"{assessment_id}.json",
        assessment,
    )
    current = get_latest_assessment(data_root, system_id)
    if current is None or (assessment.get("version") or 0) >= (current.get("version") or 0):
        write_json_atomic(latest_path(data_root, system_id), assessment)
    return path


def load_all_latest(data_root: Path) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    for system_id in list_system_ids(data_root):
        latest = get_latest_assessment(data_root, system_id)
        if latest is not None:
            results.append(latest)
    return results
