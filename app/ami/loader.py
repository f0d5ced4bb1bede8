"""Filesystem loaders for the source catalog, rubric table, profiles and assessments."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from app.ami.gates import Rubrics
from app.ami.schema import ComplianceProfile, SourceCatalog, build_source_catalog


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc


def load_source_catalog(catalog_path: Path) -> SourceCatalog:
    """Index `{"sources": [...]}` by source_id; a missing file is an empty catalog."""
    if not catalog_path.exists():
        return {}
    payload = _read_json(catalog_path)
    sources = payload.get("sources") if isinstance(payload, dict) else None
    if not isinstance(sources, list):
        return {}
    return build_source_catalog([item for item in sources if isinstance(item, dict)])


def load_rubrics(meta_path: Path) -> Rubrics | None:
    if not meta_path.exists():
        return None
    payload = _read_json(meta_path)
    if not isinstance(payload, dict):
        raise ValueError(f"{meta_path}: meta JSON must decode to an object")
    rubrics = payload.get("rubrics")
    return rubrics or None


def load_profiles(profiles_path: Path) -> list[ComplianceProfile]:
    if not profiles_path.exists():
        return []
    payload = _read_json(profiles_path)
    profiles = payload.get("profiles") if isinstance(payload, dict) else None
    if not isinstance(profiles, list):
        return []
    return [ComplianceProfile.model_validate(item) for item in profiles]


def get_profile_by_id(profiles_path: Path, profile_id: str) -> ComplianceProfile | None:
    for profile in load_profiles(profiles_path):
        if profile.id == profile_id:
            return profile
    return None


def get_default_profile(profiles_path: Path) -> ComplianceProfile | None:
    for profile in load_profiles(profiles_path):
        if profile.default:
            return profile
    return None


def load_assessment_file(path: Path) -> dict[str, Any]:
    payload = _read_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: assessment JSON must decode to an object")
    return payload
