from __future__ import annotations

import copy
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from app.ami.aggregation import compute_aggregation, compute_overall_confidence
from app.ami.canonical import compute_integrity_hash
from app.ami.schema import (
    DIMENSION_DISPLAY_NAMES,
    DIMENSION_IDS,
    DIMENSION_WEIGHTS,
    DimensionScore,
    build_source_catalog,
)

# Tests never read a developer .env; keep runtime mode explicit.
os.environ.setdefault("AMI_RUNTIME_ENVIRONMENT", "test")

DEFAULT_SCORES: dict[str, int | None] = {
    "execution_reliability": 4,
    "safety_guardrails": 5,
    "tooling_integration": 3,
    "observability": 2,
    "deployment_maturity": 4,
    "real_world_validation": 3,
}

RUBRIC_PREFIXES = {
    "execution_reliability": "ER",
    "tooling_integration": "TI",
    "safety_guardrails": "SG",
    "observability": "OB",
    "deployment_maturity": "DM",
    "real_world_validation": "RV",
}

SOURCES: list[dict[str, Any]] = [
    {
        "source_id": "src-docs",
        "tier": "T1",
        "access": "public",
        "type": "doc",
        "reliability": "primary",
        "url": "https://docs.acme.example/agent",
        "title": "Acme Agent documentation",
        "publisher": "Acme",
    },
    {
        "source_id": "src-repo",
        "tier": "T2",
        "access": "public",
        "type": "commit",
        "reliability": "secondary",
        "url": "https://git.acme.example/agent/commit/abc123",
        "title": "Retry policy commit",
        "publisher": "Acme",
    },
    {
        "source_id": "src-blog",
        "tier": "T3",
        "access": "public",
        "type": "url",
        "reliability": "self_reported",
        "url": "https://blog.acme.example/launch",
        "title": "Launch post",
        "publisher": "Acme",
    },
    {
        "source_id": "src-forum",
        "tier": "T3",
        "access": "public",
        "type": "url",
        "reliability": "self_reported",
        "url": "https://forum.acme.example/t/1",
        "title": "Community thread",
        "publisher": "Acme community",
    },
]

PROFILES: list[dict[str, Any]] = [
    {
        "id": "ami-basic",
        "label": "AMI Basic",
        "description": "Scored assessment with a passing grade.",
        "amiVersion": "1.0",
        "default": True,
        "rules": {"requireScored": True, "maxNotScored": 2, "minOverallScorePercent": 60},
    },
    {
        "id": "ami-strict",
        "label": "AMI Strict",
        "description": "Published, signed and well sourced.",
        "amiVersion": "1.0",
        "default": False,
        "rules": {
            "requireScored": True,
            "requirePublished": True,
            "requireReviewerSignature": True,
            "minScores": {"safety_guardrails": 4},
            "minDistinctSourcesTotal": 3,
            "minDistinctSourcesPerDimensionGE4": 2,
            "requirePrimaryForScore5": True,
        },
    },
]

HASHED_AT = datetime(2026, 1, 15, tzinfo=UTC)


def build_evidence(
    evidence_id: str,
    source_id: str,
    *,
    captured_at: str = "2025-12-01T00:00:00Z",
    published_date: str = "2025-11-01",
) -> dict[str, Any]:
    return {
        "id": evidence_id,
        "source_ids": [source_id],
        "url": f"https://evidence.example/{evidence_id}",
        "title": f"Evidence {evidence_id}",
        "publisher": "Acme",
        "published_date": published_date,
        "excerpt": "The agent retries failed tool calls with bounded backoff.",
        "claim_supported": "Failed steps are retried",
        "evidence_type": "official_docs",
        "confidence_contribution": "verified",
        "relevance_weight": 0.8,
        "captured_at": captured_at,
    }


def build_dimension(
    dimension_id: str,
    score: int | None,
    *,
    confidence: str = "verified",
    sources: tuple[str, ...] | None = None,
) -> dict[str, Any]:
    if score is None:
        return DimensionScore.not_scored(dimension_id, "No public evidence").model_dump(
            mode="json"
        )
    if sources is None:
        sources = (
            ("src-docs", "src-blog")
            if dimension_id == "observability"
            else ("src-docs", "src-repo")
        )
    prefix = RUBRIC_PREFIXES[dimension_id]
    return {
        "dimension_id": dimension_id,
        "dimension_name": DIMENSION_DISPLAY_NAMES[dimension_id],
        "score": score,
        "confidence": confidence,
        "weight": DIMENSION_WEIGHTS[dimension_id],
        "rationale": f"{DIMENSION_DISPLAY_NAMES[dimension_id]} evidence reviewed.",
        "scored": True,
        "not_scored_reason": None,
        "rubric_refs": [f"{prefix}-{score}a"],
        "evidence": [
            build_evidence(f"{prefix.lower()}-{index}", source_id)
            for index, source_id in enumerate(sources, start=1)
        ],
    }


def rehash(assessment: dict[str, Any]) -> dict[str, Any]:
    assessment["integrity"] = compute_integrity_hash(assessment, hashed_at=HASHED_AT)
    return assessment


def build_assessment(
    *,
    system_id: str = "acme-agent",
    version: int = 1,
    scores: dict[str, int | None] | None = None,
    confidence: str = "verified",
    status: str = "scored",
    assessed_on: str = "20260115",
    sources: tuple[str, ...] | None = None,
    previous_assessment_id: str | None = None,
) -> dict[str, Any]:
    """A stored-form assessment that passes every gate against SOURCES and rubrics."""
    merged = {**DEFAULT_SCORES, **(scores or {})}
    dimensions = [
        build_dimension(dimension_id, merged[dimension_id], confidence=confidence, sources=sources)
        for dimension_id in DIMENSION_IDS
    ]
    assessment: dict[str, Any] = {
        "assessment_id": f"AMI_ASSESS_{assessed_on}_{system_id}_v{version}",
        "system_id": system_id,
        "version": version,
        "assessed_at": f"{assessed_on[:4]}-{assessed_on[4:6]}-{assessed_on[6:]}T00:00:00Z",
        "overall_score": None,
        "grade": None,
        "overall_confidence": "low",
        "status": status,
        "category": "cloud_autonomous",
        "eligibility": {
            "agent_system": True,
            "public_artifact": True,
            "active_development": True,
            "maintainer_identifiable": True,
            "verified_sources_count": 3,
            "exclusion_flags": {
                "base_llm_only": False,
                "prompt_library_only": False,
                "research_prototype_only": False,
                "wrapper_only": False,
            },
        },
        "dimensions": dimensions,
        "methodology_version": "1.0",
        "assessed_by": "ami-editorial",
        "notes": None,
        "review": {"state": "draft", "reviewers": []},
        "previous_assessment_id": previous_assessment_id,
    }
    if status == "scored":
        aggregation = compute_aggregation(dimensions)
        assessment["overall_score"] = aggregation.score_percent
        assessment["grade"] = aggregation.grade
        assessment["overall_confidence"] = compute_overall_confidence(dimensions)
    return rehash(assessment)


def build_rubrics() -> dict[str, dict[str, list[dict[str, str]]]]:
    return {
        dimension_id: {
            str(level): [{"id": f"{prefix}-{level}a", "text": f"{prefix} level {level}"}]
            for level in range(6)
        }
        for dimension_id, prefix in RUBRIC_PREFIXES.items()
    }


def find_dimension(assessment: dict[str, Any], dimension_id: str) -> dict[str, Any]:
    return next(item for item in assessment["dimensions"] if item["dimension_id"] == dimension_id)


def write_reference_files(root: Path) -> dict[str, Path]:
    paths = {
        "catalog": root / "source-catalog.json",
        "profiles": root / "profiles.json",
        "meta": root / "meta.json",
    }
    root.mkdir(parents=True, exist_ok=True)
    paths["catalog"].write_text(json.dumps({"sources": SOURCES}), encoding="utf-8")
    paths["profiles"].write_text(json.dumps({"profiles": PROFILES}), encoding="utf-8")
    paths["meta"].write_text(json.dumps({"rubrics": build_rubrics()}), encoding="utf-8")
    return paths


@pytest.fixture
def make_assessment():
    return build_assessment


@pytest.fixture
def make_evidence():
    return build_evidence


@pytest.fixture
def make_dimension():
    return build_dimension


@pytest.fixture
def scored_assessment() -> dict[str, Any]:
    return build_assessment()


@pytest.fixture
def source_catalog():
    return build_source_catalog(copy.deepcopy(SOURCES))


@pytest.fixture
def rubrics():
    return build_rubrics()


@pytest.fixture
def profiles() -> list[dict[str, Any]]:
    return copy.deepcopy(PROFILES)


@pytest.fixture
def dimension_of():
    return find_dimension


@pytest.fixture
def rehash_assessment():
    return rehash


@pytest.fixture
def reference_files(tmp_path: Path) -> dict[str, Path]:
    return write_reference_files(tmp_path / "reference")
