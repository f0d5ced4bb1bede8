"""AMI v1.0 record types and the fixed enumerations they are validated against."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

METHODOLOGY_VERSION = "1.0"

DIMENSION_IDS: tuple[str, ...] = (
    "execution_reliability",
    "tooling_integration",
    "safety_guardrails",
    "observability",
    "deployment_maturity",
    "real_world_validation",
)

DIMENSION_DISPLAY_NAMES: dict[str, str] = {
    "execution_reliability": "Execution Reliability",
    "tooling_integration": "Tooling & Integration Breadth",
    "safety_guardrails": "Safety & Guardrails",
    "observability": "Observability",
    "deployment_maturity": "Deployment Maturity",
    "real_world_validation": "Real-World Validation",
}

DIMENSION_WEIGHTS: dict[str, float] = {
    "execution_reliability": 0.20,
    "safety_guardrails": 0.20,
    "tooling_integration": 0.15,
    "observability": 0.15,
    "deployment_maturity": 0.15,
    "real_world_validation": 0.15,
}

WEIGHT_TOLERANCE = 0.001
MAX_DIMENSION_SCORE = 5
MAX_NOT_SCORED_FOR_SCORED_STATUS = 2
MIN_VERIFIED_SOURCES_FOR_SCORED = 3
MAX_EXCERPT_WORDS = 25

CONFIDENCE_LEVELS: tuple[str, ...] = ("verified", "inferred", "unverified")
OVERALL_CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")
AMI_GRADES: tuple[str, ...] = ("A", "B", "C", "D", "F")

SYSTEM_STATUSES: tuple[str, ...] = (
    "scored",
    "insufficient_evidence",
    "inactive",
    "excluded",
    "under_review",
)

SYSTEM_CATEGORIES: tuple[str, ...] = (
    "cloud_autonomous",
    "cloud_workflow",
    "local_autonomous",
    "enterprise",
    "vertical_agent",
)

EVIDENCE_TYPES: tuple[str, ...] = (
    "official_docs",
    "source_code",
    "security_audit",
    "incident_report",
    "changelog",
    "independent_analysis",
    "case_study",
    "compliance",
    "community_metrics",
    "news_report",
)

SOURCE_TIERS: tuple[str, ...] = ("T1", "T2", "T3")
SOURCE_ACCESS: tuple[str, ...] = ("public", "private")
SOURCE_TYPES: tuple[str, ...] = (
    "url",
    "doc",
    "commit",
    "issue",
    "log",
    "metric",
    "screenshot",
    "video",
    "dataset",
    "other",
)
SOURCE_RELIABILITY: tuple[str, ...] = ("primary", "secondary", "self_reported")

# Source types accepted in place of a primary source for a score of 5.
HARD_EVIDENCE_SOURCE_TYPES = frozenset({"commit", "log", "metric"})

REVIEW_STATES: tuple[str, ...] = ("draft", "reviewed", "published")

EXCLUSION_FLAGS: tuple[str, ...] = (
    "base_llm_only",
    "prompt_library_only",
    "research_prototype_only",
    "wrapper_only",
)

ELIGIBILITY_FLAGS: tuple[str, ...] = (
    "agent_system",
    "public_artifact",
    "active_development",
    "maintainer_identifiable",
)

Confidence = Literal["verified", "inferred", "unverified"]
OverallConfidence = Literal["high", "medium", "low"]
Grade = Literal["A", "B", "C", "D", "F"]
SystemStatus = Literal["scored", "insufficient_evidence", "inactive", "excluded", "under_review"]
SystemCategory = Literal[
    "cloud_autonomous", "cloud_workflow", "local_autonomous", "enterprise", "vertical_agent"
]
ReviewState = Literal["draft", "reviewed", "published"]


def build_assessment_id(system_id: str, version: int, assessed_on: date) -> str:
    """Return the canonical `AMI_ASSESS_<YYYYMMDD>_<system_id>_v<version>` identifier."""
    return f"AMI_ASSESS_{assessed_on.strftime('%Y%m%d')}_{system_id}_v{version}"


class Evidence(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    source_ids: list[str] = Field(default_factory=list)
    source_id: str | None = None
    url: str = Field(min_length=1)
    title: str = Field(min_length=1)
    publisher: str = Field(min_length=1)
    published_date: str = Field(min_length=1)
    excerpt: str = Field(min_length=1)
    claim_supported: str = Field(min_length=1)
    evidence_type: str = Field(min_length=1)
    confidence_contribution: Confidence
    relevance_weight: float = Field(ge=0.0, le=1.0)
    captured_at: str = Field(min_length=1)
    archived_url: str | None = None

    @model_validator(mode="after")
    def _normalize_source_ids(self) -> Evidence:
        # Legacy records carry a single source_id.
        if not self.source_ids and self.source_id:
            self.source_ids = [self.source_id]
        self.source_id = None
        return self


class DimensionScore(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dimension_id: str = Field(min_length=1)
    dimension_name: str = Field(min_length=1)
    score: int | None = Field(default=None, ge=0, le=MAX_DIMENSION_SCORE)
    confidence: Confidence = "unverified"
    weight: float
    rationale: str = ""
    scored: bool = False
    not_scored_reason: str | None = None
    rubric_refs: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)

    @classmethod
    def not_scored(cls, dimension_id: str, reason: str) -> DimensionScore:
        return cls(
            dimension_id=dimension_id,
            dimension_name=DIMENSION_DISPLAY_NAMES[dimension_id],
            weight=DIMENSION_WEIGHTS[dimension_id],
            scored=False,
            score=None,
            not_scored_reason=reason,
        )


class ExclusionFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_llm_only: bool = False
    prompt_library_only: bool = False
    research_prototype_only: bool = False
    wrapper_only: bool = False


class EligibilityFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    agent_system: bool = False
    public_artifact: bool = False
    active_development: bool = False
    maintainer_identifiable: bool = False
    verified_sources_count: int = Field(default=0, ge=0)
    exclusion_flags: ExclusionFlags = Field(default_factory=ExclusionFlags)


class Reviewer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    handle: str = Field(min_length=1)
    signed_at: str = Field(min_length=1)
    signature_hash: str = Field(min_length=1)


class Review(BaseModel):
    model_config = ConfigDict(extra="forbid")

    state: ReviewState = "draft"
    reviewers: list[Reviewer] = Field(default_factory=list)


class Integrity(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assessment_hash: str = Field(min_length=64, max_length=64)
    hash_algorithm: Literal["sha256"] = "sha256"
    hashed_at: str = Field(min_length=1)


class Assessment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assessment_id: str = Field(min_length=1)
    system_id: str = Field(min_length=1)
    version: int = Field(ge=1)
    assessed_at: str = Field(min_length=1)
    overall_score: int | None = Field(default=None, ge=0, le=100)
    grade: Grade | None = None
    overall_confidence: OverallConfidence = "low"
    status: SystemStatus = "under_review"
    category: SystemCategory
    eligibility: EligibilityFlags = Field(default_factory=EligibilityFlags)
    dimensions: list[DimensionScore] = Field(min_length=6, max_length=6)
    methodology_version: str = METHODOLOGY_VERSION
    assessed_by: str = Field(min_length=1)
    notes: str | None = None
    review: Review = Field(default_factory=Review)
    integrity: Integrity | None = None
    previous_assessment_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form: evidence drops the normalized-away legacy key."""
        payload = self.model_dump(mode="json")
        for dimension in payload["dimensions"]:
            for item in dimension["evidence"]:
                item.pop("source_id", None)
                if item.get("archived_url") is None:
                    item.pop("archived_url", None)
        return payload


class SourceEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    source_id: str = Field(min_length=1)
    tier: str | None = None
    access: str | None = None
    type: str | None = None
    reliability: str | None = None
    url: str | None = None
    title: str | None = None
    publisher: str | None = None


SourceCatalog = dict[str, SourceEntry]


def build_source_catalog(sources: list[dict[str, Any]] | list[SourceEntry]) -> SourceCatalog:
    """Index catalog entries by source_id."""
    catalog: SourceCatalog = {}
    for item in sources:
        entry = item if isinstance(item, SourceEntry) else SourceEntry.model_validate(item)
        catalog[entry.source_id] = entry
    return catalog


class ProfileRules(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    require_scored: bool = Field(default=False, alias="requireScored")
    require_published: bool = Field(default=False, alias="requirePublished")
    require_reviewer_signature: bool = Field(default=False, alias="requireReviewerSignature")
    max_not_scored: int | None = Field(default=None, ge=0, alias="maxNotScored")
    min_overall_score_percent: int | None = Field(
        default=None, ge=0, le=100, alias="minOverallScorePercent"
    )
    min_scores: dict[str, int] = Field(default_factory=dict, alias="minScores")
    min_confidence: dict[str, Confidence] = Field(default_factory=dict, alias="minConfidence")
    min_distinct_sources_total: int | None = Field(
        default=None, ge=0, alias="minDistinctSourcesTotal"
    )
    min_distinct_sources_per_dimension_ge4: int | None = Field(
        default=None, ge=0, alias="minDistinctSourcesPerDimensionGE4"
    )
    require_primary_for_score5: bool = Field(default=False, alias="requirePrimaryForScore5")
    max_source_age_days: int | None = Field(default=None, ge=0, alias="maxSourceAgeDays")


class ComplianceProfile(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    description: str = ""
    ami_version: str = Field(default=METHODOLOGY_VERSION, alias="amiVersion")
    default: bool = False
    rules: ProfileRules = Field(default_factory=ProfileRules)
