import copy
from datetime import UTC, datetime
from pathlib import Path

from app.ami.canonical import verify_integrity
from app.ami.gates import validate_assessment
from app.submissions.schema import AssessmentUpdates, ReviewDecision, Submission
from app.submissions.workflow import ConcurrentUpdateError
from apps.api.app.services import assessment_store
from apps.api.app.services.assessment_versioning import (
    apply_review_decision,
    build_new_assessment_version,
)

SUBMISSION_ID = "SUB_20260120_acme-agent_0a1b2c3d"
REVIEWED_AT = datetime(2026, 2, 1, 12, tzinfo=UTC)


class InMemorySubmissions:
    def __init__(self, *submissions: Submission) -> None:
        self.items = {item.submission_id: item for item in submissions}

    def get(self, submission_id: str) -> Submission | None:
        return self.items.get(submission_id)

    def save_review(self, submission: Submission, *, expected_updated_at: str) -> Submission:
        if self.items[submission.submission_id].updated_at != expected_updated_at:
            raise ConcurrentUpdateError(submission.submission_id)
        self.items[submission.submission_id] = submission
        return submission

    def link_assessment(self, submission_id, assessment_id, *, now=None):
        linked = self.items[submission_id].model_copy(
            update={"resulting_assessment_id": assessment_id}
        )
        self.items[submission_id] = linked
        return linked


def _submission(assessment_id: str, *, submission_type: str = "correction") -> Submission:
    return Submission.model_validate(
        {
            "submission_id": SUBMISSION_ID,
            "type": submission_type,
            "system_id": "acme-agent",
            "assessment_id": assessment_id,
            "status": "under_review",
            "claims": [{"summary": "OTel export shipped", "dimension_id": "observability"}],
            "evidence": [{"url": "https://acme.example/otel", "description": "OTel exporter"}],
            "contact": {"name": "Sam Submitter", "email": "sam@example.com"},
            "submitted_at": "2026-01-20T10:00:00.000Z",
            "updated_at": "2026-01-21T10:00:00.000Z",
        }
    )


def _accept(**updates) -> ReviewDecision:
    return ReviewDecision.model_validate(
        {
            "status": "accepted",
            "reviewer_name": "Alice Reviewer",
            "reviewer_handle": "alice",
            "reasoning": "Exporter verified",
            **updates,
        }
    )


def _store_original(tmp_path: Path, make_assessment) -> dict:
    original = make_assessment()
    assessment_store.upsert_assessment(tmp_path, original)
    return original


def test_accepted_correction_creates_and_links_new_version(
    tmp_path: Path, make_assessment, source_catalog, rubrics
) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(_submission(original["assessment_id"]))

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        _accept(assessment_updates={"dimensions": [{"dimension_id": "observability", "score": 3}]}),
        source_catalog=source_catalog,
        rubrics=rubrics,
        now=REVIEWED_AT,
    )

    assert result.outcome.success is True
    assert result.version is not None
    created = result.version.assessment
    assert created is not None
    assert created["assessment_id"] == "AMI_ASSESS_20260201_acme-agent_v2"
    assert created["version"] == 2
    assert created["previous_assessment_id"] == original["assessment_id"]
    assert created["overall_score"] == 75
    assert created["grade"] == "B"
    assert created["review"] == {"state": "draft", "reviewers": []}
    assert created["notes"] == f"Created from correction submission {SUBMISSION_ID}"
    assert created["integrity"]["hashed_at"] == "2026-02-01T12:00:00.000Z"
    assert verify_integrity(created) == []

    assert assessment_store.get_latest_assessment(tmp_path, "acme-agent") == created
    assert repository.items[SUBMISSION_ID].resulting_assessment_id == created["assessment_id"]
    payload = result.as_payload()
    assert payload["status"] == "accepted"
    assert payload["resulting_assessment_id"] == created["assessment_id"]
    assert payload["resulting_version"] == 2


def test_rejection_creates_no_version(tmp_path: Path, make_assessment) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(_submission(original["assessment_id"]))

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        ReviewDecision(status="rejected", reviewer_name="Alice", reviewer_handle="alice"),
        now=REVIEWED_AT,
    )

    assert result.outcome.success is True
    assert result.version is None
    assert assessment_store.next_version(tmp_path, "acme-agent") == 2


def test_acceptance_without_updates_is_skipped(tmp_path: Path, make_assessment) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(_submission(original["assessment_id"]))

    result = apply_review_decision(repository, tmp_path, SUBMISSION_ID, _accept(), now=REVIEWED_AT)

    assert result.version is not None
    assert result.version.created is False
    assert result.version.skipped_reason == "no_assessment_updates"
    assert repository.items[SUBMISSION_ID].status == "accepted"
    assert repository.items[SUBMISSION_ID].resulting_assessment_id is None


def test_missing_original_is_skipped(tmp_path: Path) -> None:
    repository = InMemorySubmissions(_submission("AMI_ASSESS_20260115_acme-agent_v1"))

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        _accept(assessment_updates={"dimensions": [{"dimension_id": "observability", "score": 3}]}),
        now=REVIEWED_AT,
    )

    assert result.version is not None
    assert result.version.skipped_reason == "assessment_not_found"


def test_invalid_candidate_is_discarded(tmp_path: Path, make_assessment) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(_submission(original["assessment_id"]))

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        _accept(
            assessment_updates={"dimensions": [{"dimension_id": "tooling_integration", "evidence": []}]}
        ),
        now=REVIEWED_AT,
    )

    assert result.version is not None
    assert result.version.assessment is None
    assert any("scored dimension has no evidence items" in error for error in result.version.errors)
    assert assessment_store.list_assessments(tmp_path, "acme-agent") == [original]
    assert repository.items[SUBMISSION_ID].status == "accepted"
    assert "version_errors" in result.as_payload()


def test_assessment_requests_never_spawn_versions(tmp_path: Path, make_assessment) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(
        _submission(original["assessment_id"], submission_type="assessment_request")
    )

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        _accept(assessment_updates={"dimensions": [{"dimension_id": "observability", "score": 3}]}),
        now=REVIEWED_AT,
    )

    assert result.outcome.success is True
    assert result.version is None


def test_failed_review_is_returned_without_side_effects(tmp_path: Path, make_assessment) -> None:
    original = _store_original(tmp_path, make_assessment)
    repository = InMemorySubmissions(_submission(original["assessment_id"]))

    result = apply_review_decision(
        repository,
        tmp_path,
        SUBMISSION_ID,
        ReviewDecision(status="received", reviewer_name="Alice", reviewer_handle="alice"),
    )

    assert result.outcome.error == "invalid_transition"
    assert result.version is None
    assert repository.items[SUBMISSION_ID].status == "under_review"


def test_build_new_version_leaves_original_untouched(make_assessment, source_catalog) -> None:
    original = make_assessment()
    snapshot = copy.deepcopy(original)

    candidate = build_new_assessment_version(
        original,
        _submission(original["assessment_id"], submission_type="challenge"),
        AssessmentUpdates.model_validate(
            {
                "dimensions": [
                    {
                        "dimension_id": "safety_guardrails",
                        "score": 4,
                        "confidence": "inferred",
                        "rationale": "Guardrail bypass reported",
                        "rubric_refs": ["SG-4a"],
                    }
                ]
            }
        ),
        version=2,
        now=REVIEWED_AT,
    )

    assert original == snapshot
    safety = next(
        item for item in candidate["dimensions"] if item["dimension_id"] == "safety_guardrails"
    )
    assert safety["score"] == 4
    assert safety["rationale"] == "Guardrail bypass reported"
    # 3.6 - 0.2 = 3.4 -> 68
    assert candidate["overall_score"] == 68
    assert candidate["overall_confidence"] == "medium"
    assert validate_assessment(candidate, source_catalog=source_catalog).valid is True
