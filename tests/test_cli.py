import json
from pathlib import Path

import pytest

from app.ami.__main__ import main
from app.ami.canonical import compute_assessment_hash, compute_integrity_hash, verify_integrity
from app.ami.cli import migrate_legacy_source_ids, migrate_store, scaffold_assessment
from app.ami.gates import validate_assessment
from apps.api.app.services import assessment_store


def _legacy_assessment(make_assessment) -> dict:
    assessment = make_assessment()
    for dimension in assessment["dimensions"]:
        for item in dimension["evidence"]:
            item["source_id"] = item.pop("source_ids")[0]
    assessment.pop("review")
    assessment["integrity"] = compute_integrity_hash(assessment)
    return assessment


def test_new_scaffolds_hashed_draft_versions(tmp_path: Path, capsys) -> None:
    data_root = tmp_path / "data"

    assert main(["--data-root", str(data_root), "new", "acme-agent", "--category", "enterprise"]) == 0
    first_out = json.loads(capsys.readouterr().out)
    assert main(["--data-root", str(data_root), "new", "acme-agent"]) == 0

    listed = assessment_store.list_assessments(data_root, "acme-agent")
    assert [item["version"] for item in listed] == [2, 1]
    newest, oldest = listed
    assert first_out["assessment_id"] == oldest["assessment_id"]
    assert oldest["category"] == "enterprise"
    assert oldest["status"] == "under_review"
    assert all(not dimension["scored"] for dimension in oldest["dimensions"])
    assert oldest["dimensions"][0]["not_scored_reason"] == "Pending evidence collection"
    assert newest["previous_assessment_id"] == oldest["assessment_id"]
    assert verify_integrity(newest) == []
    assert validate_assessment(newest).valid is True


def test_scaffold_rejects_unknown_category(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="invalid category 'toy'"):
        scaffold_assessment(tmp_path, system_id="acme-agent", category="toy", assessed_by="me")


def test_validate_writes_summary_and_sets_exit_code(
    tmp_path: Path, make_assessment, reference_files, capsys
) -> None:
    data_root = tmp_path / "data"
    summary_path = tmp_path / "reports" / "summary.json"
    assessment = make_assessment()
    assessment_store.upsert_assessment(data_root, assessment)
    argv = [
        "--data-root",
        str(data_root),
        "--source-catalog",
        str(reference_files["catalog"]),
        "validate",
        "--meta",
        str(reference_files["meta"]),
        "--summary-out",
        str(summary_path),
    ]

    assert main(argv) == 0
    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["valid"] == 1
    assert summary["invalid"] == 0

    stored_path = data_root / "assessments" / "acme-agent" / f"{assessment['assessment_id']}.json"
    tampered = json.loads(stored_path.read_text(encoding="utf-8"))
    tampered["overall_score"] = 99
    stored_path.write_text(json.dumps(tampered), encoding="utf-8")
    capsys.readouterr()

    assert main(argv) == 1
    printed = json.loads(capsys.readouterr().out)
    assert printed["invalid"] == 1


def test_migrate_rewrites_legacy_evidence_and_rehashes(tmp_path: Path, make_assessment) -> None:
    legacy = _legacy_assessment(make_assessment)
    assessment_store.upsert_assessment(tmp_path, legacy)

    assert migrate_store(tmp_path, dry_run=True) == [
        f"assessments/acme-agent/{legacy['assessment_id']}.json"
    ]
    assert assessment_store.get_assessment_by_id(tmp_path, legacy["assessment_id"]) == legacy

    assert main(["--data-root", str(tmp_path), "migrate-source-ids"]) == 0

    migrated = assessment_store.get_assessment_by_id(tmp_path, legacy["assessment_id"])
    assert migrated is not None
    evidence = migrated["dimensions"][0]["evidence"][0]
    assert evidence["source_ids"] == ["src-docs"]
    assert "source_id" not in evidence
    assert migrated["review"] == {"state": "draft", "reviewers": []}
    assert verify_integrity(migrated) == []
    assert assessment_store.get_latest_assessment(tmp_path, "acme-agent") == migrated
    assert migrate_store(tmp_path) == []


def test_migrate_legacy_source_ids_reports_no_change_for_current_records(make_assessment) -> None:
    assert migrate_legacy_source_ids(make_assessment()) is False


def test_hash_prints_integrity_block(tmp_path: Path, make_assessment, capsys) -> None:
    assessment = make_assessment()
    path = tmp_path / "assessment.json"
    path.write_text(json.dumps(assessment), encoding="utf-8")

    assert main(["hash", str(path)]) == 0

    block = json.loads(capsys.readouterr().out)
    assert block["assessment_hash"] == compute_assessment_hash(assessment)
    assert block["hash_algorithm"] == "sha256"


def test_evaluate_exit_code_follows_profile_result(
    tmp_path: Path, make_assessment, reference_files, capsys
) -> None:
    path = tmp_path / "assessment.json"
    path.write_text(json.dumps(make_assessment()), encoding="utf-8")
    base = [
        "--source-catalog",
        str(reference_files["catalog"]),
        "evaluate",
        str(path),
        "--profiles-path",
        str(reference_files["profiles"]),
    ]

    assert main(base) == 0
    assert json.loads(capsys.readouterr().out)["profile_id"] == "ami-basic"

    assert main([*base, "--profile", "ami-strict"]) == 1
    result = json.loads(capsys.readouterr().out)
    assert result["pass"] is False
    assert result["reasons"][0]["code"] == "PROFILE_REVIEW_STATE_FAIL"
