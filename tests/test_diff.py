import pytest

from app.ami.diff import AssessmentNotFoundError, diff_assessments, select_diff_pair


def _versions(make_assessment):
    first = make_assessment()
    second = make_assessment(
        version=2,
        assessed_on="20260201",
        scores={"observability": 3},
        previous_assessment_id=first["assessment_id"],
    )
    return first, second


def test_diff_reports_overall_and_dimension_deltas(make_assessment) -> None:
    first, second = _versions(make_assessment)

    changes = diff_assessments(second, first)

    # 3.6 -> 3.75 raw, 72 -> 75
    assert changes.overall_score_delta == 3
    assert changes.grade_changed is False
    assert changes.confidence_changed is False
    by_id = {change.dimension_id: change for change in changes.dimension_changes}
    assert len(by_id) == 6
    assert by_id["observability"].old_score == 2
    assert by_id["observability"].new_score == 3
    assert by_id["observability"].delta == 1
    assert by_id["execution_reliability"].delta == 0


def test_diff_flags_grade_and_confidence_changes(make_assessment) -> None:
    first = make_assessment()
    second = make_assessment(
        version=2,
        confidence="inferred",
        scores={"execution_reliability": 5, "observability": 5, "real_world_validation": 4},
    )

    changes = diff_assessments(second, first)

    assert changes.grade_changed is True
    assert changes.confidence_changed is True
    assert all(change.confidence_changed for change in changes.dimension_changes)


def test_diff_without_previous_version(make_assessment) -> None:
    changes = diff_assessments(make_assessment(), None)

    assert changes.overall_score_delta is None
    assert changes.grade_changed is False
    assert changes.confidence_changed is False
    assert all(change.old_score is None for change in changes.dimension_changes)
    assert all(change.delta is None for change in changes.dimension_changes)


def test_unscored_dimension_has_no_delta(make_assessment) -> None:
    first = make_assessment()
    second = make_assessment(version=2, scores={"observability": None})

    changes = diff_assessments(second, first)
    observability = next(
        change for change in changes.dimension_changes if change.dimension_id == "observability"
    )

    assert observability.old_score == 2
    assert observability.new_score is None
    assert observability.delta is None


def test_select_pair_defaults_to_latest_and_its_predecessor(make_assessment) -> None:
    first, second = _versions(make_assessment)

    current, previous = select_diff_pair([second, first])

    assert current is second
    assert previous is first


def test_select_pair_falls_back_to_next_older_version(make_assessment) -> None:
    first = make_assessment()
    second = make_assessment(version=2)

    current, previous = select_diff_pair([second, first])

    assert current is second
    assert previous is first
    assert select_diff_pair([first]) == (first, None)


def test_select_pair_with_explicit_ids(make_assessment) -> None:
    first, second = _versions(make_assessment)

    current, previous = select_diff_pair(
        [second, first], to_id=first["assessment_id"], from_id=second["assessment_id"]
    )

    assert current is first
    assert previous is second


def test_select_pair_unknown_id(make_assessment) -> None:
    first, second = _versions(make_assessment)

    with pytest.raises(AssessmentNotFoundError) as excinfo:
        select_diff_pair([second, first], from_id="AMI_ASSESS_20250101_acme-agent_v9")

    assert excinfo.value.assessment_id == "AMI_ASSESS_20250101_acme-agent_v9"
