import pytest

from app.ami.aggregation import (
    compute_aggregation,
    compute_overall_confidence,
    score_to_grade,
)


def test_weighted_example_scores_72_grade_b(scored_assessment) -> None:
    result = compute_aggregation(scored_assessment["dimensions"])

    assert result.raw_weighted_sum == pytest.approx(3.6)
    assert result.score_percent == 72
    assert result.grade == "B"
    assert result.scored_count == 6
    assert result.not_scored_count == 0
    assert compute_overall_confidence(scored_assessment["dimensions"]) == "high"


def test_unscored_weights_are_redistributed(make_assessment) -> None:
    assessment = make_assessment(
        scores={"execution_reliability": None, "safety_guardrails": None}
    )

    result = compute_aggregation(assessment["dimensions"])

    assert result.scored_count == 4
    assert result.not_scored_count == 2
    assert set(result.renormalized_weights) == {
        "tooling_integration",
        "observability",
        "deployment_maturity",
        "real_world_validation",
    }
    assert sum(result.renormalized_weights.values()) == pytest.approx(1.0)
    for weight in result.renormalized_weights.values():
        assert weight == pytest.approx(0.25)
    # (3 + 2 + 4 + 3) / 4 = 3.0 -> 60%
    assert result.score_percent == 60
    assert result.grade == "B"


def test_no_scored_dimensions_yields_null_score(make_assessment) -> None:
    assessment = make_assessment(
        status="under_review",
        scores={dimension_id: None for dimension_id in (
            "execution_reliability",
            "tooling_integration",
            "safety_guardrails",
            "observability",
            "deployment_maturity",
            "real_world_validation",
        )},
    )

    result = compute_aggregation(assessment["dimensions"])

    assert result.score_percent is None
    assert result.grade is None
    assert result.not_scored_count == 6
    assert compute_overall_confidence(assessment["dimensions"]) == "low"


def test_aggregation_is_independent_of_dimension_order(scored_assessment) -> None:
    forward = compute_aggregation(scored_assessment["dimensions"])
    backward = compute_aggregation(list(reversed(scored_assessment["dimensions"])))

    assert forward == backward


@pytest.mark.parametrize(
    ("score", "grade"),
    [
        (100, "A"),
        (80, "A"),
        (79, "B"),
        (60, "B"),
        (59, "C"),
        (40, "C"),
        (39, "D"),
        (20, "D"),
        (19, "F"),
        (0, "F"),
        (None, None),
    ],
)
def test_grade_boundaries(score, grade) -> None:
    assert score_to_grade(score) == grade


def test_overall_confidence_levels(make_assessment, dimension_of) -> None:
    assessment = make_assessment()
    dimension_of(assessment, "observability")["confidence"] = "inferred"
    assert compute_overall_confidence(assessment["dimensions"]) == "medium"

    dimension_of(assessment, "deployment_maturity")["confidence"] = "unverified"
    assert compute_overall_confidence(assessment["dimensions"]) == "low"


def test_overall_confidence_ignores_unscored_dimensions(make_assessment) -> None:
    # Unscored dimensions carry confidence "unverified" but do not count.
    assessment = make_assessment(scores={"observability": None})

    assert compute_overall_confidence(assessment["dimensions"]) == "high"


def test_malformed_scored_dimensions_carry_no_weight(scored_assessment, dimension_of) -> None:
    dimension_of(scored_assessment, "execution_reliability")["dimension_id"] = [
        "execution_reliability"
    ]
    dimension_of(scored_assessment, "safety_guardrails")["score"] = "5"

    result = compute_aggregation(scored_assessment["dimensions"])

    assert result.scored_count == 6
    assert set(result.renormalized_weights) == {
        "tooling_integration",
        "observability",
        "deployment_maturity",
        "real_world_validation",
    }
    assert result.score_percent == 60
