"""
Tests for sensitivity analysis.
"""

import pytest

from finance_dss.analytics.ahp import AHPEngine, GoalPrioritizationModel, SensitivityAnalyzer
from finance_dss.analytics.ahp.sensitivity import comparison_impact
from finance_dss.models.ahp import AHPOutput, RankItem, SensitivityLevel


@pytest.fixture
def analyzer():
    return SensitivityAnalyzer()


def _ranked(*priorities) -> AHPOutput:
    ranking = [
        RankItem(alternative_id=f"a{i + 1}", priority=p, rank=i + 1)
        for i, p in enumerate(priorities)
    ]
    return AHPOutput.build(
        alternative_priorities={item.alternative_id: item.priority for item in ranking},
        criteria_weights={},
        local_priorities={},
        consistency_ratio=0.0,
        ranking=ranking,
    )


class TestRankingStability:
    """Tests for the top-two gap classification."""

    def test_highly_stable(self, analyzer, trade_off_input):
        output = AHPEngine().calculate(trade_off_input)

        stability = analyzer.ranking_stability(output)

        assert stability.top_two_gap == pytest.approx(0.25)
        assert stability.stability_label == "highly_stable"
        assert stability.is_stable is True
        assert stability.stability_score == 100.0
        assert stability.min_weight_change == pytest.approx(0.5)

    def test_moderately_stable(self, analyzer):
        stability = analyzer.ranking_stability(_ranked(0.55, 0.45))

        assert stability.stability_label == "moderately_stable"
        assert stability.is_stable is True
        assert stability.stability_score == pytest.approx(50.0)

    def test_sensitive(self, analyzer):
        stability = analyzer.ranking_stability(_ranked(0.51, 0.49))

        assert stability.stability_label == "sensitive"
        assert stability.is_stable is False
        assert stability.stability_score == pytest.approx(10.0)
        assert "flip" in stability.recommendation

    def test_single_alternative(self, analyzer):
        stability = analyzer.ranking_stability(_ranked(1.0))

        assert stability.stability_label == "stable"
        assert stability.stability_score == 100.0
        assert stability.recommendation == "Only one alternative - ranking is trivially stable"


class TestCriticalThresholds:
    """Tests for the runner-up overtaking point."""

    def test_threshold_for_criterion_favouring_runner_up(self, analyzer, trade_off_input):
        """Only c2 favours the runner-up; its threshold is 0.25 + 0.25 / 0.5."""
        output = AHPEngine().calculate(trade_off_input)

        thresholds = analyzer.critical_thresholds(trade_off_input, output)

        assert len(thresholds) == 1
        threshold = thresholds[0]
        assert threshold.criterion_id == "c2"
        assert threshold.current_weight == pytest.approx(0.25)
        assert threshold.threshold_weight == pytest.approx(0.75)
        assert threshold.change_direction == "increase"
        assert threshold.affected_ranking == "Buy insurance overtakes Pay off loan"

    def test_dominant_leader_has_no_threshold(self, analyzer, two_by_two_input):
        """a1 wins under every criterion, so nothing can overtake it."""
        output = AHPEngine().calculate(two_by_two_input)
        assert analyzer.critical_thresholds(two_by_two_input, output) == []


class TestCriteriaSensitivity:
    """Tests for the ±10% weight perturbation."""

    def test_perturbation_moves_leader(self, analyzer, trade_off_input):
        output = AHPEngine().calculate(trade_off_input)

        items = {item.criterion_id: item for item in
                 analyzer.criteria_sensitivity(trade_off_input, output)}

        # c1 favours the leader, c2 the runner-up
        assert items["c1"].impact_if_increase > 0
        assert items["c1"].impact_if_decrease < 0
        assert items["c2"].impact_if_increase < 0
        assert items["c2"].impact_if_decrease > 0
        assert items["c1"].criterion_name == "Cost"
        assert items["c1"].current_weight == pytest.approx(0.75)

    def test_sorted_and_scored(self, analyzer, trade_off_input):
        output = AHPEngine().calculate(trade_off_input)

        items = analyzer.criteria_sensitivity(trade_off_input, output)

        scores = [item.sensitivity_score for item in items]
        assert scores == sorted(scores, reverse=True)
        for item in items:
            assert item.sensitivity_score == pytest.approx(
                abs(item.impact_if_increase) + abs(item.impact_if_decrease)
            )
            assert item.sensitivity_level == SensitivityLevel.LOW


class TestComparisonSensitivity:
    """Tests for judgement strength."""

    @pytest.mark.parametrize("value, impact", [
        (1, 0.0),
        (5, 0.5),
        (9, 1.0),
        (1 / 9, 1.0),
        (1 / 3, 0.25),
    ])
    def test_comparison_impact(self, value, impact):
        assert comparison_impact(value) == pytest.approx(impact)

    def test_levels(self, analyzer, three_criteria_input):
        items = analyzer.comparison_sensitivity(three_criteria_input)

        assert [item.current_value for item in items] == [4.0, 2.0, 2.0]
        assert items[0].sensitivity_level == SensitivityLevel.HIGH
        assert items[1].ranking_impact == pytest.approx(0.125)
        assert items[1].sensitivity_level == SensitivityLevel.MEDIUM


class TestAnalyze:
    """Tests for the combined report."""

    def test_full_report(self, analyzer, trade_off_input):
        output = AHPEngine().calculate(trade_off_input)

        report = analyzer.analyze(trade_off_input, output)

        assert len(report.criteria_sensitivity) == 2
        assert len(report.comparison_sensitivity) == 1
        assert report.ranking_stability.stability_label == "highly_stable"
        assert len(report.critical_thresholds) == 1

    def test_model_accepts_json_shapes(self, trade_off_input):
        """The adapter takes the JSON forms a cached result comes back as."""
        model = GoalPrioritizationModel()
        output = model.engine.calculate(trade_off_input)

        report = model.analyze_sensitivity(
            trade_off_input.model_dump(mode="json"),
            output.model_dump(mode="json"),
        )

        assert report.critical_thresholds[0].threshold_weight == pytest.approx(0.75)
