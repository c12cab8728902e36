"""
Sensitivity Analysis

Answers "how much would the answer change if my judgements were a
little different?" for a finished AHP run:

- criteria sensitivity: move each criterion weight by ±10%, renormalise,
  and measure the change in the leader's global priority
- comparison sensitivity: how far each criteria judgement is from
  indifference (1) on the 1-9 scale
- ranking stability: driven by the gap between rank 1 and rank 2
- critical thresholds: the weight at which the runner-up would overtake
  the leader, for criteria where the runner-up scores better locally
"""

import structlog

from finance_dss.models.ahp import (
    AHPInput,
    AHPOutput,
    ComparisonSensitivityItem,
    CriteriaSensitivityItem,
    CriticalThreshold,
    RankingStabilityResult,
    SensitivityLevel,
    SensitivityResult,
)


logger = structlog.get_logger(__name__)


WEIGHT_PERTURBATION = 0.10

HIGH_STABILITY_GAP = 0.15
MODERATE_STABILITY_GAP = 0.05


def _level(score: float, high: float, medium: float) -> SensitivityLevel:
    if score > high:
        return SensitivityLevel.HIGH
    if score > medium:
        return SensitivityLevel.MEDIUM
    return SensitivityLevel.LOW


class SensitivityAnalyzer:
    """Robustness report for one AHP input and its output."""

    def analyze(self, ahp_input: AHPInput, output: AHPOutput) -> SensitivityResult:
        result = SensitivityResult(
            criteria_sensitivity=self.criteria_sensitivity(ahp_input, output),
            comparison_sensitivity=self.comparison_sensitivity(ahp_input),
            ranking_stability=self.ranking_stability(output),
            critical_thresholds=self.critical_thresholds(ahp_input, output),
        )

        logger.debug(
            "sensitivity_analyzed",
            stability=result.ranking_stability.stability_label,
            thresholds=len(result.critical_thresholds),
        )
        return result

    def criteria_sensitivity(
        self,
        ahp_input: AHPInput,
        output: AHPOutput,
    ) -> list[CriteriaSensitivityItem]:
        """Sorted by sensitivity score, most sensitive first."""
        if not output.ranking:
            return []

        leader = output.ranking[0].alternative_id
        items = []

        for criterion in ahp_input.criteria:
            increase = self._simulate_weight_change(
                ahp_input, output, criterion.id, WEIGHT_PERTURBATION, leader
            )
            decrease = self._simulate_weight_change(
                ahp_input, output, criterion.id, -WEIGHT_PERTURBATION, leader
            )
            score = abs(increase) + abs(decrease)

            items.append(CriteriaSensitivityItem(
                criterion_id=criterion.id,
                criterion_name=criterion.name,
                current_weight=output.criteria_weights.get(criterion.id, 0.0),
                impact_if_increase=increase,
                impact_if_decrease=decrease,
                sensitivity_score=score,
                sensitivity_level=_level(score, high=0.10, medium=0.05),
            ))

        return sorted(items, key=lambda item: item.sensitivity_score, reverse=True)

    def _simulate_weight_change(
        self,
        ahp_input: AHPInput,
        output: AHPOutput,
        criterion_id: str,
        change: float,
        alternative_id: str,
    ) -> float:
        """New global priority of `alternative_id` minus the current one."""
        modified = {
            cid: weight * (1 + change) if cid == criterion_id else weight
            for cid, weight in output.criteria_weights.items()
        }
        total = sum(modified.values())

        new_priority = sum(
            modified.get(c.id, 0.0) / total
            * output.local_priorities.get(c.id, {}).get(alternative_id, 0.0)
            for c in ahp_input.criteria
        )
        return new_priority - output.alternative_priorities.get(alternative_id, 0.0)

    def comparison_sensitivity(
        self,
        ahp_input: AHPInput,
    ) -> list[ComparisonSensitivityItem]:
        """One item per criteria judgement, strongest first."""
        items = [
            ComparisonSensitivityItem(
                element_a=comp.element_a,
                element_b=comp.element_b,
                current_value=comp.value,
                ranking_impact=comparison_impact(comp.value),
                sensitivity_level=_level(
                    comparison_impact(comp.value), high=0.15, medium=0.08
                ),
            )
            for comp in ahp_input.criteria_comparisons
        ]
        return sorted(items, key=lambda item: item.ranking_impact, reverse=True)

    def ranking_stability(self, output: AHPOutput) -> RankingStabilityResult:
        if len(output.ranking) < 2:
            return RankingStabilityResult(
                is_stable=True,
                stability_label="stable",
                stability_score=100.0,
                min_weight_change=0.0,
                top_two_gap=0.0,
                recommendation="Only one alternative - ranking is trivially stable",
            )

        gap = output.ranking[0].priority - output.ranking[1].priority

        if gap > HIGH_STABILITY_GAP:
            stable, label = True, "highly_stable"
            recommendation = "Ranking is highly stable. Top choice is clearly dominant."
        elif gap > MODERATE_STABILITY_GAP:
            stable, label = True, "moderately_stable"
            recommendation = (
                "Ranking is moderately stable. Consider reviewing close alternatives."
            )
        else:
            stable, label = False, "sensitive"
            recommendation = (
                "Ranking is sensitive. Small changes in judgments could flip the top choice."
            )

        return RankingStabilityResult(
            is_stable=stable,
            stability_label=label,
            stability_score=max(0.0, min(100.0, gap * 500)),
            min_weight_change=gap * 2,
            top_two_gap=gap,
            recommendation=recommendation,
        )

    def critical_thresholds(
        self,
        ahp_input: AHPInput,
        output: AHPOutput,
    ) -> list[CriticalThreshold]:
        if len(output.ranking) < 2:
            return []

        top, second = output.ranking[0], output.ranking[1]
        gap = top.priority - second.priority
        thresholds = []

        for criterion in ahp_input.criteria:
            local = output.local_priorities.get(criterion.id, {})
            top_local = local.get(top.alternative_id, 0.0)
            second_local = local.get(second.alternative_id, 0.0)

            local_gap = second_local - top_local
            if local_gap <= 0:
                continue

            weight = output.criteria_weights.get(criterion.id, 0.0)
            threshold = weight + gap / local_gap
            if 0 < threshold < 1:
                thresholds.append(CriticalThreshold(
                    criterion_id=criterion.id,
                    current_weight=weight,
                    threshold_weight=threshold,
                    change_direction="increase",
                    affected_ranking=(
                        f"{second.alternative_name} overtakes {top.alternative_name}"
                    ),
                ))

        return thresholds


def comparison_impact(value: float) -> float:
    """Distance of a judgement from 1 on the 1-9 scale, normalised to [0, 1]."""
    if value >= 1:
        return (value - 1) / 8.0
    return (1 / value - 1) / 8.0
