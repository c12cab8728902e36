"""
Group Decision Aggregation

Runs AHP for every decision maker, combines their results and measures
how much they agree.

AGGREGATION:
- geometric_mean (default): the recommended combination for ratio-scale
  judgements
- arithmetic_mean
- weighted: judge-weighted mean
Criteria weights, local priorities and global priorities all use the
selected method.
Every aggregated vector is renormalised to sum to 1. The aggregated
consistency ratio is the mean of the individual ratios.

CONSENSUS:
- criteria consensus = 1 - min(1, mean coefficient of variation of the
  criteria weights across judges)
- ranking consensus = share of judge pairs that pick the same top
  alternative
- consensus index = mean of the two
"""

from typing import TYPE_CHECKING

import numpy as np
import structlog

from finance_dss.analytics.ahp.ranking import create_ranking
from finance_dss.mbms.errors import ModelValidationError
from finance_dss.models.ahp import (
    AggregationMethod,
    AHPOutput,
    ConsensusLevel,
    ConsensusMetrics,
    DecisionMakerInput,
    DisagreementItem,
    GroupDecisionInput,
    GroupDecisionOutput,
    IndividualResult,
)

if TYPE_CHECKING:
    from finance_dss.analytics.ahp.engine import AHPEngine


logger = structlog.get_logger(__name__)


HIGH_CONSENSUS = 0.8
MEDIUM_CONSENSUS = 0.6

# Cross-judge variance of a criterion weight
DISAGREEMENT_VARIANCE = 0.01
MEDIUM_DISAGREEMENT = 0.02
HIGH_DISAGREEMENT = 0.05

_RECOMMENDATIONS = {
    ConsensusLevel.HIGH: "Strong agreement among decision makers. Group decision is reliable.",
    ConsensusLevel.MEDIUM: "Moderate agreement. Consider discussing areas of disagreement.",
    ConsensusLevel.LOW: (
        "Significant disagreement. Recommend facilitated discussion before finalizing."
    ),
}


class GroupDecisionAggregator:
    """Combines several decision makers' AHP results into one."""

    def __init__(self, engine: "AHPEngine"):
        self._engine = engine

    def aggregate(self, group_input: GroupDecisionInput) -> GroupDecisionOutput:
        """
        Raises:
            ModelValidationError: If there are no decision makers, one of
                them supplied an invalid input (message names the judge), or
                the judges do not share the same criteria and alternatives
        """
        makers = group_input.decision_makers
        if not makers:
            raise ModelValidationError("at least one decision maker required")

        individual = [self._run_individual(dm) for dm in makers]
        _check_same_hierarchy(makers)

        if len(individual) == 1:
            only = individual[0]
            return GroupDecisionOutput(
                aggregated_result=only.output,
                individual_results=[only],
                consensus_metrics=ConsensusMetrics(
                    consensus_index=1.0,
                    criteria_consensus=1.0,
                    ranking_consensus=1.0,
                    consensus_level=ConsensusLevel.HIGH,
                    recommendation="Single decision maker - no consensus needed",
                ),
            )

        aggregated = self._aggregate_results(
            makers[0], individual, group_input.aggregation_method
        )
        metrics = self._consensus_metrics(individual)
        disagreements = self._analyze_disagreements(makers[0], individual)

        logger.info(
            "group_decision_aggregated",
            decision_makers=len(individual),
            method=group_input.aggregation_method.value,
            consensus_index=round(metrics.consensus_index, 4),
            disagreements=len(disagreements),
        )

        return GroupDecisionOutput(
            aggregated_result=aggregated,
            individual_results=individual,
            consensus_metrics=metrics,
            disagreement_analysis=disagreements,
        )

    def _run_individual(self, dm: DecisionMakerInput) -> IndividualResult:
        try:
            output = self._engine.calculate(dm.input)
        except ModelValidationError as e:
            raise ModelValidationError(
                f"validation failed for {dm.decision_maker_id}: {e}",
                issues=e.issues,
            ) from e

        return IndividualResult(
            decision_maker_id=dm.decision_maker_id,
            decision_maker_name=dm.decision_maker_name,
            output=output,
            weight=dm.weight if dm.weight > 0 else 1.0,
        )

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def _aggregate_results(
        self,
        reference: DecisionMakerInput,
        results: list[IndividualResult],
        method: AggregationMethod,
    ) -> AHPOutput:
        weights = [r.weight for r in results]

        criteria_weights = _aggregate_vectors(
            [r.output.criteria_weights for r in results], method, weights
        )
        priorities = _aggregate_vectors(
            [r.output.alternative_priorities for r in results], method, weights
        )

        local_priorities = {
            criterion_id: _aggregate_vectors(
                [r.output.local_priorities[criterion_id] for r in results],
                method,
                weights,
            )
            for criterion_id in results[0].output.local_priorities
        }

        mean_cr = float(np.mean([r.output.consistency_ratio for r in results]))

        alternatives = [
            alt.model_copy(update={
                "global_priority": priorities[alt.id],
                "local_priorities": {
                    criterion_id: local_priorities[criterion_id][alt.id]
                    for criterion_id in local_priorities
                },
            })
            for alt in reference.input.alternatives
        ]

        return AHPOutput.build(
            alternative_priorities=priorities,
            criteria_weights=criteria_weights,
            local_priorities=local_priorities,
            consistency_ratio=mean_cr,
            ranking=create_ranking(reference.input.alternatives, priorities),
            alternatives=alternatives,
        )

    # -------------------------------------------------------------------------
    # Consensus
    # -------------------------------------------------------------------------

    def _consensus_metrics(self, results: list[IndividualResult]) -> ConsensusMetrics:
        criteria_consensus = 1.0 - min(1.0, _mean_cv(
            [r.output.criteria_weights for r in results]
        ))
        ranking_consensus = _top_choice_agreement(results)
        index = (criteria_consensus + ranking_consensus) / 2

        if index >= HIGH_CONSENSUS:
            level = ConsensusLevel.HIGH
        elif index >= MEDIUM_CONSENSUS:
            level = ConsensusLevel.MEDIUM
        else:
            level = ConsensusLevel.LOW

        return ConsensusMetrics(
            consensus_index=index,
            criteria_consensus=criteria_consensus,
            ranking_consensus=ranking_consensus,
            consensus_level=level,
            recommendation=_RECOMMENDATIONS[level],
        )

    def _analyze_disagreements(
        self,
        reference: DecisionMakerInput,
        results: list[IndividualResult],
    ) -> list[DisagreementItem]:
        names = {c.id: c.name for c in reference.input.criteria}
        items = []

        for criterion_id in results[0].output.criteria_weights:
            values = [r.output.criteria_weights[criterion_id] for r in results]
            variance = _population_variance(values)
            if variance <= DISAGREEMENT_VARIANCE:
                continue

            if variance > HIGH_DISAGREEMENT:
                level = "high"
            elif variance > MEDIUM_DISAGREEMENT:
                level = "medium"
            else:
                level = "low"

            low, high = min(values), max(values)
            items.append(DisagreementItem(
                element_id=criterion_id,
                element_name=names.get(criterion_id, ""),
                variance=variance,
                min_value=low,
                max_value=high,
                disagreement_level=level,
                # The judges holding the extreme weights
                affected_by=[
                    r.decision_maker_id
                    for r, value in zip(results, values)
                    if value in (low, high)
                ],
            ))

        return items


# =============================================================================
# HELPERS
# =============================================================================

def _check_same_hierarchy(makers: list[DecisionMakerInput]) -> None:
    reference = makers[0]
    criteria = {c.id for c in reference.input.criteria}
    alternatives = {a.id for a in reference.input.alternatives}

    for dm in makers[1:]:
        if {c.id for c in dm.input.criteria} != criteria:
            raise ModelValidationError(
                f"decision maker {dm.decision_maker_id}: "
                f"criteria differ from {reference.decision_maker_id}"
            )
        if {a.id for a in dm.input.alternatives} != alternatives:
            raise ModelValidationError(
                f"decision maker {dm.decision_maker_id}: "
                f"alternatives differ from {reference.decision_maker_id}"
            )


def geometric_mean(values: list[float]) -> float:
    """n-th root of the product of the positive values (n counts all values)."""
    if not values:
        return 0.0
    product = float(np.prod([v for v in values if v > 0]))
    return product ** (1.0 / len(values))


def weighted_mean(values: list[float], weights: list[float]) -> float:
    total = sum(weights)
    if not values or len(values) != len(weights) or total == 0:
        return 0.0
    return sum(v * w for v, w in zip(values, weights)) / total


def _combine(values: list[float], method: AggregationMethod, weights: list[float]) -> float:
    if method == AggregationMethod.ARITHMETIC_MEAN:
        return float(np.mean(values))
    if method == AggregationMethod.WEIGHTED:
        return weighted_mean(values, weights)
    return geometric_mean(values)


def _aggregate_vectors(
    vectors: list[dict[str, float]],
    method: AggregationMethod,
    weights: list[float],
) -> dict[str, float]:
    """Combine per-judge vectors key by key, then renormalise to sum 1."""
    combined = {
        key: _combine([v.get(key, 0.0) for v in vectors], method, weights)
        for key in vectors[0]
    }
    total = sum(combined.values())
    if total <= 0:
        return combined
    return {key: value / total for key, value in combined.items()}


def _population_variance(values: list[float]) -> float:
    if len(values) < 2 or min(values) == max(values):
        return 0.0
    return float(np.var(values))


def _mean_cv(vectors: list[dict[str, float]]) -> float:
    """Mean coefficient of variation across keys (population std / mean)."""
    keys = list(vectors[0])
    if len(vectors) < 2 or not keys:
        return 0.0

    total = 0.0
    for key in keys:
        values = [v.get(key, 0.0) for v in vectors]
        mean = float(np.mean(values))
        if mean > 0:
            total += _population_variance(values) ** 0.5 / mean
    return total / len(keys)


def _top_choice_agreement(results: list[IndividualResult]) -> float:
    tops = [r.output.ranking[0].alternative_id for r in results if r.output.ranking]
    pairs = 0
    agreements = 0
    for i in range(len(tops) - 1):
        for j in range(i + 1, len(tops)):
            pairs += 1
            if tops[i] == tops[j]:
                agreements += 1
    return agreements / pairs if pairs else 1.0
