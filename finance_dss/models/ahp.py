"""
AHP Data Models

Schemas for the Analytic Hierarchy Process: the judgements that go in,
the priorities and ranking that come out, and the group decision and
sensitivity reports built on top of a result.

Pairwise judgements use Saaty's 1-9 intensity scale:
    1: equal importance
    3: moderate importance
    5: strong importance
    7: very strong importance
    9: extreme importance
    2, 4, 6, 8: intermediate values
Reciprocals (1/3, 1/5, ...) mean the second element dominates.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


MIN_JUDGEMENT = 1.0 / 9.0
MAX_JUDGEMENT = 9.0
CONSISTENCY_THRESHOLD = 0.10


# =============================================================================
# INPUT MODELS
# =============================================================================

class Criteria(BaseModel):
    """A criterion goals are judged against (e.g. urgency, impact)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(default="", max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)


class Alternative(BaseModel):
    """
    An option being ranked (typically a financial goal).

    global_priority and local_priorities are filled in on the copies
    returned with a result; inputs leave them empty.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(default="", max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    global_priority: Optional[float] = None
    local_priorities: dict[str, float] = Field(default_factory=dict)


class PairwiseComparison(BaseModel):
    """
    One judgement: element_a is `value` times as important as element_b.

    The value range is enforced by the AHP validator rather than here so
    that an out-of-range judgement is reported with the other issues.
    """

    element_a: str = Field(..., min_length=1)
    element_b: str = Field(..., min_length=1)
    value: float


class AHPInput(BaseModel):
    """Everything one decision maker supplies for an AHP run."""

    criteria: list[Criteria] = Field(default_factory=list)
    alternatives: list[Alternative] = Field(default_factory=list)
    criteria_comparisons: list[PairwiseComparison] = Field(default_factory=list)
    alternative_comparisons: dict[str, list[PairwiseComparison]] = Field(
        default_factory=dict,
        description="Criterion id -> comparisons of alternatives under it"
    )


# =============================================================================
# OUTPUT MODELS
# =============================================================================

class ComparisonMatrix(BaseModel):
    """Square reciprocal matrix with one row/column per element."""

    elements: list[str]
    matrix: list[list[float]]

    @property
    def size(self) -> int:
        return len(self.elements)


class RankItem(BaseModel):
    """Position of one alternative in the final ranking (rank is 1-based)."""

    alternative_id: str
    alternative_name: str = ""
    priority: float
    rank: int = Field(ge=1)


class AHPOutput(BaseModel):
    """
    Result of an AHP run.

    Priorities and weights each sum to 1 (within floating tolerance).
    """

    alternative_priorities: dict[str, float]
    criteria_weights: dict[str, float]
    local_priorities: dict[str, dict[str, float]] = Field(
        description="Criterion id -> alternative id -> local priority"
    )
    consistency_ratio: float
    is_consistent: bool
    ranking: list[RankItem]
    alternatives: list[Alternative] = Field(
        default_factory=list,
        description="Alternatives annotated with their computed priorities"
    )

    @classmethod
    def build(
        cls,
        alternative_priorities: dict[str, float],
        criteria_weights: dict[str, float],
        local_priorities: dict[str, dict[str, float]],
        consistency_ratio: float,
        ranking: list[RankItem],
        alternatives: Optional[list[Alternative]] = None,
    ) -> "AHPOutput":
        """Assemble an output, deriving is_consistent from the ratio."""
        return cls(
            alternative_priorities=alternative_priorities,
            criteria_weights=criteria_weights,
            local_priorities=local_priorities,
            consistency_ratio=consistency_ratio,
            is_consistent=consistency_ratio < CONSISTENCY_THRESHOLD,
            ranking=ranking,
            alternatives=alternatives or [],
        )

    @property
    def top_alternative(self) -> Optional[RankItem]:
        return self.ranking[0] if self.ranking else None


# =============================================================================
# GROUP DECISION MODELS
# =============================================================================

class AggregationMethod(str, Enum):
    """How judges' priorities are combined."""
    GEOMETRIC_MEAN = "geometric_mean"  # Preferred for ratio-scale judgements
    ARITHMETIC_MEAN = "arithmetic_mean"
    WEIGHTED = "weighted"


class ConsensusLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DecisionMakerInput(BaseModel):
    """One judge's AHP input plus an optional expertise weight."""

    decision_maker_id: str = Field(..., min_length=1)
    decision_maker_name: str = ""
    input: AHPInput
    weight: float = Field(
        default=0.0,
        ge=0.0,
        description="Expertise weight; 0 means default weight 1.0"
    )


class GroupDecisionInput(BaseModel):
    """Judgements from several decision makers on the same hierarchy."""

    decision_makers: list[DecisionMakerInput] = Field(default_factory=list)
    aggregation_method: AggregationMethod = AggregationMethod.GEOMETRIC_MEAN


class IndividualResult(BaseModel):
    decision_maker_id: str
    decision_maker_name: str = ""
    output: AHPOutput
    weight: float


class ConsensusMetrics(BaseModel):
    """Agreement among decision makers (all scores in [0, 1])."""

    consensus_index: float
    criteria_consensus: float
    ranking_consensus: float
    consensus_level: ConsensusLevel
    recommendation: str


class DisagreementItem(BaseModel):
    """A criterion whose weight varies notably across judges."""

    type: str = "criteria_weight"
    element_id: str
    element_name: str = ""
    variance: float
    min_value: float
    max_value: float
    disagreement_level: str
    affected_by: list[str] = Field(
        default_factory=list,
        description="Decision makers furthest from the group mean"
    )


class GroupDecisionOutput(BaseModel):
    aggregated_result: AHPOutput
    individual_results: list[IndividualResult]
    consensus_metrics: ConsensusMetrics
    disagreement_analysis: list[DisagreementItem] = Field(default_factory=list)


# =============================================================================
# SENSITIVITY MODELS
# =============================================================================

class SensitivityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CriteriaSensitivityItem(BaseModel):
    """Effect of a ±10% weight change of one criterion on the leader."""

    criterion_id: str
    criterion_name: str = ""
    current_weight: float
    impact_if_increase: float
    impact_if_decrease: float
    sensitivity_score: float
    sensitivity_level: SensitivityLevel


class ComparisonSensitivityItem(BaseModel):
    """How strongly one criteria judgement departs from indifference."""

    element_a: str
    element_b: str
    current_value: float
    ranking_impact: float
    sensitivity_level: SensitivityLevel


class RankingStabilityResult(BaseModel):
    is_stable: bool
    stability_label: str
    stability_score: float = Field(ge=0.0, le=100.0)
    min_weight_change: float
    top_two_gap: float
    recommendation: str


class CriticalThreshold(BaseModel):
    """Weight at which the runner-up would overtake the leader."""

    criterion_id: str
    current_weight: float
    threshold_weight: float
    change_direction: str
    affected_ranking: str


class SensitivityResult(BaseModel):
    criteria_sensitivity: list[CriteriaSensitivityItem] = Field(default_factory=list)
    comparison_sensitivity: list[ComparisonSensitivityItem] = Field(default_factory=list)
    ranking_stability: RankingStabilityResult
    critical_thresholds: list[CriticalThreshold] = Field(default_factory=list)
