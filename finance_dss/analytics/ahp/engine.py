"""
AHP Decision Engine

Stateless pipeline:
    validate -> criteria matrix -> criteria weights
             -> per criterion alternative matrix -> local priorities
             -> global priorities -> ranking

The reported consistency ratio is that of the criteria matrix.

GoalPrioritizationModel wraps the engine in the DecisionModel contract
so the orchestrator can cache, audit and chain it like any other model.
"""

from collections.abc import Mapping
from typing import Any, Optional

import numpy as np
import structlog
from pydantic import ValidationError

from finance_dss.analytics.ahp.group import GroupDecisionAggregator
from finance_dss.analytics.ahp.matrix import (
    build_matrix,
    consistency_ratio,
    priority_vector,
)
from finance_dss.analytics.ahp.ranking import create_ranking
from finance_dss.analytics.ahp.sensitivity import SensitivityAnalyzer
from finance_dss.mbms.errors import ModelValidationError
from finance_dss.mbms.interface import DecisionModel
from finance_dss.models.ahp import (
    AHPInput,
    AHPOutput,
    ComparisonMatrix,
    GroupDecisionInput,
    GroupDecisionOutput,
    SensitivityResult,
)
from finance_dss.validation import AHPInputValidator


logger = structlog.get_logger(__name__)


class AHPEngine:
    """
    Computes AHP priorities for one decision maker.

    Holds no per-run state; one instance serves every request.
    """

    def __init__(self, validator: Optional[AHPInputValidator] = None):
        self._validator = validator or AHPInputValidator()

    def check(self, ahp_input: AHPInput) -> None:
        """
        Validate the input completely before any computation.

        Raises:
            ModelValidationError: Listing every error found
        """
        result = self._validator.validate(ahp_input)
        if not result.is_valid:
            errors = result.errors
            raise ModelValidationError(
                "; ".join(issue.message for issue in errors),
                issues=errors,
            )

    def calculate(self, ahp_input: AHPInput) -> AHPOutput:
        """Validate and compute in one step."""
        self.check(ahp_input)
        return self.compute(ahp_input)

    def comparison_matrix(
        self,
        ahp_input: AHPInput,
        criterion_id: Optional[str] = None,
    ) -> ComparisonMatrix:
        """
        The reciprocal matrix behind one step, for inspection.

        Args:
            criterion_id: None for the criteria matrix, otherwise the
                alternatives matrix under that criterion

        Raises:
            ModelValidationError: If the input is invalid or criterion_id
                is not one of its criteria
        """
        self.check(ahp_input)
        if criterion_id is None:
            elements = [c.id for c in ahp_input.criteria]
            comparisons = ahp_input.criteria_comparisons
        elif criterion_id not in {c.id for c in ahp_input.criteria}:
            raise ModelValidationError(f"unknown criterion: {criterion_id}")
        else:
            elements = [a.id for a in ahp_input.alternatives]
            comparisons = ahp_input.alternative_comparisons[criterion_id]

        matrix = build_matrix(elements, comparisons)
        return ComparisonMatrix(elements=elements, matrix=matrix.tolist())

    def compute(self, ahp_input: AHPInput) -> AHPOutput:
        """
        Run the AHP pipeline on an input that already passed check().

        Returns:
            AHPOutput with weights, local and global priorities, CR and ranking
        """
        criteria_ids = [c.id for c in ahp_input.criteria]
        alternative_ids = [a.id for a in ahp_input.alternatives]

        # Step 1: Criteria weights and consistency
        criteria_matrix = build_matrix(criteria_ids, ahp_input.criteria_comparisons)
        weights = priority_vector(criteria_matrix)
        cr = consistency_ratio(criteria_matrix, weights)

        # Step 2: Local priorities of alternatives under each criterion
        local = np.empty((len(criteria_ids), len(alternative_ids)))
        for row, criterion_id in enumerate(criteria_ids):
            alt_matrix = build_matrix(
                alternative_ids,
                ahp_input.alternative_comparisons[criterion_id],
            )
            local[row] = priority_vector(alt_matrix)

        # Step 3: Global priority = sum(weight_c * local_c)
        global_priorities = weights @ local

        criteria_weights = _to_dict(criteria_ids, weights)
        alternative_priorities = _to_dict(alternative_ids, global_priorities)
        local_priorities = {
            criterion_id: _to_dict(alternative_ids, local[row])
            for row, criterion_id in enumerate(criteria_ids)
        }

        # Step 4: Ranking
        ranking = create_ranking(ahp_input.alternatives, alternative_priorities)

        annotated = [
            alt.model_copy(update={
                "global_priority": alternative_priorities[alt.id],
                "local_priorities": {
                    criterion_id: local_priorities[criterion_id][alt.id]
                    for criterion_id in criteria_ids
                },
            })
            for alt in ahp_input.alternatives
        ]

        output = AHPOutput.build(
            alternative_priorities=alternative_priorities,
            criteria_weights=criteria_weights,
            local_priorities=local_priorities,
            consistency_ratio=cr,
            ranking=ranking,
            alternatives=annotated,
        )

        logger.debug(
            "ahp_calculated",
            criteria=len(criteria_ids),
            alternatives=len(alternative_ids),
            consistency_ratio=round(cr, 4),
            top=ranking[0].alternative_id if ranking else None,
        )
        return output


def _to_dict(ids: list[str], values: np.ndarray) -> dict[str, float]:
    return {element_id: float(value) for element_id, value in zip(ids, values)}


# =============================================================================
# MODEL ADAPTER
# =============================================================================

class GoalPrioritizationModel(DecisionModel):
    """
    AHP exposed as a registered decision model.

    Accepts an AHPInput, or any mapping that validates into one (which is
    what a cached or JSON-decoded input looks like).
    """

    def __init__(self, engine: Optional[AHPEngine] = None):
        self._engine = engine or AHPEngine()

    @property
    def name(self) -> str:
        return "goal_prioritization"

    @property
    def description(self) -> str:
        return "Analytic Hierarchy Process for prioritizing financial goals"

    @property
    def engine(self) -> AHPEngine:
        return self._engine

    async def validate(self, input: Any) -> None:
        self._engine.check(coerce_input(input))

    async def execute(self, input: Any) -> AHPOutput:
        return self._engine.compute(coerce_input(input))

    async def execute_group_decision(
        self,
        group_input: GroupDecisionInput,
    ) -> GroupDecisionOutput:
        """
        Aggregate several decision makers' judgements.

        Raises:
            ModelValidationError: If there are no decision makers or one
                of them supplied an invalid input
        """
        return GroupDecisionAggregator(self._engine).aggregate(group_input)

    def analyze_sensitivity(
        self,
        ahp_input: Any,
        output: Any,
    ) -> SensitivityResult:
        """
        How robust `output` is to changes in the criteria judgements.

        Both arguments may be models or their JSON-shaped mappings.
        """
        if not isinstance(output, AHPOutput):
            output = AHPOutput.model_validate(output)
        return SensitivityAnalyzer().analyze(coerce_input(ahp_input), output)


def coerce_input(input: Any) -> AHPInput:
    """
    Turn a model input into an AHPInput.

    Raises:
        ModelValidationError: If the input has the wrong type or shape
    """
    if isinstance(input, AHPInput):
        return input

    if isinstance(input, Mapping):
        try:
            return AHPInput.model_validate(input)
        except ValidationError as e:
            raise ModelValidationError(
                f"input does not match the AHP input schema: {e}"
            ) from e

    raise ModelValidationError(
        f"input must be an AHPInput or a mapping, got {type(input).__name__}"
    )
