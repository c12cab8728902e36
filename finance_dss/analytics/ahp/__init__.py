"""
Analytic Hierarchy Process

Ranks financial goals from pairwise judgements, for one decision maker
or a group, and reports how robust the ranking is.
"""

from finance_dss.analytics.ahp.engine import (
    AHPEngine,
    GoalPrioritizationModel,
    coerce_input,
)
from finance_dss.analytics.ahp.group import GroupDecisionAggregator
from finance_dss.analytics.ahp.matrix import (
    build_matrix,
    consistency_ratio,
    priority_vector,
    random_index,
)
from finance_dss.analytics.ahp.ranking import create_ranking
from finance_dss.analytics.ahp.sensitivity import SensitivityAnalyzer

__all__ = [
    "AHPEngine",
    "GoalPrioritizationModel",
    "GroupDecisionAggregator",
    "SensitivityAnalyzer",
    "build_matrix",
    "coerce_input",
    "consistency_ratio",
    "create_ranking",
    "priority_vector",
    "random_index",
]
