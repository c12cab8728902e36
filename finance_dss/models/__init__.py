"""
Data Models Package

This package contains all Pydantic models used in Finance DSS.
All data flowing through the model subsystem must conform to these schemas.
"""

from finance_dss.models.ahp import (
    AggregationMethod,
    AHPInput,
    AHPOutput,
    Alternative,
    ComparisonMatrix,
    ComparisonSensitivityItem,
    ConsensusLevel,
    ConsensusMetrics,
    Criteria,
    CriteriaSensitivityItem,
    CriticalThreshold,
    DecisionMakerInput,
    DisagreementItem,
    GroupDecisionInput,
    GroupDecisionOutput,
    IndividualResult,
    PairwiseComparison,
    RankingStabilityResult,
    RankItem,
    SensitivityLevel,
    SensitivityResult,
)
from finance_dss.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_dss.models.execution import (
    DependencyNode,
    ExecutionMetadata,
    ExecutionStatus,
    ModelCategory,
    ModelResult,
    RegistryMetadata,
)
from finance_dss.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # AHP models
    "AggregationMethod",
    "AHPInput",
    "AHPOutput",
    "Alternative",
    "ComparisonMatrix",
    "ComparisonSensitivityItem",
    "ConsensusLevel",
    "ConsensusMetrics",
    "Criteria",
    "CriteriaSensitivityItem",
    "CriticalThreshold",
    "DecisionMakerInput",
    "DisagreementItem",
    "GroupDecisionInput",
    "GroupDecisionOutput",
    "IndividualResult",
    "PairwiseComparison",
    "RankingStabilityResult",
    "RankItem",
    "SensitivityLevel",
    "SensitivityResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Execution models
    "DependencyNode",
    "ExecutionMetadata",
    "ExecutionStatus",
    "ModelCategory",
    "ModelResult",
    "RegistryMetadata",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
