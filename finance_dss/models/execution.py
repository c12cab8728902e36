"""
Execution Models for the Model-Based Management Subsystem

These models describe what the registry knows about a decision model
and what the orchestrator records every time one runs.

DESIGN DECISION: The orchestrator never looks inside model inputs or
outputs. They travel as opaque values; only the metadata around them
has a fixed schema.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class ExecutionStatus(str, Enum):
    """Final status of one model execution."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ModelCategory(str, Enum):
    """
    Category inferred from how many models a model depends on.

    core:       no dependencies
    supporting: one or two dependencies
    advanced:   three or more (integrates several models)
    """
    CORE = "core"
    SUPPORTING = "supporting"
    ADVANCED = "advanced"

    @classmethod
    def from_dependencies(cls, dependencies: list[str]) -> "ModelCategory":
        if not dependencies:
            return cls.CORE
        if len(dependencies) >= 3:
            return cls.ADVANCED
        return cls.SUPPORTING


# =============================================================================
# REGISTRY METADATA
# =============================================================================

DEFAULT_MODEL_VERSION = "1.0.0"


class RegistryMetadata(BaseModel):
    """
    Denormalized record the registry keeps per registered model.

    Callers always receive a copy; mutating it has no effect on the registry.
    """

    name: str = Field(..., min_length=1)
    description: str = ""
    version: str = Field(
        default=DEFAULT_MODEL_VERSION,
        description="Models do not self-report a version yet"
    )
    dependencies: list[str] = Field(default_factory=list)
    category: ModelCategory = ModelCategory.CORE
    is_enabled: bool = True
    average_exec_time_ms: float = Field(
        default=0.0,
        ge=0.0,
        description="Exponential moving average of execution time"
    )
    total_executions: int = Field(default=0, ge=0)


class DependencyNode(BaseModel):
    """One node of a dependency tree (for visualization/debugging)."""

    name: str
    dependencies: list["DependencyNode"] = Field(default_factory=list)


# =============================================================================
# EXECUTION RECORDS
# =============================================================================

class ExecutionMetadata(BaseModel):
    """
    Audit record for one model execution.

    Built by the orchestrator while the model runs and frozen once the
    execution finishes.
    """
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str
    execution_id: UUID = Field(default_factory=uuid4)
    start_time: datetime
    end_time: datetime
    duration_ms: float = Field(ge=0.0)
    status: ExecutionStatus
    error_message: Optional[str] = None

    # JSON snapshots (for audit/replay)
    input_snapshot: Optional[str] = None
    output_snapshot: Optional[str] = None

    # Non-fatal problems (e.g. the result could not be cached)
    warnings: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


class ModelResult(BaseModel):
    """
    Output of a model paired with its execution metadata.

    This is the unit stored in the result cache and returned to callers.
    """

    output: Any = None
    metadata: ExecutionMetadata
