"""
Audit Models for Finance DSS

Every significant action of the model subsystem is logged for audit purposes.
This provides:
1. Complete traceability of which model ran, with what, and how it ended
2. Debugging information when a pipeline fails
3. Input/output snapshots for replaying a decision

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from finance_dss.models.execution import ExecutionMetadata


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Registry
    MODEL_ENABLED = "model_enabled"
    MODEL_DISABLED = "model_disabled"

    # Single execution
    MODEL_EXECUTION_SUCCEEDED = "model_execution_succeeded"
    MODEL_EXECUTION_FAILED = "model_execution_failed"
    MODEL_EXECUTION_CANCELLED = "model_execution_cancelled"
    MODEL_VALIDATION_FAILED = "model_validation_failed"

    # Cache
    CACHE_HIT = "cache_hit"
    CACHE_ERROR = "cache_error"

    # Pipeline
    PIPELINE_STARTED = "pipeline_started"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"
    PIPELINE_CANCELLED = "pipeline_cancelled"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """
    model_config = ConfigDict(protected_namespaces=())

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which model / execution is this about?
    model_name: Optional[str] = Field(
        default=None,
        description="Decision model the event relates to"
    )
    execution_id: Optional[UUID] = Field(
        default=None,
        description="Execution the event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g. all steps of one pipeline)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "model_name": self.model_name,
            "execution_id": str(self.execution_id) if self.execution_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_record(self) -> list:
        """
        Flatten into a row for tabular audit stores.

        Columns in order:
        [event_id, timestamp, event_type, severity, model_name, execution_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.model_name or "",
            str(self.execution_id) if self.execution_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.model_toggled("goal_prioritization", enabled=False)
        event = AuditEventBuilder.execution_finished(metadata, correlation_id)
    """

    @staticmethod
    def model_toggled(model_name: str, enabled: bool) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.MODEL_ENABLED if enabled else AuditEventType.MODEL_DISABLED
            ),
            severity=AuditSeverity.INFO if enabled else AuditSeverity.WARNING,
            model_name=model_name,
            description=f"Model {'enabled' if enabled else 'disabled'}: {model_name}",
        )

    @staticmethod
    def execution_finished(
        metadata: ExecutionMetadata,
        correlation_id: Optional[UUID] = None,
        validation_failed: bool = False,
    ) -> AuditEvent:
        """Event for a finished execution, typed by its final status."""
        if metadata.status.value == "success":
            event_type = AuditEventType.MODEL_EXECUTION_SUCCEEDED
            severity = AuditSeverity.INFO
        elif metadata.status.value == "cancelled":
            event_type = AuditEventType.MODEL_EXECUTION_CANCELLED
            severity = AuditSeverity.WARNING
        elif validation_failed:
            event_type = AuditEventType.MODEL_VALIDATION_FAILED
            severity = AuditSeverity.WARNING
        else:
            event_type = AuditEventType.MODEL_EXECUTION_FAILED
            severity = AuditSeverity.ERROR

        return AuditEvent(
            event_type=event_type,
            severity=severity,
            model_name=metadata.model_name,
            execution_id=metadata.execution_id,
            correlation_id=correlation_id,
            description=(
                f"Model {metadata.model_name} finished with status "
                f"{metadata.status.value} in {metadata.duration_ms:.1f} ms"
            ),
            details={
                "duration_ms": metadata.duration_ms,
                "input_snapshot": metadata.input_snapshot,
                "output_snapshot": metadata.output_snapshot,
                "warnings": list(metadata.warnings),
            },
            error_message=metadata.error_message,
        )

    @staticmethod
    def cache_hit(
        model_name: str,
        cache_key: str,
        execution_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_HIT,
            severity=AuditSeverity.DEBUG,
            model_name=model_name,
            execution_id=execution_id,
            correlation_id=correlation_id,
            description=f"Cached result reused for {model_name}",
            details={"cache_key": cache_key},
        )

    @staticmethod
    def cache_error(
        model_name: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_ERROR,
            severity=AuditSeverity.WARNING,
            model_name=model_name,
            correlation_id=correlation_id,
            description=f"Cache {operation} failed for {model_name}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def pipeline_started(
        requested: list[str],
        ordered: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_STARTED,
            correlation_id=correlation_id,
            description=f"Pipeline started with {len(ordered)} models",
            details={
                "requested": requested,
                "ordered": ordered,
            },
        )

    @staticmethod
    def pipeline_completed(
        executed: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_COMPLETED,
            correlation_id=correlation_id,
            description=f"Pipeline completed: {len(executed)} models executed",
            details={"executed": executed},
        )

    @staticmethod
    def pipeline_failed(
        model_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_FAILED,
            severity=AuditSeverity.ERROR,
            model_name=model_name,
            correlation_id=correlation_id,
            description=f"Pipeline aborted at model {model_name}",
            error_message=error_message,
        )

    @staticmethod
    def pipeline_cancelled(
        remaining: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_CANCELLED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Pipeline cancelled with {len(remaining)} models not run",
            details={"remaining": remaining},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
