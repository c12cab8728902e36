"""
Audit Logger

DESIGN DECISION: Every significant action of the model subsystem is logged.
This provides:
1. Complete traceability of every model execution
2. Debugging capability when a pipeline fails
3. Input/output snapshots for replaying a decision

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_dss.audit.storage import AuditStorageInterface
from finance_dss.models.audit import AuditEvent, AuditEventBuilder
from finance_dss.models.execution import ExecutionMetadata


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog for local logging.

    Called once at startup. JSON output for production, a readable
    console renderer for development.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_model_toggled(self, model_name: str, enabled: bool) -> None:
        """Log a model being enabled or disabled."""
        await self.log(AuditEventBuilder.model_toggled(model_name, enabled))

    async def log_execution(
        self,
        metadata: ExecutionMetadata,
        correlation_id: Optional[UUID] = None,
        validation_failed: bool = False,
    ) -> None:
        """Log a finished model execution (any status)."""
        await self.log(AuditEventBuilder.execution_finished(
            metadata,
            correlation_id=correlation_id,
            validation_failed=validation_failed,
        ))

    async def log_cache_hit(
        self,
        model_name: str,
        cache_key: str,
        execution_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.cache_hit(
            model_name=model_name,
            cache_key=cache_key,
            execution_id=execution_id,
            correlation_id=correlation_id,
        ))

    async def log_cache_error(
        self,
        model_name: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.cache_error(
            model_name=model_name,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_pipeline_started(
        self,
        requested: list[str],
        ordered: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_started(
            requested=requested,
            ordered=ordered,
            correlation_id=correlation_id,
        ))

    async def log_pipeline_completed(
        self,
        executed: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_completed(
            executed=executed,
            correlation_id=correlation_id,
        ))

    async def log_pipeline_failed(
        self,
        model_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_failed(
            model_name=model_name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_pipeline_cancelled(
        self,
        remaining: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_cancelled(
            remaining=remaining,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a pipeline run).
    Pass it through all subsequent operations.
    """
    return uuid4()
