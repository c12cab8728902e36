"""
Audit Storage

DESIGN DECISION: Audit persistence sits behind an abstract interface.
This allows us to:
1. Keep audit events in memory for tests and local runs
2. Append to a durable write-once store in production
3. Keep the orchestrator unaware of where events end up

Audit logs are append-only - we never delete or modify them.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from finance_dss.models.audit import AuditEvent, AuditEventType


class AuditStorageInterface(ABC):
    """Abstract interface for audit log storage."""

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one pipeline run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_model(
        self,
        model_name: str,
        event_type: Optional[AuditEventType] = None,
    ) -> list[AuditEvent]:
        """
        Get all events about one model, optionally of one type.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of events, most recent first
        """
        pass


class InMemoryAuditStorage(AuditStorageInterface):
    """Process-local audit log; events are lost on restart."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = asyncio.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        async with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        async with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_model(
        self,
        model_name: str,
        event_type: Optional[AuditEventType] = None,
    ) -> list[AuditEvent]:
        async with self._lock:
            return [
                e for e in self._events
                if e.model_name == model_name
                and (event_type is None or e.event_type == event_type)
            ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        async with self._lock:
            return list(reversed(self._events[-limit:])) if limit > 0 else []
