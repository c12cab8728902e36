"""Audit logging package."""

from finance_dss.audit.logger import AuditLogger, configure_logging, create_correlation_id
from finance_dss.audit.storage import AuditStorageInterface, InMemoryAuditStorage

__all__ = [
    "AuditLogger",
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "configure_logging",
    "create_correlation_id",
]
