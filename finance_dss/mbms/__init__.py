"""
Model-Based Management Subsystem

Registry, dependency resolver and result caches that the orchestrator
uses to run decision models.
"""

from finance_dss.mbms.cache import MemoryResultCache, RedisResultCache
from finance_dss.mbms.errors import (
    CacheUnavailableError,
    CircularDependencyError,
    DuplicateModelError,
    EmptyModelNameError,
    ExecutionError,
    MBMSError,
    MissingDependencyError,
    ModelDisabledError,
    ModelExecutionError,
    ModelNotFoundError,
    ModelValidationError,
    PipelineCancelledError,
    PipelineStepError,
    RegistryError,
)
from finance_dss.mbms.interface import DecisionModel, ResultCache
from finance_dss.mbms.registry import ModelRegistry
from finance_dss.mbms.resolver import DependencyResolver

__all__ = [
    # Interfaces
    "DecisionModel",
    "ResultCache",
    # Components
    "DependencyResolver",
    "MemoryResultCache",
    "ModelRegistry",
    "RedisResultCache",
    # Exceptions
    "CacheUnavailableError",
    "CircularDependencyError",
    "DuplicateModelError",
    "EmptyModelNameError",
    "ExecutionError",
    "MBMSError",
    "MissingDependencyError",
    "ModelDisabledError",
    "ModelExecutionError",
    "ModelNotFoundError",
    "ModelValidationError",
    "PipelineCancelledError",
    "PipelineStepError",
    "RegistryError",
]
