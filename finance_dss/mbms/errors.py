"""
Model subsystem exceptions.

Every error raised by the registry, resolver, cache and orchestrator
derives from MBMSError, so callers can catch the whole family at once
or single out the case they care about.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from finance_dss.models.execution import ModelResult


class MBMSError(Exception):
    """Base exception for the model-based management subsystem."""
    pass


# =============================================================================
# REGISTRY
# =============================================================================

class RegistryError(MBMSError):
    """Base exception for registry operations."""

    def __init__(self, model_name: str, message: str):
        super().__init__(message)
        self.model_name = model_name


class ModelNotFoundError(RegistryError):
    """Model (or a declared dependency) is not registered."""

    def __init__(self, model_name: str):
        super().__init__(model_name, f"model '{model_name}' not found in registry")


class MissingDependencyError(ModelNotFoundError):
    """A registered model declares a dependency that is not registered."""

    def __init__(self, model_name: str, dependency: str):
        RegistryError.__init__(
            self,
            dependency,
            f"model '{model_name}' depends on '{dependency}' which is not registered",
        )
        self.dependent = model_name


class ModelDisabledError(RegistryError):
    """Model exists but has been administratively disabled."""

    def __init__(self, model_name: str):
        super().__init__(model_name, f"model '{model_name}' is currently disabled")


class DuplicateModelError(RegistryError):
    """A model with the same name is already registered."""

    def __init__(self, model_name: str):
        super().__init__(model_name, f"model '{model_name}' is already registered")


class EmptyModelNameError(RegistryError):
    """Model reported an empty name."""

    def __init__(self):
        super().__init__("", "model name cannot be empty")


# =============================================================================
# RESOLVER
# =============================================================================

class CircularDependencyError(MBMSError):
    """Dependency graph contains a cycle."""

    def __init__(self, nodes: list[str]):
        super().__init__(f"circular dependency detected involving: {nodes}")
        self.nodes = nodes


# =============================================================================
# EXECUTION
# =============================================================================

class ExecutionError(MBMSError):
    """
    Base exception for a failed model run.

    `result` holds the ModelResult the orchestrator produced for the
    failed run (output None, metadata with status and error) when the
    error passed through the orchestrator.
    """

    def __init__(self, message: str, model_name: Optional[str] = None):
        super().__init__(message)
        self.model_name = model_name
        self.result: Optional["ModelResult"] = None


class ModelValidationError(ExecutionError):
    """Model rejected its input before execution."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        issues: Optional[list] = None,
    ):
        super().__init__(message, model_name)
        self.issues = issues or []


class ModelExecutionError(ExecutionError):
    """Model's own computation failed."""
    pass


class PipelineCancelledError(MBMSError):
    """Pipeline stopped because the caller cancelled it."""

    def __init__(self, completed: list[str], remaining: list[str]):
        super().__init__(
            f"pipeline execution cancelled before '{remaining[0]}'"
            if remaining else "pipeline execution cancelled"
        )
        self.completed = completed
        self.remaining = remaining


class PipelineStepError(MBMSError):
    """A pipeline step failed; carries the failing model and its error."""

    def __init__(self, model_name: str, cause: Exception):
        super().__init__(f"failed to execute model '{model_name}': {cause}")
        self.model_name = model_name
        self.cause = cause


# =============================================================================
# CACHE
# =============================================================================

class CacheUnavailableError(MBMSError):
    """
    Cache backend could not be reached.

    Never fatal: the orchestrator falls back to recomputing.
    """
    pass
