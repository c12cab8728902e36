"""
Abstract Model Subsystem Interfaces

DESIGN DECISION: We define abstract interfaces for decision models and
for the result cache. This allows us to:
1. Plug in new decision models without touching the orchestrator
2. Use an in-memory cache for tests and a shared Redis cache in production
3. Keep orchestration logic decoupled from any concrete model or backend

The orchestrator only ever talks to these abstractions.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Optional

from finance_dss.models.execution import ModelResult


class DecisionModel(ABC):
    """
    Contract every decision model must implement to be orchestrated.

    Inputs and outputs are opaque to the orchestrator. Each model checks
    the type of its own input in validate().
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique catalog key."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Short human-readable description."""
        pass

    @property
    def dependencies(self) -> list[str]:
        """
        Names of models whose output this model consumes.

        Leaf models have none. When run in a pipeline without an explicit
        input, a model receives {dependency_name: output} for these.
        """
        return []

    @abstractmethod
    async def validate(self, input: Any) -> None:
        """
        Check the input before execution.

        Raises:
            ModelValidationError: If the input is not acceptable
        """
        pass

    @abstractmethod
    async def execute(self, input: Any) -> Any:
        """
        Run the model. Assumes validate() already passed.

        Returns:
            The model output

        Raises:
            ModelExecutionError: If the computation fails
        """
        pass


class ResultCache(ABC):
    """
    Abstract interface for model result caches.

    get() returning None is a miss. A backend outage raises
    CacheUnavailableError instead, so callers can tell the two apart.
    """

    @abstractmethod
    async def set(self, key: str, result: ModelResult, ttl: timedelta) -> None:
        """
        Store a result for `ttl`.

        Raises:
            CacheUnavailableError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[ModelResult]:
        """
        Retrieve a result if present and not expired.

        Returns:
            The cached result, or None on a miss

        Raises:
            CacheUnavailableError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """Remove one entry (no error if it does not exist)."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry owned by this cache."""
        pass
