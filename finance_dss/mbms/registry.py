"""
Model Registry

DESIGN DECISION: The registry is an explicit object built once at startup
and handed to every consumer. There is no module-level singleton.

All models are registered before the system accepts traffic. Dependencies
are NOT checked at registration time because a dependency may register
after its dependent; validate_registry() is the startup health check.

Thread safety: mutations take the write side of a read/write lock, lookups
the read side, so concurrent lookups never block each other.
"""

import structlog

from finance_dss.mbms.errors import (
    DuplicateModelError,
    EmptyModelNameError,
    MissingDependencyError,
    ModelDisabledError,
    ModelNotFoundError,
)
from finance_dss.mbms.interface import DecisionModel
from finance_dss.mbms.locking import ReadWriteLock
from finance_dss.models.execution import (
    DEFAULT_MODEL_VERSION,
    ModelCategory,
    RegistryMetadata,
)


logger = structlog.get_logger(__name__)


class ModelRegistry:
    """
    In-memory catalog of decision models and their metadata.

    Metadata handed out is always a copy, so callers cannot corrupt
    the registry's own records.
    """

    def __init__(self, execution_time_smoothing: float = 0.2):
        """
        Args:
            execution_time_smoothing: Weight of the newest observation in
                the running average execution time (0 < alpha <= 1).
        """
        if not 0.0 < execution_time_smoothing <= 1.0:
            raise ValueError("execution_time_smoothing must be in (0, 1]")

        self._models: dict[str, DecisionModel] = {}
        self._metadata: dict[str, RegistryMetadata] = {}
        self._lock = ReadWriteLock()
        self._alpha = execution_time_smoothing

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def register(self, model: DecisionModel) -> RegistryMetadata:
        """
        Add a model to the catalog.

        Returns:
            A copy of the metadata derived for the model

        Raises:
            EmptyModelNameError: If the model reports an empty name
            DuplicateModelError: If the name is already taken
        """
        if model is None:
            raise TypeError("model cannot be None")

        name = model.name
        if not name:
            raise EmptyModelNameError()

        dependencies = list(model.dependencies)

        with self._lock.write():
            if name in self._models:
                raise DuplicateModelError(name)

            self._models[name] = model
            self._metadata[name] = RegistryMetadata(
                name=name,
                description=model.description,
                version=DEFAULT_MODEL_VERSION,
                dependencies=dependencies,
                category=ModelCategory.from_dependencies(dependencies),
                is_enabled=True,
            )
            meta = self._metadata[name].model_copy(deep=True)

        logger.info(
            "model_registered",
            model=name,
            dependencies=dependencies,
            category=meta.category.value,
        )
        return meta

    def unregister(self, name: str) -> None:
        """
        Remove a model and its metadata (testing / hot reload).

        Raises:
            ModelNotFoundError: If the model is not registered
        """
        with self._lock.write():
            if name not in self._models:
                raise ModelNotFoundError(name)
            del self._models[name]
            del self._metadata[name]

        logger.info("model_unregistered", model=name)

    def enable(self, name: str) -> None:
        """Raises ModelNotFoundError if absent."""
        self._set_enabled(name, True)

    def disable(self, name: str) -> None:
        """Raises ModelNotFoundError if absent."""
        self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> None:
        with self._lock.write():
            meta = self._metadata.get(name)
            if meta is None:
                raise ModelNotFoundError(name)
            meta.is_enabled = enabled

        logger.info("model_enabled" if enabled else "model_disabled", model=name)

    def record_execution(self, name: str, duration_ms: float) -> RegistryMetadata:
        """
        Fold one successful execution into the model's statistics.

        The running average is an exponential moving average seeded with
        the first observation.

        Raises:
            ModelNotFoundError: If the model is not registered
        """
        with self._lock.write():
            meta = self._metadata.get(name)
            if meta is None:
                raise ModelNotFoundError(name)

            if meta.total_executions == 0:
                meta.average_exec_time_ms = duration_ms
            else:
                meta.average_exec_time_ms = (
                    self._alpha * duration_ms
                    + (1 - self._alpha) * meta.average_exec_time_ms
                )
            meta.total_executions += 1
            return meta.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get(self, name: str) -> DecisionModel:
        """
        Look up an enabled model.

        Raises:
            ModelNotFoundError: If the model is not registered
            ModelDisabledError: If the model is disabled
        """
        with self._lock.read():
            model = self._models.get(name)
            if model is None:
                raise ModelNotFoundError(name)
            if not self._metadata[name].is_enabled:
                raise ModelDisabledError(name)
            return model

    def list_models(self) -> list[str]:
        """All registered names (registration order, not guaranteed by contract)."""
        with self._lock.read():
            return list(self._models)

    def __contains__(self, name: str) -> bool:
        with self._lock.read():
            return name in self._models

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._models)

    def get_metadata(self, name: str) -> RegistryMetadata:
        """
        Raises:
            ModelNotFoundError: If the model is not registered
        """
        with self._lock.read():
            meta = self._metadata.get(name)
            if meta is None:
                raise ModelNotFoundError(name)
            return meta.model_copy(deep=True)

    def get_all_metadata(self) -> dict[str, RegistryMetadata]:
        with self._lock.read():
            return {
                name: meta.model_copy(deep=True)
                for name, meta in self._metadata.items()
            }

    def get_by_category(self, category: ModelCategory) -> list[str]:
        with self._lock.read():
            return [
                name for name, meta in self._metadata.items()
                if meta.category == category
            ]

    def validate_registry(self) -> list[MissingDependencyError]:
        """
        Startup health check: report every declared dependency that is
        not itself registered. Does not modify anything.

        Returns:
            One error per missing dependency (empty list = healthy)
        """
        problems: list[MissingDependencyError] = []

        with self._lock.read():
            for name, meta in self._metadata.items():
                for dependency in meta.dependencies:
                    if dependency not in self._models:
                        problems.append(MissingDependencyError(name, dependency))

        return problems

