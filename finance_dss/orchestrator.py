"""
Model Orchestrator for Finance DSS

This module ties the model subsystem together and defines the two
execution flows:
1. Single model (lookup → cache → validate → execute → record → cache)
2. Pipeline (resolve order → run each model, feeding it its dependencies)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No model runs before the models it depends on
- No model runs on input it rejected in validate()
- Every execution is recorded (metadata + audit event), success or not
- A broken cache never fails an execution; it only costs a recompute

The orchestrator holds no state of its own beyond references to the
registry, resolver, cache and audit logger.
"""

import asyncio
import hashlib
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from pydantic_core import PydanticSerializationError, to_jsonable_python

from finance_dss.analytics.ahp import GoalPrioritizationModel
from finance_dss.audit import (
    AuditLogger,
    AuditStorageInterface,
    InMemoryAuditStorage,
    configure_logging,
    create_correlation_id,
)
from finance_dss.config import Settings, get_settings
from finance_dss.mbms import (
    CacheUnavailableError,
    DecisionModel,
    DependencyResolver,
    MBMSError,
    MemoryResultCache,
    ModelExecutionError,
    ModelNotFoundError,
    ModelRegistry,
    ModelValidationError,
    PipelineCancelledError,
    PipelineStepError,
    RedisResultCache,
    ResultCache,
)
from finance_dss.models.execution import ExecutionMetadata, ExecutionStatus, ModelResult


logger = structlog.get_logger(__name__)


DEFAULT_CACHE_TTL = timedelta(hours=1)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def canonical_json(value: Any) -> str:
    """
    Deterministic JSON for any input the orchestrator may see.

    Pydantic models, dataclasses, UUIDs and datetimes are converted to
    plain JSON types first; object keys are sorted.

    Raises:
        TypeError / ValueError: If the value cannot be represented as JSON
    """
    return json.dumps(
        to_jsonable_python(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def generate_cache_key(model_name: str, input: Any) -> str:
    """
    "model:<name>:<sha256 of the canonical input JSON>".

    Equal inputs always give equal keys, and the key length does not
    depend on the input size.
    """
    digest = hashlib.sha256(canonical_json(input).encode("utf-8")).hexdigest()
    return f"model:{model_name}:{digest}"


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class ModelOrchestrator:
    """
    Executes decision models with dependency resolution and caching.

    Pipeline steps run strictly one after another. Cancellation is only
    checked between steps; a running model is never interrupted here.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        resolver: DependencyResolver,
        cache: Optional[ResultCache] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_ttl: timedelta = DEFAULT_CACHE_TTL,
        cache_enabled: bool = True,
        snapshot_max_bytes: Optional[int] = None,
    ):
        """
        Args:
            registry: Source of model instances and metadata
            resolver: Execution order for pipelines
            cache: Result cache; None disables caching
            audit_logger: Receives one event per execution; None logs nothing
            default_ttl: How long a successful result stays cached
            cache_enabled: Master switch for reading and writing the cache
            snapshot_max_bytes: Cap on input/output snapshot size
        """
        self._registry = registry
        self._resolver = resolver
        self._cache = cache
        self._audit_logger = audit_logger
        self._default_ttl = default_ttl
        self._cache_enabled = cache_enabled and cache is not None
        self._snapshot_max_bytes = snapshot_max_bytes

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    # -------------------------------------------------------------------------
    # Single model
    # -------------------------------------------------------------------------

    async def execute_single(
        self,
        model_name: str,
        input: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ModelResult:
        """
        Run one model, reusing a cached result when there is one.

        Returns:
            ModelResult with the output and execution metadata. A cache
            hit returns the stored result unchanged.

        Raises:
            ModelNotFoundError / ModelDisabledError: From the registry
            ModelValidationError: Input rejected; `.result` holds the
                failed ModelResult
            ModelExecutionError: Model failed; message is the model's own,
                `.result` holds the failed ModelResult
        """
        model = self._registry.get(model_name)

        cache_key = self._cache_key(model_name, input)
        if cache_key is not None:
            cached = await self._cache_get(model_name, cache_key, correlation_id)
            if cached is not None:
                return cached

        execution_id = uuid4()
        start_time = datetime.now(timezone.utc)
        started = time.perf_counter()

        # Validation
        try:
            await model.validate(input)
        except asyncio.CancelledError:
            await self._record_cancelled(
                model_name, execution_id, start_time, started, correlation_id
            )
            raise
        except Exception as e:
            error = ModelValidationError(
                f"validation failed: {e}",
                model_name=model_name,
                issues=getattr(e, "issues", None),
            )
            metadata = _metadata(
                model_name, execution_id, start_time, started,
                ExecutionStatus.FAILED, error_message=str(error),
            )
            error.result = ModelResult(output=None, metadata=metadata)
            logger.warning("model_validation_failed", model=model_name, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_execution(
                    metadata, correlation_id=correlation_id, validation_failed=True
                )
            raise error from e

        input_snapshot = self._snapshot(input)

        # Execution
        try:
            output = await model.execute(input)
        except asyncio.CancelledError:
            await self._record_cancelled(
                model_name, execution_id, start_time, started, correlation_id,
                input_snapshot=input_snapshot,
            )
            raise
        except Exception as e:
            if isinstance(e, ModelExecutionError):
                error = e
                if error.model_name is None:
                    error.model_name = model_name
            else:
                error = ModelExecutionError(str(e), model_name=model_name)

            metadata = _metadata(
                model_name, execution_id, start_time, started,
                ExecutionStatus.FAILED,
                error_message=str(e),
                input_snapshot=input_snapshot,
            )
            error.result = ModelResult(output=None, metadata=metadata)
            logger.error("model_execution_failed", model=model_name, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_execution(metadata, correlation_id=correlation_id)
            if error is e:
                raise
            raise error from e

        metadata = _metadata(
            model_name, execution_id, start_time, started,
            ExecutionStatus.SUCCESS,
            input_snapshot=input_snapshot,
            output_snapshot=self._snapshot(output),
        )
        result = ModelResult(output=output, metadata=metadata)

        if cache_key is not None:
            warning = await self._cache_set(model_name, cache_key, result, correlation_id)
            if warning:
                result = ModelResult(
                    output=output,
                    metadata=metadata.model_copy(update={"warnings": [warning]}),
                )

        self._record_statistics(model_name, metadata.duration_ms)

        logger.info(
            "model_executed",
            model=model_name,
            execution_id=str(execution_id),
            duration_ms=round(metadata.duration_ms, 3),
        )
        if self._audit_logger:
            await self._audit_logger.log_execution(result.metadata, correlation_id=correlation_id)

        return result

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def execute_pipeline(
        self,
        model_names: list[str],
        inputs: Optional[dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, ModelResult]:
        """
        Run the requested models and all their dependencies in order.

        A model with an entry in `inputs` receives that input. Otherwise it
        receives {dependency_name: dependency_output}, or None when it has
        no dependencies.

        Args:
            model_names: Models the caller wants results for
            inputs: Explicit inputs per model name
            cancel_event: When set, the pipeline stops before the next step
            correlation_id: Ties the audit events of this run together

        Returns:
            Every executed model's result, keyed by model name

        Raises:
            ModelNotFoundError / ModelDisabledError / CircularDependencyError:
                If the execution order cannot be resolved
            PipelineCancelledError: If cancel_event was set
            PipelineStepError: If a step failed (no rollback of earlier steps)
        """
        inputs = inputs or {}
        correlation_id = correlation_id or create_correlation_id()

        order = self._resolver.resolve(model_names)

        logger.info("pipeline_started", requested=model_names, order=order)
        if self._audit_logger:
            await self._audit_logger.log_pipeline_started(model_names, order, correlation_id)

        results: dict[str, ModelResult] = {}

        for position, model_name in enumerate(order):
            if cancel_event is not None and cancel_event.is_set():
                remaining = order[position:]
                logger.warning("pipeline_cancelled", remaining=remaining)
                if self._audit_logger:
                    await self._audit_logger.log_pipeline_cancelled(remaining, correlation_id)
                raise PipelineCancelledError(list(results), remaining)

            try:
                model_input = self._step_input(model_name, inputs, results)
                results[model_name] = await self.execute_single(
                    model_name, model_input, correlation_id=correlation_id
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("pipeline_step_failed", model=model_name, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_pipeline_failed(model_name, str(e), correlation_id)
                raise PipelineStepError(model_name, e) from e

        logger.info("pipeline_completed", executed=list(results))
        if self._audit_logger:
            await self._audit_logger.log_pipeline_completed(list(results), correlation_id)

        return results

    def _step_input(
        self,
        model_name: str,
        inputs: dict[str, Any],
        results: dict[str, ModelResult],
    ) -> Any:
        if model_name in inputs:
            return inputs[model_name]

        dependencies = self._registry.get(model_name).dependencies
        if not dependencies:
            return None
        return {dep: results[dep].output for dep in dependencies}

    def resolve_dependencies(self, model_names: list[str]) -> list[str]:
        """Execution order for `model_names` (see DependencyResolver.resolve)."""
        return self._resolver.resolve(model_names)

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def enable_model(self, model_name: str) -> None:
        """Raises ModelNotFoundError if absent."""
        self._registry.enable(model_name)
        if self._audit_logger:
            await self._audit_logger.log_model_toggled(model_name, True)

    async def disable_model(self, model_name: str) -> None:
        """Raises ModelNotFoundError if absent."""
        self._registry.disable(model_name)
        if self._audit_logger:
            await self._audit_logger.log_model_toggled(model_name, False)

    # -------------------------------------------------------------------------
    # Cache and bookkeeping
    # -------------------------------------------------------------------------

    def _cache_key(self, model_name: str, input: Any) -> Optional[str]:
        if not self._cache_enabled:
            return None
        try:
            return generate_cache_key(model_name, input)
        except (TypeError, ValueError, PydanticSerializationError) as e:
            logger.warning("cache_key_generation_failed", model=model_name, error=str(e))
            return None

    async def _cache_get(
        self,
        model_name: str,
        cache_key: str,
        correlation_id: Optional[UUID],
    ) -> Optional[ModelResult]:
        try:
            cached = await self._cache.get(cache_key)
        except CacheUnavailableError as e:
            logger.warning("cache_get_failed", model=model_name, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_cache_error(model_name, "get", str(e), correlation_id)
            return None

        if cached is not None:
            logger.debug("cache_hit", model=model_name, cache_key=cache_key)
            if self._audit_logger:
                await self._audit_logger.log_cache_hit(
                    model_name, cache_key, cached.metadata.execution_id, correlation_id
                )
        return cached

    async def _cache_set(
        self,
        model_name: str,
        cache_key: str,
        result: ModelResult,
        correlation_id: Optional[UUID],
    ) -> Optional[str]:
        """Returns a warning message when the result could not be cached."""
        try:
            await self._cache.set(cache_key, result, self._default_ttl)
        except CacheUnavailableError as e:
            logger.warning("cache_set_failed", model=model_name, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_cache_error(model_name, "set", str(e), correlation_id)
            return f"result not cached: {e}"
        return None

    def _record_statistics(self, model_name: str, duration_ms: float) -> None:
        try:
            meta = self._registry.record_execution(model_name, duration_ms)
        except ModelNotFoundError:
            # Unregistered while it was running
            logger.warning("execution_statistics_dropped", model=model_name)
            return

        logger.debug(
            "execution_statistics_updated",
            model=model_name,
            average_exec_time_ms=round(meta.average_exec_time_ms, 3),
            total_executions=meta.total_executions,
        )

    async def _record_cancelled(
        self,
        model_name: str,
        execution_id: UUID,
        start_time: datetime,
        started: float,
        correlation_id: Optional[UUID],
        input_snapshot: Optional[str] = None,
    ) -> None:
        metadata = _metadata(
            model_name, execution_id, start_time, started,
            ExecutionStatus.CANCELLED,
            error_message="execution cancelled",
            input_snapshot=input_snapshot,
        )
        logger.warning("model_execution_cancelled", model=model_name)
        if self._audit_logger:
            await self._audit_logger.log_execution(metadata, correlation_id=correlation_id)

    def _snapshot(self, value: Any) -> Optional[str]:
        """Best-effort JSON snapshot; None when the value is not serializable."""
        try:
            snapshot = canonical_json(value)
        except (TypeError, ValueError, PydanticSerializationError) as e:
            logger.debug("snapshot_failed", error=str(e))
            return None

        limit = self._snapshot_max_bytes
        if limit is not None and len(snapshot.encode("utf-8")) > limit:
            clipped = snapshot.encode("utf-8")[:limit].decode("utf-8", errors="ignore")
            return clipped + "...[truncated]"
        return snapshot


def _metadata(
    model_name: str,
    execution_id: UUID,
    start_time: datetime,
    started: float,
    status: ExecutionStatus,
    error_message: Optional[str] = None,
    input_snapshot: Optional[str] = None,
    output_snapshot: Optional[str] = None,
) -> ExecutionMetadata:
    duration_ms = (time.perf_counter() - started) * 1000
    return ExecutionMetadata(
        model_name=model_name,
        execution_id=execution_id,
        start_time=start_time,
        end_time=start_time + timedelta(milliseconds=duration_ms),
        duration_ms=duration_ms,
        status=status,
        error_message=error_message,
        input_snapshot=input_snapshot,
        output_snapshot=output_snapshot,
    )


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

@dataclass
class AppComponents:
    """Everything the front end needs, built once per process."""

    registry: ModelRegistry
    resolver: DependencyResolver
    cache: Optional[ResultCache]
    audit_logger: AuditLogger
    orchestrator: ModelOrchestrator
    problems: list[str] = field(default_factory=list)


def create_app_components(
    settings: Optional[Settings] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    extra_models: Optional[list[DecisionModel]] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Registers every known model, then runs the startup health checks.
    Problems found are logged and returned in `problems` rather than
    raised, so the app can still show what is wrong.

    Args:
        settings: Defaults to get_settings()
        audit_storage: Audit store; defaults to in-memory
        extra_models: Additional models to register after the built-in ones

    Returns:
        AppComponents
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level, settings.app.log_json)

    registry = ModelRegistry(
        execution_time_smoothing=settings.orchestrator.execution_time_smoothing,
    )
    for model in [GoalPrioritizationModel(), *(extra_models or [])]:
        registry.register(model)

    resolver = DependencyResolver(registry)

    cache_settings = settings.cache
    cache: Optional[ResultCache]
    if cache_settings.backend == "redis":
        cache = RedisResultCache.from_url(
            cache_settings.redis_url,
            prefix=cache_settings.key_prefix,
            socket_timeout=cache_settings.socket_timeout_seconds,
            scan_batch_size=cache_settings.scan_batch_size,
        )
    else:
        cache = MemoryResultCache()

    audit_logger = AuditLogger(audit_storage or InMemoryAuditStorage())

    orchestrator = ModelOrchestrator(
        registry=registry,
        resolver=resolver,
        cache=cache,
        audit_logger=audit_logger,
        default_ttl=timedelta(seconds=cache_settings.default_ttl_seconds),
        cache_enabled=settings.orchestrator.cache_enabled,
        snapshot_max_bytes=settings.orchestrator.snapshot_max_bytes,
    )

    problems = [str(error) for error in registry.validate_registry()]
    if not problems:
        try:
            resolver.validate_dependencies()
        except MBMSError as e:
            problems.append(str(e))

    for problem in problems:
        logger.error("startup_check_failed", problem=problem)

    logger.info(
        "app_components_created",
        models=registry.list_models(),
        cache_backend=cache_settings.backend,
        problems=len(problems),
    )

    return AppComponents(
        registry=registry,
        resolver=resolver,
        cache=cache,
        audit_logger=audit_logger,
        orchestrator=orchestrator,
        problems=problems,
    )
