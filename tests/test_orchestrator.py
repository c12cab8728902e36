"""
Tests for the model orchestrator.

Test strategy:
1. Single executions against stub models (cache, validation, failures)
2. Pipelines over small dependency graphs
3. One end-to-end run of the AHP model through the app factory
"""

import asyncio
from datetime import timedelta
from typing import Optional
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from finance_dss.audit import AuditLogger, InMemoryAuditStorage
from finance_dss.config import Settings
from finance_dss.mbms import (
    CacheUnavailableError,
    CircularDependencyError,
    MemoryResultCache,
    ModelDisabledError,
    ModelExecutionError,
    ModelNotFoundError,
    ModelValidationError,
    PipelineCancelledError,
    PipelineStepError,
    RedisResultCache,
    ResultCache,
)
from finance_dss.models.ahp import AHPOutput
from finance_dss.models.audit import AuditEventType
from finance_dss.models.execution import ExecutionStatus, ModelResult
from finance_dss.orchestrator import (
    ModelOrchestrator,
    canonical_json,
    create_app_components,
    generate_cache_key,
)


class BrokenCache(ResultCache):
    """Cache whose backend is always down."""

    async def get(self, key: str) -> Optional[ModelResult]:
        raise CacheUnavailableError("connection refused")

    async def set(self, key: str, result: ModelResult, ttl: timedelta) -> None:
        raise CacheUnavailableError("connection refused")

    async def invalidate(self, key: str) -> None:
        raise CacheUnavailableError("connection refused")

    async def clear(self) -> None:
        raise CacheUnavailableError("connection refused")


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def orchestrator(registry, resolver, memory_cache, audit_storage):
    return ModelOrchestrator(
        registry=registry,
        resolver=resolver,
        cache=memory_cache,
        audit_logger=AuditLogger(audit_storage),
    )


async def _event_types(storage, model_name=None):
    if model_name is None:
        events = reversed(await storage.get_recent_events(limit=1000))
    else:
        events = await storage.get_events_by_model(model_name)
    return [event.event_type for event in events]


class TestCacheKey:
    """Tests for cache key generation."""

    def test_key_format(self):
        """model:<name>:<sha256 hex>."""
        key = generate_cache_key("budget", {"income": 100})
        prefix, name, digest = key.split(":")
        assert (prefix, name) == ("model", "budget")
        assert len(digest) == 64

    def test_key_ignores_dict_order(self):
        assert generate_cache_key("m", {"a": 1, "b": 2}) == generate_cache_key(
            "m", {"b": 2, "a": 1}
        )

    def test_key_depends_on_model_and_input(self):
        assert generate_cache_key("m", {"a": 1}) != generate_cache_key("m", {"a": 2})
        assert generate_cache_key("m", {"a": 1}) != generate_cache_key("n", {"a": 1})

    def test_pydantic_and_mapping_inputs_match(self, two_by_two_input):
        """A model and its JSON form hash the same."""
        assert generate_cache_key("m", two_by_two_input) == generate_cache_key(
            "m", two_by_two_input.model_dump(mode="json")
        )

    def test_canonical_json_rejects_nan(self):
        with pytest.raises(ValueError):
            canonical_json({"x": float("nan")})


class TestExecuteSingle:
    """Tests for ModelOrchestrator.execute_single."""

    @pytest.mark.asyncio
    async def test_success(self, orchestrator, registry, stub_model):
        """A run returns the output with SUCCESS metadata and updates statistics."""
        registry.register(stub_model("budget", output={"total": 10}))

        result = await orchestrator.execute_single("budget", {"income": 100})

        assert result.output == {"total": 10}
        assert result.metadata.status == ExecutionStatus.SUCCESS
        assert result.metadata.model_name == "budget"
        assert result.metadata.duration_ms >= 0
        assert result.metadata.end_time >= result.metadata.start_time
        assert result.metadata.input_snapshot == '{"income":100}'
        assert result.metadata.output_snapshot == '{"total":10}'
        assert result.metadata.warnings == []

        meta = registry.get_metadata("budget")
        assert meta.total_executions == 1

    @pytest.mark.asyncio
    async def test_cache_hit_returns_stored_result(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """The second identical call is served from the cache unchanged."""
        model = stub_model("budget")
        registry.register(model)

        first = await orchestrator.execute_single("budget", {"income": 100})
        second = await orchestrator.execute_single("budget", {"income": 100})

        assert second == first
        assert second.metadata.execution_id == first.metadata.execution_id
        assert len(model.executed) == 1
        assert registry.get_metadata("budget").total_executions == 1
        assert AuditEventType.CACHE_HIT in await _event_types(audit_storage, "budget")

    @pytest.mark.asyncio
    async def test_different_input_is_a_miss(self, orchestrator, registry, stub_model):
        model = stub_model("budget")
        registry.register(model)

        await orchestrator.execute_single("budget", {"income": 100})
        await orchestrator.execute_single("budget", {"income": 200})

        assert len(model.executed) == 2

    @pytest.mark.asyncio
    async def test_expired_result_is_recomputed(
        self, orchestrator, registry, stub_model, clock
    ):
        model = stub_model("budget")
        registry.register(model)

        await orchestrator.execute_single("budget", 1)
        clock.advance(timedelta(hours=1).total_seconds())
        await orchestrator.execute_single("budget", 1)

        assert len(model.executed) == 2

    @pytest.mark.asyncio
    async def test_unknown_model(self, orchestrator):
        with pytest.raises(ModelNotFoundError):
            await orchestrator.execute_single("ghost", None)

    @pytest.mark.asyncio
    async def test_disabled_model(self, orchestrator, registry, stub_model):
        """A disabled model fails even when a cached result exists."""
        registry.register(stub_model("budget"))
        await orchestrator.execute_single("budget", 1)

        registry.disable("budget")
        with pytest.raises(ModelDisabledError):
            await orchestrator.execute_single("budget", 1)

    @pytest.mark.asyncio
    async def test_validation_failure(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """Rejected input never reaches execute() and is audited."""
        model = stub_model("budget", validation_error=ValueError("income missing"))
        registry.register(model)

        with pytest.raises(ModelValidationError) as exc_info:
            await orchestrator.execute_single("budget", {})

        error = exc_info.value
        assert str(error) == "validation failed: income missing"
        assert error.model_name == "budget"
        assert isinstance(error.__cause__, ValueError)
        assert error.result.output is None
        assert error.result.metadata.status == ExecutionStatus.FAILED
        assert model.executed == []
        assert registry.get_metadata("budget").total_executions == 0
        assert await _event_types(audit_storage, "budget") == [
            AuditEventType.MODEL_VALIDATION_FAILED
        ]

    @pytest.mark.asyncio
    async def test_validation_issues_are_kept(self, orchestrator, registry, stub_model):
        issues = ["first", "second"]
        registry.register(stub_model(
            "budget",
            validation_error=ModelValidationError("bad input", issues=issues),
        ))

        with pytest.raises(ModelValidationError) as exc_info:
            await orchestrator.execute_single("budget", {})

        assert exc_info.value.issues == issues

    @pytest.mark.asyncio
    async def test_execution_failure(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """Model errors keep their own message and are not cached."""
        model = stub_model("budget", execution_error=RuntimeError("division by zero"))
        registry.register(model)

        for _ in range(2):
            with pytest.raises(ModelExecutionError) as exc_info:
                await orchestrator.execute_single("budget", {"income": 0})

        error = exc_info.value
        assert str(error) == "division by zero"
        assert error.model_name == "budget"
        assert isinstance(error.__cause__, RuntimeError)
        assert error.result.metadata.status == ExecutionStatus.FAILED
        assert error.result.metadata.error_message == "division by zero"
        assert error.result.metadata.input_snapshot == '{"income":0}'
        assert len(model.executed) == 2
        assert registry.get_metadata("budget").total_executions == 0
        assert AuditEventType.MODEL_EXECUTION_FAILED in await _event_types(
            audit_storage, "budget"
        )

    @pytest.mark.asyncio
    async def test_model_execution_error_passes_through(
        self, orchestrator, registry, stub_model
    ):
        original = ModelExecutionError("no data")
        registry.register(stub_model("budget", execution_error=original))

        with pytest.raises(ModelExecutionError) as exc_info:
            await orchestrator.execute_single("budget", None)

        assert exc_info.value is original
        assert original.model_name == "budget"
        assert original.result is not None

    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """Cancellation is recorded and re-raised, never wrapped."""
        registry.register(stub_model("budget", execution_error=asyncio.CancelledError()))

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.execute_single("budget", 1)

        assert await _event_types(audit_storage, "budget") == [
            AuditEventType.MODEL_EXECUTION_CANCELLED
        ]

    @pytest.mark.asyncio
    async def test_broken_cache_does_not_fail_execution(
        self, registry, resolver, stub_model, audit_storage
    ):
        """Cache errors are audited and reported as a warning on the result."""
        orchestrator = ModelOrchestrator(
            registry, resolver, cache=BrokenCache(), audit_logger=AuditLogger(audit_storage)
        )
        registry.register(stub_model("budget"))

        result = await orchestrator.execute_single("budget", 1)

        assert result.output == "budget:output"
        assert result.metadata.status == ExecutionStatus.SUCCESS
        assert result.metadata.warnings == ["result not cached: connection refused"]

        events = await _event_types(audit_storage, "budget")
        assert events.count(AuditEventType.CACHE_ERROR) == 2
        assert events[-1] == AuditEventType.MODEL_EXECUTION_SUCCEEDED

    @pytest.mark.asyncio
    async def test_unserializable_output_with_redis_cache(
        self, registry, resolver, stub_model, audit_storage
    ):
        """An output Redis cannot store still returns a successful result."""
        client = AsyncMock()
        orchestrator = ModelOrchestrator(
            registry, resolver,
            cache=RedisResultCache(client),
            audit_logger=AuditLogger(audit_storage),
        )
        client.get.return_value = None
        opaque = object()
        registry.register(stub_model("opaque", output=opaque))

        result = await orchestrator.execute_single("opaque", {"x": 1})

        assert result.output is opaque
        assert result.metadata.status == ExecutionStatus.SUCCESS
        assert len(result.metadata.warnings) == 1
        assert result.metadata.warnings[0].startswith("result not cached: ")
        client.set.assert_not_awaited()
        assert registry.get_metadata("opaque").total_executions == 1

        events = await _event_types(audit_storage, "opaque")
        assert AuditEventType.CACHE_ERROR in events
        assert events[-1] == AuditEventType.MODEL_EXECUTION_SUCCEEDED

    @pytest.mark.asyncio
    async def test_unserializable_input_skips_cache(
        self, orchestrator, registry, stub_model, memory_cache
    ):
        model = stub_model("budget")
        registry.register(model)
        opaque = object()

        result = await orchestrator.execute_single("budget", opaque)
        await orchestrator.execute_single("budget", opaque)

        assert result.metadata.input_snapshot is None
        assert len(model.executed) == 2
        assert await memory_cache.size() == 0

    @pytest.mark.asyncio
    async def test_caching_disabled(self, registry, resolver, stub_model, memory_cache):
        orchestrator = ModelOrchestrator(
            registry, resolver, cache=memory_cache, cache_enabled=False
        )
        model = stub_model("budget")
        registry.register(model)

        await orchestrator.execute_single("budget", 1)
        await orchestrator.execute_single("budget", 1)

        assert len(model.executed) == 2
        assert await memory_cache.size() == 0

    @pytest.mark.asyncio
    async def test_without_cache_or_audit(self, registry, resolver, stub_model):
        orchestrator = ModelOrchestrator(registry, resolver)
        registry.register(stub_model("budget"))

        result = await orchestrator.execute_single("budget", 1)

        assert result.output == "budget:output"
        assert orchestrator.cache is None

    @pytest.mark.asyncio
    async def test_snapshot_truncation(self, registry, resolver, stub_model):
        orchestrator = ModelOrchestrator(registry, resolver, snapshot_max_bytes=10)
        registry.register(stub_model("budget", output="x" * 50))

        result = await orchestrator.execute_single("budget", {"note": "y" * 50})

        assert result.metadata.input_snapshot.endswith("...[truncated]")
        assert len(result.metadata.input_snapshot) == 10 + len("...[truncated]")
        assert result.metadata.output_snapshot.endswith("...[truncated]")

    @pytest.mark.asyncio
    async def test_concurrent_executions(self, orchestrator, registry, stub_model):
        """Concurrent runs of different inputs all complete and are counted."""
        registry.register(stub_model("budget"))

        results = await asyncio.gather(*(
            orchestrator.execute_single("budget", i) for i in range(20)
        ))

        assert all(r.metadata.succeeded for r in results)
        assert registry.get_metadata("budget").total_executions == 20


class TestExecutePipeline:
    """Tests for ModelOrchestrator.execute_pipeline."""

    @pytest.fixture
    def chain(self, registry, stub_model):
        """A <- B <- C, with C also depending on A."""
        models = {
            "A": stub_model("A"),
            "B": stub_model("B", dependencies=["A"]),
            "C": stub_model("C", dependencies=["A", "B"]),
        }
        for model in models.values():
            registry.register(model)
        return models

    @pytest.mark.asyncio
    async def test_runs_in_dependency_order(self, orchestrator, chain):
        """Each step receives its dependencies' outputs."""
        results = await orchestrator.execute_pipeline(["C"])

        assert list(results) == ["A", "B", "C"]
        assert chain["A"].executed == [None]
        assert chain["B"].executed == [{"A": "A:output"}]
        assert chain["C"].executed == [{"A": "A:output", "B": "B:output"}]

    @pytest.mark.asyncio
    async def test_explicit_inputs_win(self, orchestrator, chain):
        await orchestrator.execute_pipeline(["B"], inputs={"A": 42, "B": "given"})

        assert chain["A"].executed == [42]
        assert chain["B"].executed == ["given"]
        assert chain["C"].executed == []

    @pytest.mark.asyncio
    async def test_step_failure_stops_pipeline(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """A failing step aborts the run and names the model."""
        registry.register(stub_model("A"))
        registry.register(stub_model(
            "B", dependencies=["A"], execution_error=RuntimeError("boom")
        ))
        last = stub_model("C", dependencies=["B"])
        registry.register(last)

        with pytest.raises(PipelineStepError) as exc_info:
            await orchestrator.execute_pipeline(["C"])

        error = exc_info.value
        assert error.model_name == "B"
        assert isinstance(error.cause, ModelExecutionError)
        assert "B" in str(error) and "boom" in str(error)
        assert last.executed == []
        assert AuditEventType.PIPELINE_FAILED in await _event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_cancellation_between_steps(
        self, orchestrator, registry, stub_model, audit_storage
    ):
        """Setting the event stops the pipeline before the next step."""
        cancel = asyncio.Event()
        registry.register(stub_model("A", on_execute=lambda _: cancel.set()))
        registry.register(stub_model("B", dependencies=["A"]))
        registry.register(stub_model("C", dependencies=["B"]))

        with pytest.raises(PipelineCancelledError) as exc_info:
            await orchestrator.execute_pipeline(["C"], cancel_event=cancel)

        assert exc_info.value.completed == ["A"]
        assert exc_info.value.remaining == ["B", "C"]
        assert AuditEventType.PIPELINE_CANCELLED in await _event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_resolution_errors_are_not_wrapped(
        self, orchestrator, registry, stub_model
    ):
        registry.register(stub_model("A", dependencies=["B"]))
        registry.register(stub_model("B", dependencies=["A"]))

        with pytest.raises(CircularDependencyError):
            await orchestrator.execute_pipeline(["A"])

    @pytest.mark.asyncio
    async def test_audit_trail_shares_correlation_id(
        self, orchestrator, chain, audit_storage
    ):
        correlation_id = uuid4()
        await orchestrator.execute_pipeline(["B"], correlation_id=correlation_id)

        trail = await audit_storage.get_events_by_correlation_id(correlation_id)

        assert [e.event_type for e in trail] == [
            AuditEventType.PIPELINE_STARTED,
            AuditEventType.MODEL_EXECUTION_SUCCEEDED,
            AuditEventType.MODEL_EXECUTION_SUCCEEDED,
            AuditEventType.PIPELINE_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_pipeline_reuses_cached_steps(self, orchestrator, chain):
        await orchestrator.execute_pipeline(["C"])
        await orchestrator.execute_pipeline(["C"])

        assert all(len(model.executed) == 1 for model in chain.values())

    def test_resolve_dependencies(self, orchestrator, chain):
        assert orchestrator.resolve_dependencies(["C"]) == ["A", "B", "C"]


class TestAdministration:
    """Tests for enable/disable through the orchestrator."""

    @pytest.mark.asyncio
    async def test_toggle_is_audited(self, orchestrator, registry, stub_model, audit_storage):
        registry.register(stub_model("budget"))

        await orchestrator.disable_model("budget")
        await orchestrator.enable_model("budget")

        assert await _event_types(audit_storage, "budget") == [
            AuditEventType.MODEL_DISABLED,
            AuditEventType.MODEL_ENABLED,
        ]

    @pytest.mark.asyncio
    async def test_toggle_unknown(self, orchestrator):
        with pytest.raises(ModelNotFoundError):
            await orchestrator.disable_model("ghost")


class TestAppComponents:
    """End-to-end through the application factory."""

    @pytest.fixture
    def components(self, monkeypatch, stub_model):
        monkeypatch.setenv("CACHE_BACKEND", "memory")
        monkeypatch.setenv("LOG_JSON", "false")
        return create_app_components(Settings(), extra_models=[stub_model("report")])

    def test_factory_registers_models(self, components):
        assert components.problems == []
        assert set(components.registry.list_models()) == {"goal_prioritization", "report"}
        assert isinstance(components.cache, MemoryResultCache)

    def test_factory_reports_missing_dependency(self, monkeypatch, stub_model):
        monkeypatch.setenv("CACHE_BACKEND", "memory")
        components = create_app_components(
            Settings(), extra_models=[stub_model("report", dependencies=["ghost"])]
        )
        assert len(components.problems) == 1
        assert "ghost" in components.problems[0]

    @pytest.mark.asyncio
    async def test_goal_prioritization_from_mapping(self, components, two_by_two_input):
        """A JSON-shaped input is validated, computed and cached."""
        payload = two_by_two_input.model_dump(mode="json")

        result = await components.orchestrator.execute_single("goal_prioritization", payload)
        again = await components.orchestrator.execute_single("goal_prioritization", payload)

        output = result.output
        assert isinstance(output, AHPOutput)
        assert output.alternative_priorities["a1"] == pytest.approx(0.8125)
        assert output.ranking[0].alternative_id == "a1"
        assert again.metadata.execution_id == result.metadata.execution_id

    @pytest.mark.asyncio
    async def test_goal_prioritization_rejects_bad_input(self, components):
        payload = {
            "criteria": [{"id": "c1"}],
            "alternatives": [{"id": "a1"}, {"id": "a2"}],
        }

        with pytest.raises(ModelValidationError) as exc_info:
            await components.orchestrator.execute_single("goal_prioritization", payload)

        assert "at least 2 criteria required" in str(exc_info.value)
        assert exc_info.value.issues
