"""
Shared fixtures for Finance DSS tests.

No test touches the network: Redis is always an AsyncMock and models
are in-process stubs.
"""

from typing import Any, Callable, Optional

import pytest

from finance_dss.mbms import DecisionModel, DependencyResolver, MemoryResultCache, ModelRegistry
from finance_dss.models.ahp import (
    AHPInput,
    Alternative,
    Criteria,
    PairwiseComparison,
)


class StubModel(DecisionModel):
    """
    Configurable in-process model.

    Records every input it executes with. By default the output is
    "<name>:output".
    """

    def __init__(
        self,
        name: str,
        dependencies: Optional[list[str]] = None,
        output: Any = None,
        validation_error: Optional[Exception] = None,
        execution_error: Optional[Exception] = None,
        on_execute: Optional[Callable[[Any], None]] = None,
    ):
        self._name = name
        self._dependencies = dependencies or []
        self._output = output if output is not None else f"{name}:output"
        self._validation_error = validation_error
        self._execution_error = execution_error
        self._on_execute = on_execute
        self.validated: list[Any] = []
        self.executed: list[Any] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"stub model {self._name}"

    @property
    def dependencies(self) -> list[str]:
        return list(self._dependencies)

    async def validate(self, input: Any) -> None:
        self.validated.append(input)
        if self._validation_error is not None:
            raise self._validation_error

    async def execute(self, input: Any) -> Any:
        self.executed.append(input)
        if self._on_execute is not None:
            self._on_execute(input)
        if self._execution_error is not None:
            raise self._execution_error
        return self._output


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def comparison(a: str, b: str, value: float) -> PairwiseComparison:
    return PairwiseComparison(element_a=a, element_b=b, value=value)


@pytest.fixture
def stub_model() -> Callable[..., StubModel]:
    """Factory for StubModel instances."""
    return StubModel


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture
def resolver(registry: ModelRegistry) -> DependencyResolver:
    return DependencyResolver(registry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock: FakeClock) -> MemoryResultCache:
    return MemoryResultCache(clock=clock)


@pytest.fixture
def two_by_two_input() -> AHPInput:
    """
    Criteria c1, c2 with c1:c2 = 3; alternatives a1, a2 compared
    5 under c1 and 3 under c2.

    Expected: weights 0.75 / 0.25, a1 = 0.8125, a2 = 0.1875.
    """
    return AHPInput(
        criteria=[
            Criteria(id="c1", name="Urgency"),
            Criteria(id="c2", name="Impact"),
        ],
        alternatives=[
            Alternative(id="a1", name="Emergency fund"),
            Alternative(id="a2", name="Vacation"),
        ],
        criteria_comparisons=[comparison("c1", "c2", 3.0)],
        alternative_comparisons={
            "c1": [comparison("a1", "a2", 5.0)],
            "c2": [comparison("a1", "a2", 3.0)],
        },
    )


@pytest.fixture
def three_criteria_input() -> AHPInput:
    """
    Perfectly consistent criteria judgements (2, 4, 2) giving weights
    4/7, 2/7, 1/7, over three alternatives.
    """
    alternative_judgements = [
        comparison("a1", "a2", 3.0),
        comparison("a1", "a3", 5.0),
        comparison("a2", "a3", 2.0),
    ]
    return AHPInput(
        criteria=[
            Criteria(id="c1", name="Urgency"),
            Criteria(id="c2", name="Impact"),
            Criteria(id="c3", name="Risk"),
        ],
        alternatives=[
            Alternative(id="a1", name="Emergency fund"),
            Alternative(id="a2", name="Credit card"),
            Alternative(id="a3", name="House"),
        ],
        criteria_comparisons=[
            comparison("c1", "c2", 2.0),
            comparison("c1", "c3", 4.0),
            comparison("c2", "c3", 2.0),
        ],
        alternative_comparisons={
            "c1": alternative_judgements,
            "c2": [
                comparison("a1", "a2", 1 / 2),
                comparison("a1", "a3", 1.0),
                comparison("a2", "a3", 2.0),
            ],
            "c3": alternative_judgements,
        },
    )


@pytest.fixture
def trade_off_input() -> AHPInput:
    """
    a1 wins on c1 (weight 0.75), a2 wins on c2 (weight 0.25).

    Expected: a1 = 0.625, a2 = 0.375.
    """
    return AHPInput(
        criteria=[
            Criteria(id="c1", name="Cost"),
            Criteria(id="c2", name="Urgency"),
        ],
        alternatives=[
            Alternative(id="a1", name="Pay off loan"),
            Alternative(id="a2", name="Buy insurance"),
        ],
        criteria_comparisons=[comparison("c1", "c2", 3.0)],
        alternative_comparisons={
            "c1": [comparison("a1", "a2", 3.0)],
            "c2": [comparison("a1", "a2", 1 / 3)],
        },
    )
