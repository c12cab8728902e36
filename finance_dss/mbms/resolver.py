"""
Dependency Resolver

Turns a list of requested models into an execution order that contains
every transitive dependency and never runs a model before the models it
depends on.

ALGORITHM:
1. Walk the requested models recursively, adding an edge
   dependency -> model for every declared dependency
2. Kahn's topological sort over the discovered nodes
3. Any node left unsorted sits on (or behind) a cycle

Ready nodes are taken in discovery order, so a given registry always
produces the same order.
"""

from collections import deque
from typing import Optional

import structlog

from finance_dss.mbms.errors import (
    CircularDependencyError,
    MBMSError,
    MissingDependencyError,
    ModelNotFoundError,
)
from finance_dss.mbms.registry import ModelRegistry
from finance_dss.models.execution import DependencyNode


logger = structlog.get_logger(__name__)


class DependencyResolver:
    """Resolves model dependencies against a registry."""

    def __init__(self, registry: ModelRegistry):
        self._registry = registry

    def resolve(self, target_models: list[str]) -> list[str]:
        """
        Ordered list of the targets plus all their dependencies.

        Raises:
            ModelNotFoundError: If a target is not registered
            MissingDependencyError: If a dependency is not registered (names
                both the dependency and the model that declares it)
            ModelDisabledError: If one of them is disabled
            CircularDependencyError: If the dependency graph has a cycle
        """
        # graph[node] = models that depend on node
        graph: dict[str, list[str]] = {}
        in_degree: dict[str, int] = {}

        self._build_graph(target_models, graph, in_degree)
        return self._topological_sort(graph, in_degree)

    def _build_graph(
        self,
        models: list[str],
        graph: dict[str, list[str]],
        in_degree: dict[str, int],
        dependent: Optional[str] = None,
    ) -> None:
        for model_name in models:
            if model_name in in_degree:
                continue

            # Mark as seen before recursing so cycles terminate
            in_degree[model_name] = 0
            graph.setdefault(model_name, [])

            model = self._lookup(model_name, dependent)

            for dependency in model.dependencies:
                graph.setdefault(dependency, []).append(model_name)
                in_degree[model_name] += 1
                self._build_graph([dependency], graph, in_degree, dependent=model_name)

    def _lookup(self, model_name: str, dependent: Optional[str]):
        try:
            return self._registry.get(model_name)
        except ModelNotFoundError as e:
            if dependent is None:
                raise
            raise MissingDependencyError(dependent, model_name) from e

    def _topological_sort(
        self,
        graph: dict[str, list[str]],
        in_degree: dict[str, int],
    ) -> list[str]:
        remaining = dict(in_degree)
        queue = deque(node for node, degree in remaining.items() if degree == 0)
        result: list[str] = []

        while queue:
            current = queue.popleft()
            result.append(current)

            for dependent in graph[current]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(in_degree):
            sorted_nodes = set(result)
            cycle_nodes = [node for node in in_degree if node not in sorted_nodes]
            logger.warning("circular_dependency_detected", nodes=cycle_nodes)
            raise CircularDependencyError(cycle_nodes)

        return result

    def get_dependency_tree(self, model_name: str) -> DependencyNode:
        """
        Recursive view of a model's dependencies (for visualization/debugging).

        Raises:
            ModelNotFoundError: If a model in the tree is not registered
            CircularDependencyError: If the walk revisits a model on its own path
        """
        return self._tree(model_name, ())

    def _tree(self, model_name: str, path: tuple[str, ...]) -> DependencyNode:
        if model_name in path:
            raise CircularDependencyError(list(path[path.index(model_name):]))

        model = self._lookup(model_name, path[-1] if path else None)
        return DependencyNode(
            name=model_name,
            dependencies=[
                self._tree(dependency, path + (model_name,))
                for dependency in model.dependencies
            ],
        )

    def validate_dependencies(self) -> None:
        """
        Resolve every registered model on its own.

        Unlike ModelRegistry.validate_registry() this also proves the
        catalog has no cycles.

        Raises:
            MBMSError: The first failure, naming the model being validated
        """
        for model_name in self._registry.list_models():
            try:
                self.resolve([model_name])
            except MBMSError as e:
                logger.error(
                    "dependency_validation_failed",
                    model=model_name,
                    error=str(e),
                )
                raise
