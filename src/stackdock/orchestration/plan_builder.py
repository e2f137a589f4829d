"""Dependency-aware plan construction."""

from collections import deque
from typing import Deque, Dict, Iterator, List, Sequence, Set, Tuple

import structlog

from stackdock.core.errors import CircularDependencyError, ValidationError
from stackdock.orchestration.models import DeploymentPlan, DeploymentResource

logger = structlog.get_logger()


class PlanBuilder:
    """Builds a deployment plan: dependency graph, cycle check, topological order."""

    def build(self, resources: Sequence[DeploymentResource]) -> DeploymentPlan:
        graph = self.resolve_dependencies(resources)
        order = self.topological_sort(resources, graph)
        logger.debug("plan_built", resources=len(resources), order=order)
        return DeploymentPlan(resources=tuple(resources), dependencies=graph, order=tuple(order))

    def resolve_dependencies(
        self, resources: Sequence[DeploymentResource]
    ) -> Dict[str, Tuple[str, ...]]:
        """Build ``graph[id] = depends_on`` and reject cycles."""
        graph: Dict[str, Tuple[str, ...]] = {}
        for resource in resources:
            if resource.id in graph:
                raise ValidationError("id", f"Duplicate resource id in plan: {resource.id}")
            # Repeated entries would inflate the in-degree.
            graph[resource.id] = tuple(dict.fromkeys(resource.depends_on))

        for resource_id, deps in graph.items():
            for dep in deps:
                if dep not in graph:
                    raise ValidationError(
                        "depends_on",
                        f"Resource {resource_id} depends on unknown resource {dep}",
                    )

        detect_cycles(graph)
        return graph

    def topological_sort(
        self,
        resources: Sequence[DeploymentResource],
        graph: Dict[str, Tuple[str, ...]],
    ) -> List[str]:
        """Kahn's algorithm; ties are broken by input order."""
        in_degree: Dict[str, int] = {}
        dependents: Dict[str, List[str]] = {resource.id: [] for resource in resources}
        queue: Deque[str] = deque()
        for resource in resources:
            deps = graph.get(resource.id, ())
            in_degree[resource.id] = len(deps)
            for dep in deps:
                dependents.setdefault(dep, []).append(resource.id)
            if not deps:
                queue.append(resource.id)

        order: List[str] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for dependent in dependents.get(current, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(order) != len(resources):
            raise CircularDependencyError()
        return order


def detect_cycles(graph: Dict[str, Tuple[str, ...]]) -> None:
    """Depth-first search with an explicit stack of in-progress nodes.

    Raises naming the first node found again while still on the stack.
    """
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    for root in graph:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        stack: List[Tuple[str, Iterator[str]]] = [(root, iter(graph.get(root, ())))]
        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                on_stack.discard(node)
                continue
            if dep in on_stack:
                raise CircularDependencyError(dep)
            if dep in visited:
                continue
            visited.add(dep)
            on_stack.add(dep)
            stack.append((dep, iter(graph.get(dep, ()))))


def create_plan(resources: Sequence[DeploymentResource]) -> DeploymentPlan:
    return PlanBuilder().build(resources)
