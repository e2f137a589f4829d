"""Deployment plan types."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from stackdock.core.errors import ResourceNotFoundInPlanError


@dataclass(frozen=True)
class DeploymentResource:
    """A plan node: one declaration plus the ids it depends on."""

    id: str
    type: str
    provider: str
    depends_on: Tuple[str, ...] = ()
    configuration: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentPlan:
    """Immutable plan; a new declaration set needs a new plan."""

    resources: Tuple[DeploymentResource, ...]
    dependencies: Mapping[str, Tuple[str, ...]]
    order: Tuple[str, ...]

    def get(self, resource_id: str) -> DeploymentResource:
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        raise ResourceNotFoundInPlanError(resource_id)

    def tiers(self) -> List[List[str]]:
        """Group ``order`` by dependency depth; each tier keeps plan order."""
        depth: Dict[str, int] = {}
        for resource_id in self.order:
            deps = self.dependencies.get(resource_id, ())
            depth[resource_id] = 1 + max((depth[d] for d in deps), default=-1)

        tiers: List[List[str]] = []
        for resource_id in self.order:
            level = depth[resource_id]
            while len(tiers) <= level:
                tiers.append([])
            tiers[level].append(resource_id)
        return tiers
