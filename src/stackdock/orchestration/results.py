"""Result types for plan execution."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class ExecutionReport:
    """Outcome of executing a deployment plan."""

    order: Tuple[str, ...]
    executed: List[str] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def record(self, resource_id: str, result: Any = None) -> None:
        self.executed.append(resource_id)
        self.results[resource_id] = result

    @property
    def pending(self) -> List[str]:
        """Ids never attempted."""
        done = set(self.executed)
        return [resource_id for resource_id in self.order if resource_id not in done]

    @property
    def complete(self) -> bool:
        return len(self.executed) == len(self.order)
