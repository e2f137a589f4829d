"""Orchestration package: dependency-ordered plan construction and execution."""

from stackdock.orchestration.engine import ExecuteHook, ExecutionEngine, ParallelExecutionEngine
from stackdock.orchestration.models import DeploymentPlan, DeploymentResource
from stackdock.orchestration.plan_builder import PlanBuilder, create_plan, detect_cycles
from stackdock.orchestration.results import ExecutionReport

__all__ = [
    "DeploymentPlan",
    "DeploymentResource",
    "ExecuteHook",
    "ExecutionEngine",
    "ExecutionReport",
    "ParallelExecutionEngine",
    "PlanBuilder",
    "create_plan",
    "detect_cycles",
]
