"""Plan executors.

Both executors are fail-fast with no compensation: resources executed before
a failure stay provisioned, and callers needing rollback implement it above
this layer.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Tuple

import structlog

from stackdock.core.cancellation import CancelToken, check_cancelled
from stackdock.core.errors import PlanExecutionError
from stackdock.orchestration.models import DeploymentPlan, DeploymentResource
from stackdock.orchestration.results import ExecutionReport

logger = structlog.get_logger()

ExecuteHook = Callable[[DeploymentResource], Awaitable[Any]]


class ExecutionEngine:
    """Runs ``plan.order`` strictly one resource at a time."""

    def __init__(self, hook: ExecuteHook) -> None:
        self._hook = hook

    async def execute(
        self, plan: DeploymentPlan, *, cancel: CancelToken | None = None
    ) -> ExecutionReport:
        report = ExecutionReport(order=plan.order)
        started = time.perf_counter()

        for resource_id in plan.order:
            resource = plan.get(resource_id)
            try:
                check_cancelled(cancel)
                result = await self._hook(resource)
            except Exception as exc:
                logger.error(
                    "plan_step_failed",
                    resource_id=resource_id,
                    executed=list(report.executed),
                    error=str(exc),
                )
                raise PlanExecutionError(resource_id, exc, report.executed) from exc
            report.record(resource_id, result)
            logger.info("plan_step_executed", resource_id=resource_id)

        report.duration_seconds = time.perf_counter() - started
        return report


class ParallelExecutionEngine:
    """Fans out per dependency tier with a concurrency bound.

    When a branch fails its tier is drained, no later tier starts, and the
    first failing id in plan order is reported.
    """

    def __init__(self, hook: ExecuteHook, *, max_concurrency: int = 4) -> None:
        self._hook = hook
        self._max_concurrency = max(1, max_concurrency)

    async def execute(
        self, plan: DeploymentPlan, *, cancel: CancelToken | None = None
    ) -> ExecutionReport:
        report = ExecutionReport(order=plan.order)
        started = time.perf_counter()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(resource: DeploymentResource) -> Any:
            async with semaphore:
                check_cancelled(cancel)
                return await self._hook(resource)

        for tier in plan.tiers():
            resources = [plan.get(resource_id) for resource_id in tier]
            outcomes = await asyncio.gather(
                *(run(resource) for resource in resources), return_exceptions=True
            )

            failures: List[Tuple[str, Exception]] = []
            for resource_id, outcome in zip(tier, outcomes):
                if isinstance(outcome, Exception):
                    failures.append((resource_id, outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    report.record(resource_id, outcome)

            if failures:
                resource_id, exc = failures[0]
                logger.error(
                    "plan_tier_failed",
                    resource_id=resource_id,
                    failed=[rid for rid, _ in failures],
                    executed=list(report.executed),
                    error=str(exc),
                )
                raise PlanExecutionError(resource_id, exc, report.executed) from exc

        report.duration_seconds = time.perf_counter() - started
        return report
