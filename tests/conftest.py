"""Root test configuration."""

import asyncio
import logging
from typing import Any

import pytest
import structlog
from stackdock.core.errors import ProviderError
from stackdock.dock_api import DockAdapterAPI
from stackdock.domain.models import CallerContext, Permission, Provider, ProviderKind
from stackdock.providers.base import BackendRequest, ProviderResult
from stackdock.providers.rate_limits import LocalRateLimiter
from stackdock.state.memory import InMemoryRecordStore


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class StubRedisClient:
    """Enough of redis.asyncio.Redis to run the coordinator's rate-limit script."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def eval(
        self, script: str, numkeys: int, key: str, window_seconds: Any, max_requests: Any
    ) -> int:
        async with self._lock:
            current = self.counts.get(key)
            if current is None:
                self.counts[key] = 1
                return 1
            if current >= int(max_requests):
                return 0
            self.counts[key] = current + 1
            return 1


class FakeBackend:
    """In-process backend that records every call."""

    def __init__(self, name: str = "vendorx", *, status: str = "running") -> None:
        self.name = name
        self.status = status
        self.calls: list[tuple[str, BackendRequest]] = []
        self.live: dict[str, ProviderResult] = {}
        self.fail_on: set[str] = set()
        self._counter = 0

    def _maybe_fail(self, operation: str, request: BackendRequest) -> None:
        self.calls.append((operation, request))
        if operation in self.fail_on:
            raise ProviderError(
                f"{self.name} {operation} failed",
                provider=self.name,
                resource_id=request.resource_id,
            )

    async def provision(self, request: BackendRequest, *, cancel: Any = None) -> ProviderResult:
        self._maybe_fail("provision", request)
        self._counter += 1
        result = ProviderResult(
            provider_resource_id=f"{self.name}-{self._counter}",
            status=self.status,
            fields={"region": request.configuration.get("region"), "plan": "basic"},
        )
        self.live[result.provider_resource_id] = result
        return result

    async def update(self, request: BackendRequest, *, cancel: Any = None) -> ProviderResult:
        self._maybe_fail("update", request)
        assert request.provider_resource_id is not None
        result = ProviderResult(
            provider_resource_id=request.provider_resource_id,
            status=self.status,
            fields={"region": request.configuration.get("region"), "plan": "basic"},
        )
        self.live[request.provider_resource_id] = result
        return result

    async def delete(self, request: BackendRequest, *, cancel: Any = None) -> None:
        self._maybe_fail("delete", request)
        self.live.pop(request.provider_resource_id or "", None)

    async def describe(
        self, request: BackendRequest, *, cancel: Any = None
    ) -> ProviderResult | None:
        self._maybe_fail("describe", request)
        return self.live.get(request.provider_resource_id or "")

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


@pytest.fixture
def ctx() -> CallerContext:
    return CallerContext(org_id="org-1", user_id="user-1", permission=Permission.full)


@pytest.fixture
def read_ctx() -> CallerContext:
    return CallerContext(org_id="org-1", user_id="viewer", permission=Permission.read)


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def api(record_store: InMemoryRecordStore, fake_backend: FakeBackend) -> DockAdapterAPI:
    dock_api = DockAdapterAPI(store=record_store, rate_limiter=LocalRateLimiter(poll_interval=0))
    dock_api.adapters.register(fake_backend.name, fake_backend)
    dock_api.providers.register(
        Provider(
            name=fake_backend.name,
            kind=ProviderKind.adapter,
            resource_types=("server", "database", "domain", "webService"),
        )
    )
    dock_api.validate()
    return dock_api
