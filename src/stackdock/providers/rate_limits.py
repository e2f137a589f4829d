"""
Per-vendor API rate limits and sync interval guidance.

Limits are conservative readings of each vendor's documented quota. Every
backend call made by the engine is counted against its vendor's window, so
parallel plan branches hitting the same vendor share one budget.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Protocol

import structlog

from stackdock.coordination import RedisCoordinator
from stackdock.core.cancellation import CancelToken, check_cancelled

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderLimit:
    max_requests: int
    window_seconds: int
    recommended_sync_interval: int = 120
    minimum_sync_interval: int = 60
    reason: str = "Default sync interval: 2 minutes"


DEFAULT_LIMIT = ProviderLimit(max_requests=1000, window_seconds=3600)

PROVIDER_LIMITS: dict[str, ProviderLimit] = {
    "gridpane": ProviderLimit(
        12, 60, 300, 60, "GridPane has strict rate limits: 12 requests/min per endpoint"
    ),
    "vercel": ProviderLimit(100, 3600, 180, 60, "Vercel rate limit: 100 requests/hour"),
    "netlify": ProviderLimit(100, 3600, 180, 60, "Netlify rate limit: ~100 requests/hour"),
    "cloudflare": ProviderLimit(
        1200, 300, 120, 60, "Cloudflare rate limit: 1200 requests/5 minutes"
    ),
    "github": ProviderLimit(
        5000, 3600, 120, 60, "GitHub rate limit: 5000 requests/hour (authenticated)"
    ),
    "linode": ProviderLimit(3000, 3600, 120, 60, "Linode rate limit: ~3000 requests/hour"),
    "digitalocean": ProviderLimit(
        5000, 3600, 120, 60, "DigitalOcean rate limit: 5000 requests/hour"
    ),
    "vultr": ProviderLimit(5000, 3600, 120, 60, "Vultr rate limit: ~5000 requests/hour"),
    "hetzner": ProviderLimit(5000, 3600, 120, 60, "Hetzner rate limit: ~5000 requests/hour"),
    "coolify": ProviderLimit(5000, 3600, 120, 60, "Coolify rate limit: ~5000 requests/hour"),
    "turso": ProviderLimit(1000, 3600, 180, 60, "Turso rate limit: Conservative 3-minute interval"),
    "neon": ProviderLimit(1000, 3600, 180, 60, "Neon rate limit: Conservative 3-minute interval"),
    "planetscale": ProviderLimit(
        1000, 3600, 180, 60, "PlanetScale rate limit: Conservative 3-minute interval"
    ),
}


def get_provider_limit(provider: str) -> ProviderLimit:
    return PROVIDER_LIMITS.get(provider, DEFAULT_LIMIT)


@dataclass(frozen=True)
class SyncIntervalCheck:
    valid: bool
    error: str | None = None
    recommended: int | None = None


def validate_sync_interval(provider: str, interval_seconds: int) -> SyncIntervalCheck:
    """Check a requested state-sync interval against the vendor's limits."""
    limit = get_provider_limit(provider)

    if interval_seconds < limit.minimum_sync_interval:
        return SyncIntervalCheck(
            valid=False,
            error=(
                f"Sync interval must be at least {limit.minimum_sync_interval} "
                f"seconds for {provider}"
            ),
            recommended=limit.recommended_sync_interval,
        )

    if interval_seconds < limit.recommended_sync_interval:
        return SyncIntervalCheck(
            valid=True,
            error=(
                f"Recommended minimum is {limit.recommended_sync_interval} seconds "
                f"for {provider}. {limit.reason}"
            ),
            recommended=limit.recommended_sync_interval,
        )

    return SyncIntervalCheck(valid=True)


class ProviderRateLimiter(Protocol):
    async def acquire(self, provider: str, *, cancel: CancelToken | None = None) -> None:
        """Wait until a call to ``provider`` fits in its window."""
        ...


class LocalRateLimiter:
    """Fixed-window limiter shared by every task in this process."""

    def __init__(
        self,
        limits: dict[str, ProviderLimit] | None = None,
        *,
        poll_interval: float = 0.5,
        clock=time.monotonic,
    ) -> None:
        self._limits = limits if limits is not None else PROVIDER_LIMITS
        self._poll_interval = poll_interval
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    def _limit(self, provider: str) -> ProviderLimit:
        return self._limits.get(provider, DEFAULT_LIMIT)

    async def try_acquire(self, provider: str) -> bool:
        limit = self._limit(provider)
        async with self._lock:
            now = self._clock()
            started, count = self._windows.get(provider, (now, 0))
            if now - started >= limit.window_seconds:
                started, count = now, 0
            if count >= limit.max_requests:
                return False
            self._windows[provider] = (started, count + 1)
            return True

    async def acquire(self, provider: str, *, cancel: CancelToken | None = None) -> None:
        while not await self.try_acquire(provider):
            check_cancelled(cancel)
            logger.debug("provider_rate_limited", provider=provider)
            await asyncio.sleep(self._poll_interval)


class RedisRateLimiter:
    """Limiter backed by Redis so every engine worker shares one budget."""

    def __init__(
        self,
        coordinator: RedisCoordinator,
        limits: dict[str, ProviderLimit] | None = None,
        *,
        poll_interval: float = 1.0,
        key_prefix: str = "stackdock:ratelimit",
    ) -> None:
        self._coordinator = coordinator
        self._limits = limits if limits is not None else PROVIDER_LIMITS
        self._poll_interval = poll_interval
        self._key_prefix = key_prefix

    async def acquire(self, provider: str, *, cancel: CancelToken | None = None) -> None:
        limit = self._limits.get(provider, DEFAULT_LIMIT)
        key = f"{self._key_prefix}:{provider}"
        while not await self._coordinator.rate_limit_check(
            key, limit.max_requests, limit.window_seconds
        ):
            check_cancelled(cancel)
            await asyncio.sleep(self._poll_interval)
