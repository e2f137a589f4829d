from __future__ import annotations

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

_RATE_LIMIT_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    redis.call('SET', KEYS[1], 1, 'EX', ARGV[1])
    return 1
end
if tonumber(current) >= tonumber(ARGV[2]) then
    return 0
end
redis.call('INCR', KEYS[1])
return 1
"""


class RedisCoordinator:
    """Redis-backed rate limiting shared across engine workers."""

    def __init__(
        self,
        redis_url: str,
        max_connections: int = 50,
        redis_client: aioredis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._pool: aioredis.ConnectionPool | None = None
        self._client: aioredis.Redis | None = redis_client

        if redis_client is None:
            self._pool = aioredis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                decode_responses=True,
            )

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis(connection_pool=self._pool)
        return self._client

    async def rate_limit_check(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> bool:
        """
        Count a request against a fixed window.
        Returns True if request is allowed, False if rate limited.
        """
        client = await self._get_client()
        allowed = await client.eval(
            _RATE_LIMIT_SCRIPT,
            1,
            key,
            window_seconds,
            max_requests,
        )

        if not allowed:
            logger.warning("rate_limit_exceeded", key=key, max=max_requests)
        return bool(allowed)
