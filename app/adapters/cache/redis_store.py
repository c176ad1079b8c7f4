"""Redis-backed cache store.

Shared by every server process, so counters and session entries are
consistent across a horizontally scaled deployment. All calls are bounded by
the configured socket/connect timeout and fail fast with
CacheStoreUnavailableError instead of leaking redis exceptions.
"""

from __future__ import annotations

import logging

from redis import asyncio as redis_async
from redis.exceptions import RedisError

from app.adapters.cache.base import AbstractCacheStore, CounterState
from app.core.errors import CacheStoreUnavailableError

logger = logging.getLogger(__name__)

# INCR + first EXPIRE executed server-side as one atomic step.
# Returns {count, ttl}.
_INCR_WITH_EXPIRE_LUA = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('TTL', KEYS[1])
if count == 1 or ttl == -1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisCacheStore(AbstractCacheStore):
    """Cache store on top of ``redis.asyncio``."""

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = 10.0,
        client: redis_async.Redis | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            url: Redis connection URL.
            timeout_seconds: Upper bound for connect and every command.
            client: Pre-built client (tests); built lazily from ``url`` otherwise.
        """
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._incr_script = None

    @property
    def client(self) -> redis_async.Redis:
        if self._client is None:
            self._client = redis_async.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=self._timeout_seconds,
                socket_connect_timeout=self._timeout_seconds,
                health_check_interval=30,
            )
        return self._client

    async def connect(self) -> None:
        """Build the client and check the server answers.

        An unreachable server is logged, not raised: the degradation layer
        keeps probing and the app starts in degraded mode.
        """
        try:
            await self.client.ping()
            logger.info("cache.connected", extra={"backend": "redis"})
        except RedisError as exc:
            logger.error(
                "cache.connect_failed",
                extra={"backend": "redis", "error_type": type(exc).__name__},
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._incr_script = None
            logger.info("cache.closed", extra={"backend": "redis"})

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            raise CacheStoreUnavailableError("PING", exc) from exc

    async def incr_with_expire(self, key: str, ttl_seconds: int) -> CounterState:
        if self._incr_script is None:
            self._incr_script = self.client.register_script(_INCR_WITH_EXPIRE_LUA)
        try:
            count, ttl = await self._incr_script(keys=[key], args=[ttl_seconds])
        except RedisError as exc:
            raise CacheStoreUnavailableError("INCR", exc) from exc
        return CounterState(count=int(count), ttl_seconds=int(ttl))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise CacheStoreUnavailableError("SET", exc) from exc

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except RedisError as exc:
            raise CacheStoreUnavailableError("GET", exc) from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self.client.delete(*keys))
        except RedisError as exc:
            raise CacheStoreUnavailableError("DEL", exc) from exc

    async def ttl(self, key: str) -> int:
        try:
            return int(await self.client.ttl(key))
        except RedisError as exc:
            raise CacheStoreUnavailableError("TTL", exc) from exc

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self.client.expire(key, ttl_seconds))
        except RedisError as exc:
            raise CacheStoreUnavailableError("EXPIRE", exc) from exc
