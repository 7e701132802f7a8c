"""
Optional Redis connection shared by the route layer.

Redis only accelerates token lookups, so every command degrades to a miss
(or a False acknowledgement) when Redis is disabled, was unreachable at
startup, or fails mid-request. Keys are namespaced with `key_prefix` so
several deployments can share one Redis database.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CacheStatus = Literal["disabled", "healthy", "unhealthy"]


class RedisClient:
    """Pooled async Redis connection that never raises into request handling."""

    def __init__(
        self,
        url: str,
        *,
        enabled: bool = True,
        pool_size: int = 20,
        key_prefix: str = "summaries",
    ) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._prefix = key_prefix
        self._redis: Redis | None = None

    @property
    def enabled(self) -> bool:
        """True unless Redis was switched off in settings."""
        return self._enabled

    @property
    def is_connected(self) -> bool:
        """True once `connect()` reached the server."""
        return self._redis is not None

    def key(self, name: str) -> str:
        """Namespace a key for this deployment."""
        return f"{self._prefix}:{name}"

    async def connect(self) -> None:
        """Open the pool and check the server answers. Failure leaves Redis unused."""
        if not self._enabled:
            logger.info("redis_disabled")
            return
        pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
        redis = Redis(connection_pool=pool)
        try:
            await redis.ping()
        except RedisError as e:
            logger.warning("redis_connect_failed url=%s error=%s", self._url, e)
            await redis.aclose()
            await pool.aclose()
            return
        self._redis = redis
        logger.info("redis_connected pool_size=%s", self._pool_size)

    async def close(self) -> None:
        """Release the pool."""
        redis, self._redis = self._redis, None
        if redis is not None:
            await redis.aclose(close_connection_pool=True)
            logger.info("redis_closed")

    async def status(self) -> CacheStatus:
        """Health of the cache as reported by `/health`."""
        if not self._enabled:
            return "disabled"
        return "healthy" if await self._run("ping", lambda r: r.ping()) else "unhealthy"

    async def get(self, name: str) -> bytes | None:
        """Read a namespaced key; None on a miss or when Redis is unavailable."""
        return await self._run("get", lambda r: r.get(self.key(name)))

    async def put(self, name: str, value: str | bytes, ttl_seconds: int) -> bool:
        """Write a namespaced key with an expiry. Returns False if not stored."""
        return bool(await self._run("put", lambda r: r.set(self.key(name), value, ex=ttl_seconds)))

    async def discard(self, name: str) -> bool:
        """Delete a namespaced key. Returns False if Redis was not reached."""
        return await self._run("discard", lambda r: r.delete(self.key(name))) is not None

    async def _run(self, op: str, command: Callable[[Redis], Awaitable[Any]]) -> Any:
        if self._redis is None:
            return None
        try:
            return await command(self._redis)
        except RedisError as e:
            logger.warning("redis_command_failed op=%s error=%s", op, e)
            return None


# Global Redis client state using a container to avoid global statement
class _RedisState:
    """Container for the application's Redis client."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """Get the application's Redis client, if started."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Install (or clear) the application's Redis client."""
    _state.client = client
