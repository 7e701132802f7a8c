"""Caching of access-token lookups to avoid a gateway round trip per request."""
import hashlib
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from schemas.auth import AuthUser

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

# Cache schema version - included in all cache keys (e.g., "auth:v1:token:...")
#
# Bump this version when the cached AuthUser fields change. Old entries are
# then never found and expire naturally via TTL.
CACHE_SCHEMA_VERSION = 1


class AuthCache:
    """
    Cache of access token -> identity lookups.

    Keys are derived from a SHA-256 digest of the token so raw tokens are
    never stored in Redis.
    """

    CACHE_TTL = 300  # 5 minutes

    def __init__(self, redis_client: "RedisClient") -> None:
        """Initialize auth cache with Redis client."""
        self._redis = redis_client

    def _cache_key(self, access_token: str) -> str:
        """Generate cache key for a token lookup."""
        digest = hashlib.sha256(access_token.encode()).hexdigest()
        return f"auth:v{CACHE_SCHEMA_VERSION}:token:{digest}"

    async def get(self, access_token: str) -> AuthUser | None:
        """
        Get the cached identity for a token.

        Returns:
            AuthUser if found in cache, None on cache miss or unreadable entry.
        """
        data = await self._redis.get(self._cache_key(access_token))
        if not data:
            logger.debug("auth_cache_miss")
            return None
        try:
            user = AuthUser.model_validate_json(data)
        except ValidationError:
            logger.warning("auth_cache_corrupt_entry")
            return None
        logger.debug("auth_cache_hit user_id=%s", user.id)
        return user

    async def set(self, access_token: str, user: AuthUser) -> None:
        """Cache the identity behind a token."""
        await self._redis.put(
            self._cache_key(access_token), user.model_dump_json(), self.CACHE_TTL,
        )
        logger.debug("auth_cache_set user_id=%s", user.id)

    async def invalidate(self, access_token: str) -> None:
        """Drop a token's cached identity (e.g. on sign-out)."""
        await self._redis.discard(self._cache_key(access_token))
        logger.debug("auth_cache_invalidate")


class _AuthCacheState:
    """Holds the auth cache installed at startup. None when Redis is unavailable."""

    cache: AuthCache | None = None


_state = _AuthCacheState()


def get_auth_cache() -> AuthCache | None:
    """Return the installed auth cache, if any."""
    return _state.cache


def set_auth_cache(cache: AuthCache | None) -> None:
    """Install (or clear) the auth cache."""
    _state.cache = cache
