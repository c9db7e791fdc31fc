import json
import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from revenue_radar.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class CacheService:
    """Thin wrapper around an async Redis client.

    Unlike a best-effort cache, every backend failure surfaces as
    :class:`StoreUnavailableError` so callers can tell "key absent"
    (``None``) apart from "Redis down". If *redis_client* is ``None``
    every operation raises immediately.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    def _client(self) -> Redis:
        if self._redis is None:
            raise StoreUnavailableError("Redis client is not configured")
        return self._redis

    # ------------------------------------------------------------------
    # Core get / set
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """Return the raw string value for *key*, or ``None``."""
        try:
            return await self._client().get(key)
        except RedisError as exc:
            logger.warning("Redis GET failed for key %s", key)
            raise StoreUnavailableError(f"Redis GET failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a raw string value, optionally with a TTL (seconds)."""
        try:
            if ttl:
                await self._client().setex(key, ttl, value)
            else:
                await self._client().set(key, value)
        except RedisError as exc:
            logger.warning("Redis SET failed for key %s", key)
            raise StoreUnavailableError(f"Redis SET failed: {exc}") from exc

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Deserialise a JSON-encoded value; corrupt values read as absent."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid JSON in cache key %s", key)
            return None

    async def set_json(
        self, key: str, data: Dict[str, Any], ttl: Optional[int] = None
    ) -> None:
        payload = json.dumps(data, default=str)
        await self.set(key, payload, ttl=ttl)

    # ------------------------------------------------------------------
    # Atomic counter
    # ------------------------------------------------------------------

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        """Atomically increment an integer counter and return the new value."""
        try:
            value = await self._client().incr(key)
            if ttl:
                await self._client().expire(key, ttl)
            return int(value)
        except RedisError as exc:
            logger.warning("Redis INCR failed for key %s", key)
            raise StoreUnavailableError(f"Redis INCR failed: {exc}") from exc

    @property
    def is_available(self) -> bool:
        """Return ``True`` if a Redis client is configured."""
        return self._redis is not None
