import logging
import math
from datetime import date, datetime
from typing import Optional

from revenue_radar.core.cache import CacheService
from revenue_radar.stores.base import CacheRecord

logger = logging.getLogger(__name__)

# Counters outlive their day so a late reader near midnight still sees them
_COUNTER_TTL_SECONDS = 48 * 3600


class RedisRadarStore:
    """Redis-backed store.

    Cache entries carry a native TTL, so the sweep has nothing to do.
    Counters use ``INCR`` which is atomic on the server.
    """

    def __init__(self, cache: CacheService, prefix: str = "radar") -> None:
        self._cache = cache
        self._prefix = prefix

    def _cache_key(self, cache_key: str) -> str:
        return f"{self._prefix}:cache:{cache_key}"

    def _counter_key(self, tenant_id: str, day: date) -> str:
        return f"{self._prefix}:quota:{tenant_id}:{day.isoformat()}"

    async def get_cache_entry(self, cache_key: str) -> Optional[CacheRecord]:
        data = await self._cache.get_json(self._cache_key(cache_key))
        if data is None:
            return None
        try:
            return CacheRecord(
                cache_key=data["cache_key"],
                industry=data["industry"],
                lat_bucket=data["lat_bucket"],
                lng_bucket=data["lng_bucket"],
                radius_miles=data["radius_miles"],
                payload=data["payload"],
                result_count=data["result_count"],
                expires_at=datetime.fromisoformat(data["expires_at"]),
                created_at=datetime.fromisoformat(data["created_at"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed cache entry %s", cache_key)
            return None

    async def upsert_cache_entry(self, record: CacheRecord) -> None:
        ttl = max(1, math.ceil((record.expires_at - record.created_at).total_seconds()))
        await self._cache.set_json(
            self._cache_key(record.cache_key),
            {
                "cache_key": record.cache_key,
                "industry": record.industry,
                "lat_bucket": record.lat_bucket,
                "lng_bucket": record.lng_bucket,
                "radius_miles": record.radius_miles,
                "payload": record.payload,
                "result_count": record.result_count,
                "expires_at": record.expires_at.isoformat(),
                "created_at": record.created_at.isoformat(),
            },
            ttl=ttl,
        )

    async def delete_expired(self, now: datetime) -> int:
        return 0

    async def increment_counter(self, tenant_id: str, day: date, now: datetime) -> int:
        return await self._cache.incr(
            self._counter_key(tenant_id, day), ttl=_COUNTER_TTL_SECONDS
        )

    async def get_counter(self, tenant_id: str, day: date) -> Optional[int]:
        raw = await self._cache.get(self._counter_key(tenant_id, day))
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Non-integer counter for tenant %s on %s", tenant_id, day)
            return None
