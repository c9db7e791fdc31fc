"""Spatially bucketed search result cache."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from revenue_radar.core.clock import utc_now
from revenue_radar.core.config import settings
from revenue_radar.core.constants import CACHE_COORD_DECIMALS, CACHE_RADIUS_BUCKET_MILES
from revenue_radar.core.exceptions import StoreUnavailableError
from revenue_radar.core.geo import round_half_up
from revenue_radar.schemas.common import CacheStatus
from revenue_radar.stores.base import CacheRecord, PersistentStore

logger = logging.getLogger(__name__)


def bucket_coordinate(value: float) -> float:
    return round_half_up(value, CACHE_COORD_DECIMALS)


def bucket_radius(radius_miles: float) -> int:
    """Nearest multiple of the radius bucket, never below one bucket."""
    buckets = round_half_up(radius_miles / CACHE_RADIUS_BUCKET_MILES)
    return int(max(1, buckets) * CACHE_RADIUS_BUCKET_MILES)


def make_cache_key(
    lat: float,
    lng: float,
    industry_key: str,
    radius_miles: float,
    version: str = settings.CACHE_KEY_VERSION,
) -> str:
    """Deterministic key shared by every search in the same bucket.

    Coordinates snap to a ~1.1 km grid and the radius to the nearest
    5 mile bucket, so nearby searches with the same industry collide.
    """
    lat_b = bucket_coordinate(lat)
    lng_b = bucket_coordinate(lng)
    return f"{version}:{lat_b:g}:{lng_b:g}:{industry_key}:{bucket_radius(radius_miles)}"


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    payload: Optional[Dict[str, Any]] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.hit


class RadarCache:
    """Fail-open cache over a :class:`PersistentStore`.

    Reads never raise: store errors and expired rows both come back as
    a non-hit lookup. Writes log and swallow failures.
    """

    def __init__(
        self,
        store: PersistentStore,
        ttl: timedelta = timedelta(hours=settings.CACHE_TTL_HOURS),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def get(self, cache_key: str) -> CacheLookup:
        try:
            record = await self.store.get_cache_entry(cache_key)
        except StoreUnavailableError as exc:
            logger.warning(f"Cache read unavailable for {cache_key}: {exc.detail}")
            return CacheLookup(CacheStatus.unavailable)

        if record is None:
            logger.debug(f"Cache miss: {cache_key}")
            return CacheLookup(CacheStatus.miss)
        if record.expires_at <= self.clock():
            logger.debug(f"Cache entry expired: {cache_key}")
            return CacheLookup(CacheStatus.expired)

        logger.info(f"Cache hit: {cache_key}")
        return CacheLookup(CacheStatus.hit, record.payload)

    async def put(
        self,
        cache_key: str,
        payload: Dict[str, Any],
        *,
        industry: str,
        lat: float,
        lng: float,
        radius_miles: float,
        result_count: int,
    ) -> bool:
        now = self.clock()
        record = CacheRecord(
            cache_key=cache_key,
            industry=industry,
            lat_bucket=bucket_coordinate(lat),
            lng_bucket=bucket_coordinate(lng),
            radius_miles=bucket_radius(radius_miles),
            payload=payload,
            result_count=result_count,
            expires_at=now + self.ttl,
            created_at=now,
        )
        try:
            await self.store.upsert_cache_entry(record)
        except StoreUnavailableError as exc:
            logger.warning(f"Cache write failed for {cache_key}: {exc.detail}")
            return False
        return True

    async def sweep(self) -> int:
        """Delete expired rows. Safe to run repeatedly and concurrently."""
        try:
            deleted = await self.store.delete_expired(self.clock())
        except StoreUnavailableError as exc:
            logger.warning(f"Cache sweep skipped: {exc.detail}")
            return 0
        logger.info(f"Cache sweep removed {deleted} expired entries")
        return deleted
