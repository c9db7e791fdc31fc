import logging
from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from redis.asyncio import Redis

from revenue_radar.core.cache import CacheService
from revenue_radar.core.config import settings
from revenue_radar.core.database import AsyncSessionLocal
from revenue_radar.providers.base import ProviderSet
from revenue_radar.providers.census import CensusProvider
from revenue_radar.providers.geocoding import GoogleGeocodingProvider
from revenue_radar.providers.google_places import GooglePlacesProvider
from revenue_radar.providers.noaa import NoaaStormProvider
from revenue_radar.providers.permits import NullPermitProvider
from revenue_radar.services.lead_discovery import LeadDiscoveryService
from revenue_radar.services.profile_registry import ProfileRegistry, load_default_registry
from revenue_radar.services.radar_cache import RadarCache
from revenue_radar.services.rate_limiter import SearchRateLimiter
from revenue_radar.stores.base import PersistentStore
from revenue_radar.stores.redis_store import RedisRadarStore
from revenue_radar.stores.sql_store import SqlRadarStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Get an async Redis client instance using connection pooling."""
    client = Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    try:
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable, radar store will fail open")
        await client.aclose()
        return None


# ---------------------------------------------------------------------------
# Persistent store
# ---------------------------------------------------------------------------


def build_persistent_store(
    backend: str = settings.STORE_BACKEND, redis_client: Optional[Redis] = None
) -> PersistentStore:
    """Store for cache rows and daily counters, chosen by ``STORE_BACKEND``."""
    if backend == "redis":
        return RedisRadarStore(CacheService(redis_client=redis_client))
    if backend != "postgres":
        raise ValueError(f"Unknown STORE_BACKEND {backend!r}")
    return SqlRadarStore(AsyncSessionLocal)


async def get_persistent_store() -> AsyncGenerator[PersistentStore, None]:
    """Per-request store; a Redis client is closed once the request is done."""
    if settings.STORE_BACKEND != "redis":
        yield build_persistent_store("postgres")
        return
    client = await get_redis_client()
    try:
        yield build_persistent_store("redis", client)
    finally:
        if client is not None:
            await client.aclose()


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_radar_cache(
    store: PersistentStore = Depends(get_persistent_store),
) -> RadarCache:
    return RadarCache(store)


async def get_rate_limiter(
    store: PersistentStore = Depends(get_persistent_store),
) -> SearchRateLimiter:
    return SearchRateLimiter(store)


@lru_cache(maxsize=1)
def get_provider_set() -> ProviderSet:
    """Concrete provider clients; each opens short-lived httpx clients per call."""
    return ProviderSet(
        listings=GooglePlacesProvider(),
        demographics=CensusProvider(),
        weather=NoaaStormProvider(),
        geocoder=GoogleGeocodingProvider(),
        permits=NullPermitProvider(),
    )


def get_profile_registry() -> ProfileRegistry:
    return load_default_registry()


async def get_lead_discovery_service(
    cache: RadarCache = Depends(get_radar_cache),
    rate_limiter: SearchRateLimiter = Depends(get_rate_limiter),
    providers: ProviderSet = Depends(get_provider_set),
    registry: ProfileRegistry = Depends(get_profile_registry),
) -> LeadDiscoveryService:
    """Build a :class:`LeadDiscoveryService` with injected dependencies."""
    return LeadDiscoveryService(
        providers=providers,
        cache=cache,
        rate_limiter=rate_limiter,
        registry=registry,
    )


async def get_tenant_id(
    org_id: Optional[str] = Header(None, alias="X-Org-Id"),
) -> Optional[str]:
    """Tenant for quota accounting; ``None`` runs the search unmetered."""
    if org_id is None:
        return None
    return org_id.strip() or None
