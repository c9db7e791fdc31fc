from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from revenue_radar.core.cache import CacheService
from revenue_radar.core.exceptions import ProviderError, StoreUnavailableError
from revenue_radar.main import app
from revenue_radar.providers.base import ProviderSet
from revenue_radar.schemas.common import StormSeverity, StormType
from revenue_radar.schemas.provider import (
    Address,
    AreaDemographics,
    GeoPoint,
    Listing,
    PermitRecord,
    StormData,
    StormEvent,
    TractStat,
)
from revenue_radar.services.profile_registry import load_default_registry
from revenue_radar.services.radar_cache import RadarCache
from revenue_radar.services.rate_limiter import SearchRateLimiter
from revenue_radar.stores.base import CacheRecord

FIXED_NOW = datetime(2026, 5, 14, 15, 30, tzinfo=timezone.utc)

# Dallas, TX
CENTER_LAT = 32.7767
CENTER_LNG = -96.7970


class FakeClock:
    """Settable clock shared by the cache, limiter and discovery service."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryStore:
    """PersistentStore double; set ``available = False`` to simulate an outage."""

    def __init__(self):
        self.entries: Dict[str, CacheRecord] = {}
        self.counters: Dict[Tuple[str, date], int] = {}
        self.available = True
        self.upserts = 0

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailableError("in-memory store offline")

    async def get_cache_entry(self, cache_key: str) -> Optional[CacheRecord]:
        self._check()
        return self.entries.get(cache_key)

    async def upsert_cache_entry(self, record: CacheRecord) -> None:
        self._check()
        self.upserts += 1
        self.entries[record.cache_key] = record

    async def delete_expired(self, now: datetime) -> int:
        self._check()
        expired = [k for k, r in self.entries.items() if r.expires_at <= now]
        for key in expired:
            del self.entries[key]
        return len(expired)

    async def increment_counter(self, tenant_id: str, day: date, now: datetime) -> int:
        self._check()
        key = (tenant_id, day)
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def get_counter(self, tenant_id: str, day: date) -> Optional[int]:
        self._check()
        return self.counters.get((tenant_id, day))


# ---------------------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------------------


def make_listing(
    listing_id: str,
    name: str = "Acme Dental",
    lat: float = CENTER_LAT,
    lng: float = CENTER_LNG,
    rating: Optional[float] = 4.6,
    review_count: Optional[int] = 120,
    types: Optional[List[str]] = None,
    business_status: str = "OPERATIONAL",
    open_now: Optional[bool] = None,
) -> Listing:
    return Listing(
        id=listing_id,
        name=name,
        location=GeoPoint(lat=lat, lng=lng),
        vicinity="123 Main St, Dallas",
        rating=rating,
        review_count=review_count,
        types=types or ["dentist", "establishment"],
        business_status=business_status,
        open_now=open_now,
    )


class FakeListings:
    def __init__(self, by_keyword: Optional[Dict[str, List[Listing]]] = None):
        self.by_keyword = by_keyword or {}
        self.calls: List[str] = []

    async def search(self, lat, lng, radius_meters, keyword):
        self.calls.append(keyword)
        return list(self.by_keyword.get(keyword, []))


class FakeDemographics:
    def __init__(self, tract: Optional[TractStat] = None):
        self.tract = tract or TractStat(
            id="48113000100",
            state="48",
            county="113",
            tract="000100",
            median_year_built=2006,
            median_income=98_000,
            owner_occupied_pct=85,
            total_housing_units=1200,
            estimated_median_age=20,
        )
        self.area_calls = 0
        self.point_calls = 0

    async def tract_stats_for_area(self, lat, lng, radius_miles):
        self.area_calls += 1
        return AreaDemographics(
            tracts=[self.tract],
            area_median_year_built=self.tract.median_year_built,
            area_median_income=self.tract.median_income,
            area_owner_occupied_pct=self.tract.owner_occupied_pct,
            area_total_units=self.tract.total_housing_units or 0,
        )

    async def tract_for_point(self, lat, lng):
        self.point_calls += 1
        return self.tract.id


class FakeWeather:
    def __init__(self, events: Optional[List[StormEvent]] = None, fail: bool = False):
        self.events = events if events is not None else [
            StormEvent(
                id="spc-hail-1",
                type=StormType.hail,
                severity=StormSeverity.severe,
                lat=CENTER_LAT + 0.01,
                lng=CENTER_LNG,
                days_ago=0,
                label="Hail 2.00in",
                source="SPC",
            )
        ]
        self.fail = fail
        self.calls = 0

    async def storms_near(self, lat, lng, radius_miles):
        self.calls += 1
        if self.fail:
            raise ProviderError("noaa", "HTTP 503")
        return StormData(
            events=self.events,
            overlay={
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "geometry": {"type": "Point", "coordinates": [e.lng, e.lat]},
                        "properties": {"id": e.id},
                    }
                    for e in self.events
                ],
            },
        )


class FakeGeocoder:
    def __init__(self, resolve_every: int = 1):
        self.resolve_every = resolve_every
        self.calls = 0

    async def reverse_geocode(self, lat, lng):
        self.calls += 1
        if self.calls % self.resolve_every:
            return None
        return Address(
            formatted=f"{self.calls} Elm St, Dallas, TX 75201, USA",
            street=f"{self.calls} Elm St",
            city="Dallas",
            state="TX",
            zip="75201",
        )


class FakePermits:
    def __init__(self, permits: Optional[List[PermitRecord]] = None):
        self.permits = permits or []
        self.calls = 0

    async def permits_near(self, lat, lng, radius_miles):
        self.calls += 1
        return list(self.permits)


class FakeProviders:
    """Bundle of provider doubles with a combined call count."""

    def __init__(self, **overrides):
        self.listings = overrides.get("listings", FakeListings())
        self.demographics = overrides.get("demographics", FakeDemographics())
        self.weather = overrides.get("weather", FakeWeather())
        self.geocoder = overrides.get("geocoder", FakeGeocoder())
        self.permits = overrides.get("permits", FakePermits())

    def as_set(self) -> ProviderSet:
        return ProviderSet(
            listings=self.listings,
            demographics=self.demographics,
            weather=self.weather,
            geocoder=self.geocoder,
            permits=self.permits,
        )

    @property
    def total_calls(self) -> int:
        return (
            len(self.listings.calls)
            + self.demographics.area_calls
            + self.demographics.point_calls
            + self.weather.calls
            + self.geocoder.calls
            + self.permits.calls
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def radar_cache(store, clock) -> RadarCache:
    return RadarCache(store, ttl=timedelta(hours=6), clock=clock)


@pytest.fixture
def rate_limiter(store, clock) -> SearchRateLimiter:
    return SearchRateLimiter(store, daily_limit=25, clock=clock)


@pytest.fixture
def registry():
    return load_default_registry()


@pytest.fixture
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.setex = AsyncMock()
    redis.incr = AsyncMock(return_value=1)
    redis.expire = AsyncMock()
    redis.ping = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> CacheService:
    """Return a ``CacheService`` backed by the mock Redis client."""
    return CacheService(redis_client=mock_redis)
