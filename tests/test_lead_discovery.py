import asyncio
import json
from datetime import timedelta

import pytest

from revenue_radar.core.constants import CANVASS_RADIUS_METERS
from revenue_radar.core.exceptions import (
    InvalidSearchError,
    SearchDeadlineExceededError,
    SearchQuotaExceededError,
)
from revenue_radar.core.geo import haversine_meters
from revenue_radar.schemas.lead import ScoredLead
from revenue_radar.schemas.provider import PermitRecord, StormData
from revenue_radar.schemas.search import SearchRequest
from revenue_radar.services.lead_discovery import LeadDiscoveryService, resolve_industry
from revenue_radar.services.radar_cache import make_cache_key
from revenue_radar.stores.base import CacheRecord
from tests.conftest import (
    CENTER_LAT,
    CENTER_LNG,
    FakeListings,
    FakePermits,
    FakeProviders,
    FakeWeather,
    make_listing,
)

TENANT = "org-1"


def _service(providers, radar_cache, rate_limiter, registry, clock, **kwargs):
    return LeadDiscoveryService(
        providers=providers.as_set(),
        cache=radar_cache,
        rate_limiter=rate_limiter,
        registry=registry,
        clock=clock,
        **kwargs,
    )


def _request(**overrides):
    params = {"lat": CENTER_LAT, "lng": CENTER_LNG, "radius": 10, "industry": "roofing"}
    params.update(overrides)
    return params


def _lead_properties(response):
    return [
        f["properties"]
        for f in response.leads["features"]
        if not f["properties"].get("is_cluster")
    ]


def _lead(lead_id, lat, lng):
    return ScoredLead(
        id=lead_id,
        lat=lat,
        lng=lng,
        name=lead_id,
        score=5,
        type="Residential",
        trigger="Age",
        distance=0,
        reasons=["Older homes"],
        industry="roofing",
    )


@pytest.fixture
def service(fake_providers, radar_cache, rate_limiter, registry, clock):
    return _service(fake_providers, radar_cache, rate_limiter, registry, clock)


class TestResidentialSearch:
    """Cache-miss pipeline for residential trades."""

    @pytest.mark.asyncio
    async def test_miss_builds_scored_clustered_payload(self, service, fake_providers):
        """A cache miss returns scored, clustered leads with every layer."""
        response = await service.search(_request(), tenant_id=TENANT)

        meta = response.meta
        assert meta.cached is False
        assert meta.industry == "roofing"
        assert meta.trade == "roofing"
        assert meta.result_count > 0
        assert response.neighborhoods is not None
        assert response.census_stats["tract_count"] == 1
        assert len(response.storms["features"]) == 1

        leads = [
            f["properties"]
            for f in response.leads["features"]
            if not f["properties"].get("is_cluster")
        ]
        assert len(leads) == meta.result_count
        for lead in leads:
            assert 1 <= lead["score"] <= 10
            assert lead["reasons"]
            assert lead["city"] == "Dallas"
            assert lead["has_storm"] is True

    @pytest.mark.asyncio
    async def test_repeat_search_is_served_from_cache(self, service, fake_providers):
        """A repeat search reuses the cached payload without provider calls."""
        first = await service.search(_request(), tenant_id=TENANT)
        calls_after_miss = fake_providers.total_calls

        second = await service.search(_request(), tenant_id=TENANT)

        assert fake_providers.total_calls == calls_after_miss
        assert second.meta.cached is True
        assert json.dumps(second.leads) == json.dumps(first.leads)
        assert json.dumps(second.neighborhoods) == json.dumps(first.neighborhoods)
        assert second.meta.timestamp == first.meta.timestamp

    @pytest.mark.asyncio
    async def test_same_inputs_generate_same_candidates(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """The same search yields the same candidate leads."""
        runs = []
        for _ in range(2):
            providers = FakeProviders()
            svc = _service(providers, radar_cache, rate_limiter, registry, clock)
            response = await svc.search(_request(nocache=True))
            runs.append(json.dumps(response.leads))

        assert runs[0] == runs[1]

    @pytest.mark.asyncio
    async def test_weather_failure_empties_only_storm_layer(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """A weather outage empties the storm layer and keeps the rest."""
        providers = FakeProviders(weather=FakeWeather(fail=True))
        svc = _service(providers, radar_cache, rate_limiter, registry, clock)

        response = await svc.search(_request())

        assert response.storms["features"] == []
        assert response.meta.result_count > 0
        assert response.census_stats is not None
        lead = next(
            f["properties"]
            for f in response.leads["features"]
            if not f["properties"].get("is_cluster")
        )
        assert lead["median_income"] == 98_000
        assert lead["has_storm"] is False

    @pytest.mark.asyncio
    async def test_trade_defaults_to_general_for_residential_service(self, service):
        """Residential service searches default to the general trade."""
        response = await service.search(_request(industry="residential_service"))

        assert response.meta.trade == "general"

    @pytest.mark.asyncio
    async def test_unknown_trade_falls_back_to_general(self, service):
        """An unknown trade falls back to the general profile."""
        response = await service.search(_request(trade="chimney_sweep"))

        assert response.meta.trade == "general"


class TestPermitsAndCanvassing:
    """Permit matching and door-knocking counts on residential leads."""

    def test_permit_within_half_mile_is_matched(self):
        """The closest permit inside half a mile names the permit signal."""
        close = PermitRecord(
            id="p1", lat=CENTER_LAT + 0.002, lng=CENTER_LNG, permit_type="Reroof"
        )
        edge = PermitRecord(
            id="p2", lat=CENTER_LAT + 0.007, lng=CENTER_LNG, permit_type="Fence"
        )

        signals = LeadDiscoveryService._signals_for(
            CENTER_LAT, CENTER_LNG, None, StormData(), [edge, close]
        )

        assert signals.has_permit_activity is True
        assert signals.permit_info == "Reroof permit nearby"

    def test_permit_beyond_half_mile_is_ignored(self):
        """A permit about 0.52 miles away does not count."""
        far = PermitRecord(
            id="p3", lat=CENTER_LAT + 0.0075, lng=CENTER_LNG, permit_type="Pool"
        )

        signals = LeadDiscoveryService._signals_for(
            CENTER_LAT, CENTER_LNG, None, StormData(), [far]
        )

        assert signals.has_permit_activity is False
        assert signals.permit_info is None

    @pytest.mark.asyncio
    async def test_search_marks_leads_and_maps_permits(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """Leads near a permit are flagged and every permit reaches the map layer."""
        near = PermitRecord(
            id="p-near",
            lat=CENTER_LAT,
            lng=CENTER_LNG,
            permit_type="Roof Replacement",
            issued_days_ago=12,
        )
        far = PermitRecord(
            id="p-far", lat=CENTER_LAT + 0.5, lng=CENTER_LNG, permit_type="Pool"
        )
        providers = FakeProviders(permits=FakePermits([far, near]))
        svc = _service(providers, radar_cache, rate_limiter, registry, clock)

        # Every candidate lies within 0.3 miles of the near permit
        response = await svc.search(_request(radius=0.3))

        leads = _lead_properties(response)
        assert leads
        for lead in leads:
            assert lead["has_permit"] is True
            assert lead["permit_history"] == "Roof Replacement permit nearby"

        features = response.permits["features"]
        assert [f["properties"]["id"] for f in features] == ["p-far", "p-near"]
        assert features[1]["geometry"]["coordinates"] == [CENTER_LNG, CENTER_LAT]
        assert features[1]["properties"]["issued_days_ago"] == 12

    @pytest.mark.asyncio
    async def test_without_permits_leads_report_none(self, service):
        """No permit data leaves every lead without permit activity."""
        response = await service.search(_request())

        assert response.permits["features"] == []
        for lead in _lead_properties(response):
            assert lead["has_permit"] is False
            assert lead["permit_history"] == "None nearby"

    def test_nearby_count_uses_canvass_radius(self):
        """Only other leads within about 0.3 miles are counted."""
        origin = _lead("a", CENTER_LAT, CENTER_LNG)
        inside = _lead("b", CENTER_LAT + 0.004, CENTER_LNG)
        outside = _lead("c", CENTER_LAT + 0.0045, CENTER_LNG)
        leads = [origin, inside, outside]

        assert LeadDiscoveryService._nearby_count(origin, leads) == 1
        assert LeadDiscoveryService._nearby_count(inside, leads) == 2
        assert LeadDiscoveryService._nearby_count(outside, leads) == 1

    @pytest.mark.asyncio
    async def test_search_counts_returned_neighbours(self, service):
        """Each returned lead counts the other returned leads around it."""
        response = await service.search(_request(radius=1))

        leads = _lead_properties(response)
        for lead in leads:
            expected = sum(
                1
                for other in leads
                if other["id"] != lead["id"]
                and haversine_meters(lead["lat"], lead["lng"], other["lat"], other["lng"])
                <= CANVASS_RADIUS_METERS
            )
            assert lead["nearby_count"] == expected

        counts = [lead["nearby_count"] for lead in leads]
        assert max(counts) > 0
        assert min(counts) < len(leads) - 1


class TestQuotaAccounting:
    """Only cache misses consume the tenant's daily quota."""

    @pytest.mark.asyncio
    async def test_hits_do_not_count(self, service, store, clock):
        """Cache hits do not consume quota."""
        first = await service.search(_request(), tenant_id=TENANT)
        second = await service.search(_request(), tenant_id=TENANT)

        assert store.counters[(TENANT, clock().date())] == 1
        assert first.meta.remaining == 24
        assert second.meta.remaining == 24
        assert second.meta.limit == 25

    @pytest.mark.asyncio
    async def test_exhausted_quota_blocks_before_providers(
        self, service, store, clock, fake_providers
    ):
        """An exhausted quota stops the search before any provider call."""
        store.counters[(TENANT, clock().date())] = 25

        with pytest.raises(SearchQuotaExceededError):
            await service.search(_request(), tenant_id=TENANT)

        assert fake_providers.total_calls == 0

    @pytest.mark.asyncio
    async def test_unmetered_search_has_no_remaining(self, service, store):
        """Searches without a tenant report no remaining quota."""
        response = await service.search(_request())

        assert response.meta.remaining is None
        assert store.counters == {}

    @pytest.mark.asyncio
    async def test_store_outage_still_searches(self, service, store, fake_providers):
        """A store outage still returns fresh results."""
        store.available = False

        first = await service.search(_request(), tenant_id=TENANT)
        second = await service.search(_request(), tenant_id=TENANT)

        assert first.meta.cached is False
        assert second.meta.cached is False
        assert second.meta.remaining == 25


class TestSearchGuards:
    """Validation, deadlines and cache bypass."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [{"lat": 91}, {"lng": -181}, {"radius": 0}, {"radius": -3}, {"lat": "nan"}],
    )
    async def test_invalid_parameters_rejected_before_providers(
        self, service, fake_providers, overrides
    ):
        """Invalid parameters are rejected before any provider call."""
        with pytest.raises(InvalidSearchError):
            await service.search(_request(**overrides), tenant_id=TENANT)

        assert fake_providers.total_calls == 0

    @pytest.mark.asyncio
    async def test_deadline_exceeded_caches_and_counts_nothing(
        self, radar_cache, rate_limiter, registry, clock, store
    ):
        """A search past its deadline is neither cached nor counted."""
        class SlowWeather(FakeWeather):
            async def storms_near(self, lat, lng, radius_miles):
                await asyncio.sleep(1)
                return await super().storms_near(lat, lng, radius_miles)

        providers = FakeProviders(weather=SlowWeather())
        svc = _service(
            providers,
            radar_cache,
            rate_limiter,
            registry,
            clock,
            deadline_seconds=0.05,
            provider_timeout=5,
        )

        with pytest.raises(SearchDeadlineExceededError):
            await svc.search(_request(), tenant_id=TENANT)

        assert store.upserts == 0
        assert store.counters == {}

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_to_empty_layer(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """A slow provider times out to an empty layer."""
        class SlowWeather(FakeWeather):
            async def storms_near(self, lat, lng, radius_miles):
                await asyncio.sleep(1)
                return await super().storms_near(lat, lng, radius_miles)

        providers = FakeProviders(weather=SlowWeather())
        svc = _service(
            providers, radar_cache, rate_limiter, registry, clock, provider_timeout=0.05
        )

        response = await svc.search(_request())

        assert response.storms["features"] == []
        assert response.meta.result_count > 0

    @pytest.mark.asyncio
    async def test_nocache_skips_read_but_writes(self, service, fake_providers, store):
        """Bypassing the cache still refreshes the cached entry."""
        await service.search(_request())
        calls = fake_providers.total_calls

        response = await service.search(_request(nocache=True))

        assert response.meta.cached is False
        assert fake_providers.total_calls > calls
        assert store.upserts == 2

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_searches_again(
        self, service, store, clock, fake_providers
    ):
        """A cached payload without its metadata is replaced by a fresh search."""
        key = make_cache_key(CENTER_LAT, CENTER_LNG, "roofing:roofing", 10)
        store.entries[key] = CacheRecord(
            cache_key=key,
            industry="roofing",
            lat_bucket=32.78,
            lng_bucket=-96.8,
            radius_miles=10,
            payload={"leads": {}},
            result_count=0,
            expires_at=clock() + timedelta(hours=1),
            created_at=clock(),
        )

        response = await service.search(_request(), tenant_id=TENANT)

        assert response.meta.cached is False
        assert fake_providers.total_calls > 0
        assert store.entries[key].payload["meta"]["result_count"] == (
            response.meta.result_count
        )
        assert store.counters[(TENANT, clock().date())] == 1

    @pytest.mark.asyncio
    async def test_accepts_request_model(self, service):
        """A SearchRequest instance is accepted as is."""
        response = await service.search(SearchRequest(**_request()))

        assert response.meta.industry == "roofing"


class TestPlacesSearch:
    """Keyword fan-out, dedupe and ranking for commercial industries."""

    @pytest.fixture
    def listings(self):
        struggling = make_listing("a", name="Ajax Consulting", rating=3.1, review_count=4)
        healthy = make_listing("b", name="Bolt Marketing", rating=4.8, review_count=300)
        closed = make_listing("c", name="Closed Co", business_status="CLOSED_PERMANENTLY")
        return FakeListings(
            {
                "business services": [healthy, struggling],
                "marketing agency": [struggling, closed],
            }
        )

    @pytest.mark.asyncio
    async def test_dedupes_and_ranks(
        self, listings, radar_cache, rate_limiter, registry, clock
    ):
        """Listings are deduplicated, closed ones dropped and the rest ranked."""
        providers = FakeProviders(listings=listings)
        svc = _service(providers, radar_cache, rate_limiter, registry, clock)

        response = await svc.search(_request(industry="b2b_service", radius=5))

        ids = [f["properties"]["id"] for f in response.leads["features"]]
        assert ids == ["a", "b"]
        assert response.meta.result_count == 2
        assert response.neighborhoods is None
        assert response.census_stats is None
        assert len(listings.calls) == 8
        assert providers.geocoder.calls == 0

    @pytest.mark.asyncio
    async def test_radius_clamped_to_industry_max(self, service):
        """The radius is capped at the industry maximum."""
        response = await service.search(_request(industry="b2b_service", radius=100))

        assert response.meta.radius == 25
        assert response.meta.max_results == 200

    @pytest.mark.asyncio
    async def test_unknown_industry_uses_default(self, service):
        """Unknown industries use the default configuration."""
        response = await service.search(_request(industry="Bakeries "))

        assert response.meta.industry == "default"
        assert resolve_industry("RETAIL".lower()) == "retail"

    @pytest.mark.asyncio
    async def test_photographer_niche_scoring(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """A photographer niche scores listings with that niche."""
        venue = make_listing(
            "w1",
            name="Rosewood Garden Wedding Venue",
            rating=4.7,
            review_count=200,
            types=["event_venue"],
        )
        providers = FakeProviders(listings=FakeListings({"wedding venue": [venue]}))
        svc = _service(providers, radar_cache, rate_limiter, registry, clock)

        response = await svc.search(
            _request(industry="photographer", trade="event_wedding")
        )

        lead = response.leads["features"][0]["properties"]
        assert response.meta.trade == "event_wedding"
        assert lead["niche"] == "event_wedding"
        assert lead["trigger"] == "Venue Match"

    @pytest.mark.asyncio
    async def test_photographer_without_niche_scores_venues(
        self, radar_cache, rate_limiter, registry, clock
    ):
        """A photographer search without a niche scores venues."""
        venue = make_listing(
            "w2", name="Lakeside Manor", rating=4.6, review_count=80, types=["lodging"]
        )
        providers = FakeProviders(listings=FakeListings({"event venue": [venue]}))
        svc = _service(providers, radar_cache, rate_limiter, registry, clock)

        response = await svc.search(_request(industry="photographer"))

        lead = response.leads["features"][0]["properties"]
        assert response.meta.trade == "venues"
        assert lead["trigger"] == "Venue"
