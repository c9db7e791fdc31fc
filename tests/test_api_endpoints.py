from unittest.mock import AsyncMock

import pytest

from revenue_radar import __version__
from revenue_radar.api.deps import (
    get_lead_discovery_service,
    get_radar_cache,
    get_rate_limiter,
)
from revenue_radar.core.config import settings
from revenue_radar.core.exceptions import SearchDeadlineExceededError
from revenue_radar.core.rate_limit import limiter
from revenue_radar.main import app
from revenue_radar.services.lead_discovery import LeadDiscoveryService
from tests.conftest import CENTER_LAT, CENTER_LNG

SEARCH_URL = "/api/v1/radar/search"
SEARCH_PARAMS = {"lat": CENTER_LAT, "lng": CENTER_LNG, "radius": 10, "industry": "roofing"}


@pytest.fixture(autouse=True)
def reset_ip_throttle():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def wired_service(fake_providers, radar_cache, rate_limiter, registry, clock):
    """Route the app's dependencies to in-memory doubles."""
    service = LeadDiscoveryService(
        providers=fake_providers.as_set(),
        cache=radar_cache,
        rate_limiter=rate_limiter,
        registry=registry,
        clock=clock,
    )
    app.dependency_overrides[get_lead_discovery_service] = lambda: service
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_radar_cache] = lambda: radar_cache
    return service


class TestCORSMiddleware:
    """Verify that CORS headers are present on responses."""

    @pytest.mark.asyncio
    async def test_cors_headers_on_preflight(self, async_client):
        """Allowed origins get CORS headers on preflight."""
        response = await async_client.options(
            "/api/v1/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.headers.get("access-control-allow-origin") == (
            "http://localhost:3000"
        )

    @pytest.mark.asyncio
    async def test_unknown_origin_not_echoed(self, async_client):
        """Unlisted origins get no CORS header."""
        response = await async_client.get(
            "/api/v1/health", headers={"Origin": "http://evil.test"}
        )

        assert "access-control-allow-origin" not in response.headers


class TestHealthAndProfiles:
    """Read-only service endpoints."""

    @pytest.mark.asyncio
    async def test_health_returns_ok(self, async_client):
        """Health reports status, version and store backend."""
        response = await async_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "version": __version__,
            "store_backend": settings.STORE_BACKEND,
        }

    @pytest.mark.asyncio
    async def test_profiles_lists_trades_and_niches(self, async_client):
        """Profiles endpoint lists trades and niches."""
        response = await async_client.get("/api/v1/radar/profiles")

        body = response.json()
        assert response.status_code == 200
        assert "roofing" in [t["id"] for t in body["trades"]]
        assert "event_wedding" in [n["id"] for n in body["niches"]]


class TestSearchEndpoint:
    """GET /radar/search wiring and error envelopes."""

    @pytest.mark.asyncio
    async def test_search_returns_layers_and_quota(self, async_client, wired_service):
        """A search returns the map layers and quota metadata."""
        response = await async_client.get(
            SEARCH_URL, params=SEARCH_PARAMS, headers={"X-Org-Id": "org-1"}
        )

        body = response.json()
        assert response.status_code == 200
        assert body["leads"]["type"] == "FeatureCollection"
        assert body["storms"]["type"] == "FeatureCollection"
        assert body["meta"]["cached"] is False
        assert body["meta"]["remaining"] == 24
        assert body["meta"]["reset_at"].startswith("2026-05-15T00:00:00")

    @pytest.mark.asyncio
    async def test_second_call_is_cached(self, async_client, wired_service):
        """A repeated search is served from the cache."""
        await async_client.get(SEARCH_URL, params=SEARCH_PARAMS)
        response = await async_client.get(SEARCH_URL, params=SEARCH_PARAMS)

        assert response.json()["meta"]["cached"] is True

    @pytest.mark.asyncio
    async def test_out_of_range_latitude(self, async_client, wired_service):
        """An out-of-range latitude is an invalid search."""
        response = await async_client.get(SEARCH_URL, params={**SEARCH_PARAMS, "lat": 95})

        assert response.status_code == 422
        assert response.json()["type"] == "invalid_search"
        assert "lat" in response.json()["detail"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("filters", ["{bad json", '{"storm": "yes"}', "[1, 2]"])
    async def test_malformed_filters(self, async_client, wired_service, filters):
        """Filters that are not a JSON object of booleans are rejected."""
        response = await async_client.get(
            SEARCH_URL, params={**SEARCH_PARAMS, "filters": filters}
        )

        assert response.status_code == 422
        assert response.json()["type"] == "invalid_search"

    @pytest.mark.asyncio
    async def test_non_numeric_latitude_is_validation_error(
        self, async_client, wired_service
    ):
        """A non-numeric latitude fails request validation."""
        response = await async_client.get(
            SEARCH_URL, params={**SEARCH_PARAMS, "lat": "north"}
        )

        body = response.json()
        assert response.status_code == 422
        assert body["type"] == "validation_error"
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_quota_exhausted_returns_429(
        self, async_client, wired_service, store, clock
    ):
        """An exhausted quota returns 429 with reset details."""
        store.counters[("org-1", clock().date())] = 25

        response = await async_client.get(
            SEARCH_URL, params=SEARCH_PARAMS, headers={"X-Org-Id": "org-1"}
        )

        body = response.json()
        assert response.status_code == 429
        assert body["type"] == "rate_limit_exceeded"
        assert body["remaining"] == 0
        assert body["limit"] == 25
        assert body["reset_at"] == "2026-05-15T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_deadline_returns_504(self, async_client):
        """A search past its deadline returns 504."""
        service = AsyncMock()
        service.search = AsyncMock(
            side_effect=SearchDeadlineExceededError("Search did not complete within 45s")
        )
        app.dependency_overrides[get_lead_discovery_service] = lambda: service

        response = await async_client.get(SEARCH_URL, params=SEARCH_PARAMS)

        assert response.status_code == 504
        assert response.json()["type"] == "search_deadline_exceeded"

    @pytest.mark.asyncio
    async def test_parameters_forwarded_to_service(self, async_client):
        """Query parameters and tenant header reach the service."""
        service = AsyncMock()
        service.search = AsyncMock(side_effect=SearchDeadlineExceededError())
        app.dependency_overrides[get_lead_discovery_service] = lambda: service

        await async_client.get(
            SEARCH_URL,
            params={**SEARCH_PARAMS, "filters": '{"storm": false}', "nocache": "true"},
            headers={"X-Org-Id": "org-9"},
        )

        request = service.search.await_args.args[0]
        assert request["filters"] == {"storm": False}
        assert request["nocache"] is True
        assert service.search.await_args.kwargs["tenant_id"] == "org-9"


class TestQuotaAndSweep:
    """Quota lookup and manual cache sweep."""

    @pytest.mark.asyncio
    async def test_quota_for_tenant(self, async_client, wired_service, store, clock):
        """Quota endpoint reports the tenant's remaining searches."""
        store.counters[("org-1", clock().date())] = 4

        response = await async_client.get(
            "/api/v1/radar/quota", headers={"X-Org-Id": "org-1"}
        )

        body = response.json()
        assert body["allowed"] is True
        assert body["remaining"] == 21
        assert body["limit"] == 25

    @pytest.mark.asyncio
    async def test_quota_without_tenant_is_unmetered(self, async_client, wired_service):
        """Quota without a tenant has no remaining count."""
        response = await async_client.get("/api/v1/radar/quota")

        assert response.json()["remaining"] is None

    @pytest.mark.asyncio
    async def test_sweep_reports_deleted_rows(
        self, async_client, wired_service, radar_cache, clock
    ):
        """Sweep endpoint reports how many rows it deleted."""
        await radar_cache.put(
            "stale",
            {"meta": {}},
            industry="roofing",
            lat=CENTER_LAT,
            lng=CENTER_LNG,
            radius_miles=10,
            result_count=0,
        )
        clock.advance(hours=7)

        response = await async_client.post("/api/v1/radar/cache/sweep")

        assert response.json() == {"deleted": 1}
