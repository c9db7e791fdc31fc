import json
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from revenue_radar.api.deps import (
    get_lead_discovery_service,
    get_profile_registry,
    get_radar_cache,
    get_rate_limiter,
    get_tenant_id,
)
from revenue_radar.core.exceptions import InvalidSearchError
from revenue_radar.core.rate_limit import SEARCH_RATE, limiter
from revenue_radar.schemas.profile import ProfileCatalog
from revenue_radar.schemas.search import RateLimitStatus, SearchResponse, SweepResponse
from revenue_radar.services.lead_discovery import LeadDiscoveryService
from revenue_radar.services.profile_registry import ProfileRegistry
from revenue_radar.services.radar_cache import RadarCache
from revenue_radar.services.rate_limiter import SearchRateLimiter

router = APIRouter(prefix="/radar", tags=["Radar"])


def _parse_filters(raw: Optional[str]) -> Dict[str, bool]:
    """Decode the ``filters`` query parameter, a JSON object of toggles."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidSearchError(f"filters is not valid JSON: {exc.msg}") from exc
    if not isinstance(value, dict) or not all(
        isinstance(v, bool) for v in value.values()
    ):
        raise InvalidSearchError("filters must be a JSON object of booleans")
    return value


@router.get("/search", response_model=SearchResponse)
@limiter.limit(SEARCH_RATE)
async def search_leads(
    request: Request,
    lat: float = Query(..., description="Search center latitude"),
    lng: float = Query(..., description="Search center longitude"),
    radius: float = Query(10.0, description="Search radius in miles"),
    industry: str = Query("residential_service", description="Industry id"),
    trade: Optional[str] = Query(None, description="Trade or photographer niche id"),
    filters: Optional[str] = Query(None, description="JSON object of filter toggles"),
    nocache: bool = Query(False, description="Skip the cache read"),
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: LeadDiscoveryService = Depends(get_lead_discovery_service),
) -> SearchResponse:
    """Ranked leads around a point.

    Rate-limited per IP; the tenant in ``X-Org-Id`` is additionally held
    to its daily search quota. Only cache misses consume quota.
    """
    return await service.search(
        {
            "lat": lat,
            "lng": lng,
            "radius": radius,
            "industry": industry,
            "trade": trade,
            "filters": _parse_filters(filters),
            "nocache": nocache,
        },
        tenant_id=tenant_id,
    )


@router.get("/quota", response_model=RateLimitStatus)
async def quota_status(
    tenant_id: Optional[str] = Depends(get_tenant_id),
    rate_limiter: SearchRateLimiter = Depends(get_rate_limiter),
) -> RateLimitStatus:
    """Today's quota for the calling tenant."""
    result = await rate_limiter.check(tenant_id)
    return result.status


@router.get("/profiles", response_model=ProfileCatalog)
async def list_profiles(
    registry: ProfileRegistry = Depends(get_profile_registry),
) -> ProfileCatalog:
    """Available trades and photographer niches."""
    return registry.catalog()


@router.post("/cache/sweep", response_model=SweepResponse)
async def sweep_cache(
    cache: RadarCache = Depends(get_radar_cache),
) -> SweepResponse:
    return SweepResponse(deleted=await cache.sweep())
