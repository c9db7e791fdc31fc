"""Lead discovery orchestration.

One search runs: quota check, cache lookup, then on a miss the
provider round-trip, scoring, clustering, cache write and quota
increment. Every provider call is individually time-boxed and degrades
to an empty layer on failure; the whole miss path is bounded by an
overall deadline.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from pydantic import ValidationError

from revenue_radar.core.clock import utc_now
from revenue_radar.core.concurrency import gather_in_batches, sample_indices
from revenue_radar.core.config import settings
from revenue_radar.core.constants import (
    CANDIDATE_BASE_COUNT,
    CANDIDATE_PER_MILE,
    CANVASS_RADIUS_METERS,
    INDUSTRY_SEARCH_CONFIGS,
    MAX_GEOCODES,
    MAX_PERMIT_FEATURES,
    MAX_TRACT_LOOKUPS,
    NEARBY_STORM_MILES,
    PERMIT_MATCH_MILES,
    RESIDENTIAL_INDUSTRIES,
)
from revenue_radar.core.exceptions import InvalidSearchError, SearchDeadlineExceededError
from revenue_radar.core.geo import (
    haversine_meters,
    meters_to_miles,
    miles_to_meters,
    random_point_in_radius,
    seeded_random,
)
from revenue_radar.core.photo_niches import GENERAL_NICHE_ID
from revenue_radar.core.trade_profiles import GENERAL_TRADE_ID
from revenue_radar.providers.base import ProviderSet
from revenue_radar.schemas.common import Industry
from revenue_radar.schemas.lead import ScoredLead
from revenue_radar.schemas.provider import (
    Address,
    AreaDemographics,
    GeoPoint,
    Listing,
    PermitRecord,
    StormData,
    TractStat,
)
from revenue_radar.schemas.search import (
    RateLimitStatus,
    SearchMeta,
    SearchRequest,
    SearchResponse,
)
from revenue_radar.services.clustering import cluster_leads
from revenue_radar.services.geojson import (
    cluster_points,
    clusters_to_polygons,
    empty_collection,
    leads_to_feature_collection,
    permits_to_feature_collection,
)
from revenue_radar.services.profile_registry import ProfileRegistry
from revenue_radar.services.radar_cache import RadarCache, make_cache_key
from revenue_radar.services.rate_limiter import SearchRateLimiter
from revenue_radar.services.scoring import (
    ResidentialSignals,
    score_photographer_lead,
    score_place_listing,
    score_residential_lead,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Trades that share their id with an industry
_INDUSTRY_TRADES = {Industry.roofing.value, Industry.solar.value, Industry.hvac.value}

# Trade label for photographer searches scored as venues rather than by niche
VENUE_MODE = "venues"


def resolve_industry(value: str) -> str:
    try:
        return Industry(value).value
    except ValueError:
        return Industry.default.value


def _format_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    )


@dataclass
class _BuildResult:
    """Provider-derived layers of one search, before metadata is added."""

    leads: Dict[str, Any]
    result_count: int
    max_results: int
    storms: Dict[str, Any] = field(default_factory=empty_collection)
    permits: Dict[str, Any] = field(default_factory=empty_collection)
    neighborhoods: Optional[Dict[str, Any]] = None
    census_stats: Optional[Dict[str, Any]] = None


class LeadDiscoveryService:
    def __init__(
        self,
        providers: ProviderSet,
        cache: RadarCache,
        rate_limiter: SearchRateLimiter,
        registry: ProfileRegistry,
        deadline_seconds: float = settings.SEARCH_DEADLINE_SECONDS,
        provider_timeout: float = settings.PROVIDER_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.providers = providers
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.registry = registry
        self.deadline_seconds = deadline_seconds
        self.provider_timeout = provider_timeout
        self.clock = clock

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def search(
        self,
        request: Union[SearchRequest, Mapping[str, Any]],
        tenant_id: Optional[str] = None,
    ) -> SearchResponse:
        """Run one radar search for *tenant_id* (``None`` is unmetered).

        Raises:
            InvalidSearchError: parameters rejected before any provider call.
            SearchQuotaExceededError: the tenant's daily quota is used up.
            SearchDeadlineExceededError: a cache miss did not finish in time.
        """
        request = self._validate(request)
        industry = resolve_industry(request.industry)
        config = INDUSTRY_SEARCH_CONFIGS[industry]
        trade = self._resolve_trade(industry, request.trade)
        radius = min(request.radius, float(config.max_radius_miles))

        quota = await self.rate_limiter.enforce(tenant_id)

        cache_key = make_cache_key(
            request.lat, request.lng, f"{industry}:{trade}", radius
        )
        if request.nocache:
            logger.info(f"Cache bypassed for {cache_key}")
        else:
            lookup = await self.cache.get(cache_key)
            if lookup.hit:
                try:
                    return self._respond(lookup.payload, cached=True, quota=quota)
                except (KeyError, TypeError, ValueError):
                    logger.warning(
                        f"Cached payload for {cache_key} is unreadable, "
                        "searching providers",
                        exc_info=True,
                    )
            else:
                logger.info(
                    f"Cache {lookup.status.value} for {cache_key}, searching providers"
                )

        try:
            built = await asyncio.wait_for(
                self._build(request, industry, trade, radius),
                timeout=self.deadline_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Search {cache_key} exceeded {self.deadline_seconds}s deadline"
            )
            raise SearchDeadlineExceededError(
                f"Search did not complete within {self.deadline_seconds:g}s"
            )

        meta = SearchMeta(
            industry=industry,
            trade=trade,
            center=GeoPoint(lat=request.lat, lng=request.lng),
            radius=radius,
            max_results=built.max_results,
            result_count=built.result_count,
            cached=False,
            timestamp=self.clock(),
        )
        payload = {
            "leads": built.leads,
            "storms": built.storms,
            "permits": built.permits,
            "neighborhoods": built.neighborhoods,
            "census_stats": built.census_stats,
            "meta": meta.model_dump(mode="json"),
        }

        await self.cache.put(
            cache_key,
            payload,
            industry=industry,
            lat=request.lat,
            lng=request.lng,
            radius_miles=radius,
            result_count=built.result_count,
        )
        count = await self.rate_limiter.record(tenant_id)
        return self._respond(
            payload, cached=False, quota=self.rate_limiter.status_after(count, quota)
        )

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(request: Union[SearchRequest, Mapping[str, Any]]) -> SearchRequest:
        if isinstance(request, SearchRequest):
            return request
        try:
            return SearchRequest.model_validate(dict(request))
        except ValidationError as exc:
            raise InvalidSearchError(_format_validation_error(exc)) from exc

    def _resolve_trade(self, industry: str, requested: Optional[str]) -> str:
        if industry in RESIDENTIAL_INDUSTRIES:
            default = industry if industry in _INDUSTRY_TRADES else GENERAL_TRADE_ID
            return self.registry.trade_for(requested or default).id
        if industry == Industry.photographer.value:
            return self.registry.niche_for(requested).id if requested else VENUE_MODE
        return GENERAL_TRADE_ID

    @staticmethod
    def _respond(
        payload: Dict[str, Any], *, cached: bool, quota: RateLimitStatus
    ) -> SearchResponse:
        meta = dict(payload["meta"])
        meta.update(
            cached=cached,
            remaining=quota.remaining,
            limit=quota.limit,
            reset_at=quota.reset_at,
        )
        return SearchResponse.model_validate({**payload, "meta": meta})

    # ------------------------------------------------------------------
    # Provider round-trip
    # ------------------------------------------------------------------

    async def _guard(
        self, layer: str, factory: Callable[[], Awaitable[T]], default: T
    ) -> T:
        """Await one provider call, degrading to *default* on any failure."""
        try:
            return await asyncio.wait_for(factory(), timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{layer} provider timed out after {self.provider_timeout}s")
        except Exception:
            logger.warning(f"{layer} provider failed, layer left empty", exc_info=True)
        return default

    async def _build(
        self, request: SearchRequest, industry: str, trade: str, radius: float
    ) -> _BuildResult:
        if industry in RESIDENTIAL_INDUSTRIES:
            return await self._build_residential(request, trade, radius)
        return await self._build_places(request, industry, trade, radius)

    async def _fetch_listings(
        self, request: SearchRequest, radius_m: float, keywords: Sequence[str]
    ) -> List[Listing]:
        async def search_keyword(keyword: str) -> List[Listing]:
            return await self._guard(
                f"listings[{keyword}]",
                lambda: self.providers.listings.search(
                    request.lat, request.lng, radius_m, keyword
                ),
                [],
            )

        batches = await gather_in_batches(list(keywords), search_keyword)
        seen = set()
        listings: List[Listing] = []
        for batch in batches:
            for listing in batch:
                if listing.id in seen:
                    continue
                seen.add(listing.id)
                if listing.business_status == "CLOSED_PERMANENTLY":
                    continue
                listings.append(listing)
        return listings

    async def _build_places(
        self, request: SearchRequest, industry: str, trade: str, radius: float
    ) -> _BuildResult:
        config = INDUSTRY_SEARCH_CONFIGS[industry]
        radius_m = miles_to_meters(radius)
        niche = None
        keywords: Sequence[str] = config.keywords
        if industry == Industry.photographer.value:
            niche = self.registry.niche_for(
                GENERAL_NICHE_ID if trade == VENUE_MODE else trade
            )
            keywords = niche.search_keywords

        listings = await self._fetch_listings(request, radius_m, keywords)
        if trade == VENUE_MODE or niche is None:
            leads = [
                score_place_listing(
                    listing, industry, request.lat, request.lng, radius_m, request.filters
                )
                for listing in listings
            ]
        else:
            leads = [
                score_photographer_lead(
                    listing, niche, request.lat, request.lng, radius_m, request.filters
                )
                for listing in listings
            ]
        leads.sort(key=lambda lead: -lead.score)
        leads = leads[: config.max_results]
        logger.info(f"Scored {len(leads)} {industry} leads from {len(listings)} listings")
        return _BuildResult(
            leads=leads_to_feature_collection(leads),
            result_count=len(leads),
            max_results=config.max_results,
        )

    async def _build_residential(
        self, request: SearchRequest, trade: str, radius: float
    ) -> _BuildResult:
        lat, lng = request.lat, request.lng
        config = INDUSTRY_SEARCH_CONFIGS[Industry.residential_service.value]
        profile = self.registry.trade_for(trade)
        radius_m = miles_to_meters(radius)
        providers = self.providers

        demographics, storm_data = await asyncio.gather(
            self._guard(
                "demographics",
                lambda: providers.demographics.tract_stats_for_area(lat, lng, radius),
                AreaDemographics(),
            ),
            self._guard(
                "weather",
                lambda: providers.weather.storms_near(lat, lng, radius),
                StormData(),
            ),
        )

        rng = seeded_random(lat, lng)
        count = min(
            2 * config.max_results,
            int(CANDIDATE_BASE_COUNT + CANDIDATE_PER_MILE * radius),
        )
        points = [random_point_in_radius(lat, lng, radius_m, rng) for _ in range(count)]
        sampled = [points[i] for i in sample_indices(len(points), MAX_GEOCODES)]

        async def geocode(point: Tuple[float, float]) -> Optional[Address]:
            return await self._guard(
                "geocoding", lambda: providers.geocoder.reverse_geocode(*point), None
            )

        addresses = await gather_in_batches(sampled, geocode)
        # Only points with a real street address become leads
        located = [
            (point, address)
            for point, address in zip(sampled, addresses)
            if address is not None and address.street
        ]

        tracts = self._assign_tracts(
            [point for point, _ in located],
            await self._resolve_tract_ids([point for point, _ in located]),
            demographics,
        )

        permits = list(
            await self._guard(
                "permits",
                lambda: providers.permits.permits_near(lat, lng, radius),
                [],
            )
        )

        leads: List[ScoredLead] = []
        for i, ((p_lat, p_lng), address) in enumerate(located):
            signals = self._signals_for(p_lat, p_lng, tracts[i], storm_data, permits)
            lead = score_residential_lead(
                f"res-{i}",
                p_lat,
                p_lng,
                address.formatted or address.street,
                signals,
                profile,
                lat,
                lng,
                radius_m,
                request.filters,
            )
            leads.append(
                lead.model_copy(
                    update={
                        "name": address.street,
                        "city": address.city or None,
                        "state": address.state or None,
                    }
                )
            )

        leads.sort(key=lambda lead: -lead.score)
        leads = leads[: config.max_results]
        # Canvassing counts only cover leads that make it into the response
        leads = [
            lead.model_copy(update={"nearby_count": self._nearby_count(lead, leads)})
            for lead in leads
        ]

        clustering = cluster_leads(leads)
        logger.info(
            f"Scored {len(leads)} residential leads in "
            f"{len(clustering.clusters)} neighborhoods for trade {profile.id}"
        )
        return _BuildResult(
            leads=cluster_points(clustering.clusters, clustering.singles),
            result_count=len(leads),
            max_results=config.max_results,
            storms=storm_data.overlay,
            permits=permits_to_feature_collection(permits[:MAX_PERMIT_FEATURES]),
            neighborhoods=clusters_to_polygons(clustering.clusters),
            census_stats=self._census_stats(demographics),
        )

    # ------------------------------------------------------------------
    # Residential helpers
    # ------------------------------------------------------------------

    async def _resolve_tract_ids(
        self, points: Sequence[Tuple[float, float]]
    ) -> Dict[int, str]:
        """Tract FIPS for up to ``MAX_TRACT_LOOKUPS`` evenly sampled points."""
        indices = sample_indices(len(points), MAX_TRACT_LOOKUPS)

        async def lookup(index: int) -> Optional[str]:
            return await self._guard(
                "tract lookup",
                lambda: self.providers.demographics.tract_for_point(*points[index]),
                None,
            )

        results = await gather_in_batches(indices, lookup)
        return {i: tract_id for i, tract_id in zip(indices, results) if tract_id}

    def _assign_tracts(
        self,
        points: Sequence[Tuple[float, float]],
        resolved: Mapping[int, str],
        demographics: AreaDemographics,
    ) -> List[Optional[TractStat]]:
        """Tract for every point; unresolved points take the nearest resolved one."""
        by_id = {t.id: t for t in demographics.tracts}
        known: Dict[int, TractStat] = {
            i: by_id[tract_id] for i, tract_id in resolved.items() if tract_id in by_id
        }
        fallback = self._area_tract(demographics)

        assigned: List[Optional[TractStat]] = []
        for i, (p_lat, p_lng) in enumerate(points):
            if i in known:
                assigned.append(known[i])
                continue
            if not known:
                assigned.append(fallback)
                continue
            nearest = min(
                known,
                key=lambda j: (points[j][0] - p_lat) ** 2 + (points[j][1] - p_lng) ** 2,
            )
            assigned.append(known[nearest])
        return assigned

    def _area_tract(self, demographics: AreaDemographics) -> Optional[TractStat]:
        """Area-wide averages as a stand-in tract, or ``None`` without data."""
        year = demographics.area_median_year_built
        if (
            year is None
            and demographics.area_median_income is None
            and demographics.area_owner_occupied_pct is None
        ):
            return None
        return TractStat(
            id="area",
            median_year_built=year,
            median_income=demographics.area_median_income,
            owner_occupied_pct=demographics.area_owner_occupied_pct,
            total_housing_units=demographics.area_total_units,
            estimated_median_age=self.clock().year - year if year else None,
        )

    @staticmethod
    def _signals_for(
        lat: float,
        lng: float,
        tract: Optional[TractStat],
        storm_data: StormData,
        permits: Sequence[PermitRecord],
    ) -> ResidentialSignals:
        storm_distances = [
            (meters_to_miles(haversine_meters(lat, lng, s.lat, s.lng)), s)
            for s in storm_data.events
        ]
        closest = min((d for d, _ in storm_distances), default=None)
        nearby = [s for d, s in storm_distances if d <= NEARBY_STORM_MILES]

        permit_match = None
        best = PERMIT_MATCH_MILES
        for permit in permits:
            dist = meters_to_miles(haversine_meters(lat, lng, permit.lat, permit.lng))
            if dist <= best:
                permit_match, best = permit, dist

        return ResidentialSignals(
            tract=tract,
            nearby_storms=nearby,
            storm_proximity_miles=closest,
            has_permit_activity=permit_match is not None,
            permit_info=(
                f"{permit_match.permit_type} permit nearby" if permit_match else None
            ),
        )

    @staticmethod
    def _nearby_count(lead: ScoredLead, leads: Sequence[ScoredLead]) -> int:
        return sum(
            1
            for other in leads
            if other.id != lead.id
            and haversine_meters(lead.lat, lead.lng, other.lat, other.lng)
            <= CANVASS_RADIUS_METERS
        )

    @staticmethod
    def _census_stats(demographics: AreaDemographics) -> Optional[Dict[str, Any]]:
        if not demographics.tracts:
            return None
        return {
            "tract_count": len(demographics.tracts),
            "median_year_built": demographics.area_median_year_built,
            "median_income": demographics.area_median_income,
            "owner_occupied_pct": demographics.area_owner_occupied_pct,
            "total_housing_units": demographics.area_total_units,
        }
