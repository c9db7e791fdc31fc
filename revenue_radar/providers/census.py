"""US Census ACS tract statistics, located through the FCC block API."""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from revenue_radar.core.clock import utc_now
from revenue_radar.core.exceptions import ProviderError
from revenue_radar.core.geo import round_half_up
from revenue_radar.core.http import fetch_with_retry, parse_json
from revenue_radar.providers.base import HttpProvider
from revenue_radar.schemas.provider import AreaDemographics, TractStat

logger = logging.getLogger(__name__)

FCC_BLOCK_URL = "https://geo.fcc.gov/api/census/block/find"
CENSUS_BASE_URL = "https://api.census.gov/data"
ACS_YEAR = "2022"
ACS_DATASET = "acs/acs5"

MEDIAN_YEAR_BUILT = "B25035_001E"
MEDIAN_INCOME = "B19013_001E"
OCCUPIED_UNITS = "B25003_001E"
OWNER_OCCUPIED_UNITS = "B25003_002E"
TOTAL_UNITS = "B25001_001E"
ACS_VARIABLES = (
    MEDIAN_YEAR_BUILT,
    MEDIAN_INCOME,
    OCCUPIED_UNITS,
    OWNER_OCCUPIED_UNITS,
    TOTAL_UNITS,
)

# Rough conversion used to probe the four cardinal points of the radius
DEGREES_PER_MILE = 1 / 69


def parse_census_number(value: Any) -> Optional[int]:
    """ACS cells use negative sentinels and "-" for missing data."""
    if value is None or value == "" or value == "-":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number < 0:
        return None
    return int(number)


def parse_tract_rows(rows: List[List[Any]], current_year: int) -> List[TractStat]:
    """Turn an ACS table (header row first) into tract records."""
    if len(rows) < 2:
        return []
    header = rows[0]
    index = {name: i for i, name in enumerate(header)}

    def cell(row: List[Any], name: str) -> Any:
        i = index.get(name)
        return row[i] if i is not None and i < len(row) else None

    tracts = []
    for row in rows[1:]:
        year_built = parse_census_number(cell(row, MEDIAN_YEAR_BUILT))
        occupied = parse_census_number(cell(row, OCCUPIED_UNITS))
        owner = parse_census_number(cell(row, OWNER_OCCUPIED_UNITS))
        state = str(cell(row, "state") or "")
        county = str(cell(row, "county") or "")
        tract = str(cell(row, "tract") or "")
        tracts.append(
            TractStat(
                id=f"{state}{county}{tract}",
                state=state,
                county=county,
                tract=tract,
                median_year_built=year_built,
                median_income=parse_census_number(cell(row, MEDIAN_INCOME)),
                owner_occupied_pct=(
                    int(round_half_up(owner / occupied * 100))
                    if occupied and owner
                    else None
                ),
                total_housing_units=parse_census_number(cell(row, TOTAL_UNITS)),
                estimated_median_age=(
                    current_year - year_built if year_built else None
                ),
            )
        )
    return tracts


def summarize_area(tracts: List[TractStat]) -> AreaDemographics:
    """Housing-unit-weighted area averages over *tracts*."""
    total_units = 0
    weighted_year = 0.0
    weighted_income = 0.0
    owner_units = 0.0
    occupied_units = 0
    for t in tracts:
        units = t.total_housing_units or 0
        total_units += units
        if units <= 0:
            continue
        if t.median_year_built:
            weighted_year += t.median_year_built * units
        if t.median_income:
            weighted_income += t.median_income * units
        if t.owner_occupied_pct is not None:
            owner_units += t.owner_occupied_pct / 100 * units
            occupied_units += units

    return AreaDemographics(
        tracts=tracts,
        area_median_year_built=(
            int(round_half_up(weighted_year / total_units)) if total_units else None
        ),
        area_median_income=(
            int(round_half_up(weighted_income / total_units)) if total_units else None
        ),
        area_owner_occupied_pct=(
            int(round_half_up(owner_units / occupied_units * 100))
            if occupied_units
            else None
        ),
        area_total_units=total_units,
    )


class CensusProvider(HttpProvider):
    """Demographic Provider over the FCC block API and ACS 5-year tables."""

    name = "census"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable = utc_now,
    ) -> None:
        super().__init__(client)
        self._clock = clock

    async def _block_fips(self, lat: float, lng: float) -> Optional[str]:
        async with self._session() as client:
            response = await fetch_with_retry(
                client,
                FCC_BLOCK_URL,
                provider=self.name,
                params={
                    "latitude": lat,
                    "longitude": lng,
                    "format": "json",
                    "showall": "false",
                },
            )
        data = parse_json(response, self.name)
        fips = ((data or {}).get("Block") or {}).get("FIPS")
        if not fips or len(fips) < 11:
            return None
        return fips

    async def tract_for_point(self, lat: float, lng: float) -> Optional[str]:
        """Eleven-digit tract FIPS (state + county + tract) for a point."""
        fips = await self._block_fips(lat, lng)
        return fips[:11] if fips else None

    async def _counties_in_radius(
        self, lat: float, lng: float, radius_miles: float
    ) -> List[Tuple[str, str]]:
        delta = radius_miles * DEGREES_PER_MILE
        probes = [(0, 0), (delta, 0), (-delta, 0), (0, delta), (0, -delta)]
        counties: List[Tuple[str, str]] = []
        for d_lat, d_lng in probes:
            try:
                fips = await self._block_fips(lat + d_lat, lng + d_lng)
            except ProviderError:
                logger.warning(
                    "FIPS lookup failed at %.4f,%.4f", lat + d_lat, lng + d_lng,
                    exc_info=True,
                )
                continue
            if not fips:
                continue
            county = (fips[:2], fips[2:5])
            if county not in counties:
                counties.append(county)
        return counties

    async def _county_tracts(self, state: str, county: str) -> List[TractStat]:
        params: Dict[str, str] = {
            "get": ",".join(ACS_VARIABLES),
            "for": "tract:*",
            "in": f"state:{state} county:{county}",
        }
        async with self._session() as client:
            response = await fetch_with_retry(
                client,
                f"{CENSUS_BASE_URL}/{ACS_YEAR}/{ACS_DATASET}",
                provider=self.name,
                params=params,
            )
        rows = parse_json(response, self.name)
        if not isinstance(rows, list):
            raise ProviderError(self.name, "unexpected ACS response shape")
        return parse_tract_rows(rows, self._clock().year)

    async def tract_stats_for_area(
        self, lat: float, lng: float, radius_miles: float
    ) -> AreaDemographics:
        counties = await self._counties_in_radius(lat, lng, radius_miles)
        if not counties:
            logger.warning("No census counties found near %.4f,%.4f", lat, lng)
            return AreaDemographics()

        tracts: List[TractStat] = []
        for state, county in counties:
            try:
                tracts.extend(await self._county_tracts(state, county))
            except ProviderError:
                logger.warning(
                    "ACS fetch failed for county %s/%s", state, county, exc_info=True
                )
        return summarize_area(tracts)
