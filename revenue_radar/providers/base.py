"""Provider contracts consumed by the discovery service.

Concrete clients live beside this module; tests substitute in-memory
doubles that satisfy the same protocols.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Protocol, Sequence

import httpx

from revenue_radar.core.http import build_client
from revenue_radar.schemas.provider import (
    Address,
    AreaDemographics,
    Listing,
    PermitRecord,
    StormData,
)


class BusinessListingProvider(Protocol):
    async def search(
        self, lat: float, lng: float, radius_meters: float, keyword: str
    ) -> List[Listing]: ...


class DemographicProvider(Protocol):
    async def tract_stats_for_area(
        self, lat: float, lng: float, radius_miles: float
    ) -> AreaDemographics: ...

    async def tract_for_point(self, lat: float, lng: float) -> Optional[str]: ...


class SevereWeatherProvider(Protocol):
    async def storms_near(
        self, lat: float, lng: float, radius_miles: float
    ) -> StormData: ...


class GeocodingProvider(Protocol):
    async def reverse_geocode(self, lat: float, lng: float) -> Optional[Address]: ...


class PermitActivityProvider(Protocol):
    async def permits_near(
        self, lat: float, lng: float, radius_miles: float
    ) -> Sequence[PermitRecord]: ...


@dataclass(frozen=True)
class ProviderSet:
    listings: BusinessListingProvider
    demographics: DemographicProvider
    weather: SevereWeatherProvider
    geocoder: GeocodingProvider
    permits: PermitActivityProvider


class HttpProvider:
    """Base for httpx-backed providers.

    An injected client is reused as-is (tests pass one built on
    ``httpx.MockTransport``); otherwise each call opens a short-lived
    client with the configured provider timeout.
    """

    name = "provider"

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with build_client() as client:
            yield client
