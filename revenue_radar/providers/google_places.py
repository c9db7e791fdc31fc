import logging
from typing import Any, Dict, List, Optional

import httpx

from revenue_radar.core.config import settings
from revenue_radar.core.constants import MAX_PROVIDER_RADIUS_METERS
from revenue_radar.core.exceptions import ProviderError
from revenue_radar.core.http import fetch_with_retry, parse_json
from revenue_radar.providers.base import HttpProvider
from revenue_radar.schemas.provider import GeoPoint, Listing

logger = logging.getLogger(__name__)

PLACES_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"


def parse_place(raw: Dict[str, Any]) -> Optional[Listing]:
    """Normalize one Nearby Search result; ``None`` if it has no location."""
    location = (raw.get("geometry") or {}).get("location") or {}
    if "lat" not in location or "lng" not in location or not raw.get("place_id"):
        return None
    return Listing(
        id=raw["place_id"],
        name=raw.get("name", ""),
        location=GeoPoint(lat=location["lat"], lng=location["lng"]),
        vicinity=raw.get("vicinity", ""),
        rating=raw.get("rating"),
        review_count=raw.get("user_ratings_total"),
        types=raw.get("types") or [],
        business_status=raw.get("business_status"),
        open_now=(raw.get("opening_hours") or {}).get("open_now"),
    )


class GooglePlacesProvider(HttpProvider):
    """Business Listing Provider backed by Google Places Nearby Search."""

    name = "google_places"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.GOOGLE_API_KEY

    async def search(
        self, lat: float, lng: float, radius_meters: float, keyword: str
    ) -> List[Listing]:
        if not self._api_key:
            raise ProviderError(self.name, "GOOGLE_API_KEY is not configured")
        params = {
            "location": f"{lat},{lng}",
            "radius": str(int(min(radius_meters, MAX_PROVIDER_RADIUS_METERS))),
            "keyword": keyword,
            "type": "establishment",
            "key": self._api_key,
        }
        async with self._session() as client:
            response = await fetch_with_retry(
                client, PLACES_NEARBY_URL, provider=self.name, params=params
            )
        data = parse_json(response, self.name)
        status = data.get("status")
        if status == "REQUEST_DENIED":
            raise ProviderError(self.name, data.get("error_message", "request denied"))
        if status not in ("OK", "ZERO_RESULTS"):
            logger.warning(
                "Places status %s for keyword %r: %s",
                status,
                keyword,
                data.get("error_message", ""),
            )
        listings = []
        for raw in data.get("results") or []:
            listing = parse_place(raw)
            if listing is not None:
                listings.append(listing)
        return listings
