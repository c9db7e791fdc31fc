import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from revenue_radar.core.config import settings
from revenue_radar.core.exceptions import ProviderError
from revenue_radar.core.http import fetch_with_retry, parse_json
from revenue_radar.providers.base import HttpProvider
from revenue_radar.schemas.provider import Address

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

_UNIT_SUFFIX = re.compile(r"[A-Za-z]+$")


def _component(components: List[Dict[str, Any]], kind: str, short: bool = False) -> str:
    for component in components:
        if kind in component.get("types", []):
            return component.get("short_name" if short else "long_name", "")
    return ""


def parse_geocode_result(result: Dict[str, Any]) -> Optional[Address]:
    """Build an address from one geocoder result.

    Returns ``None`` unless the result names a street (route); addresses
    are never synthesized.
    """
    components = result.get("address_components") or []
    route = _component(components, "route")
    if not route:
        return None
    number = _UNIT_SUFFIX.sub("", _component(components, "street_number")).strip()
    street = f"{number} {route}" if number else route
    return Address(
        formatted=result.get("formatted_address", ""),
        street=street,
        city=(
            _component(components, "locality")
            or _component(components, "sublocality")
            or _component(components, "administrative_area_level_2")
        ),
        state=_component(components, "administrative_area_level_1", short=True),
        zip=_component(components, "postal_code"),
        county=_component(components, "administrative_area_level_2"),
    )


class GoogleGeocodingProvider(HttpProvider):
    name = "google_geocoding"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.GOOGLE_API_KEY

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[Address]:
        if not self._api_key:
            raise ProviderError(self.name, "GOOGLE_API_KEY is not configured")
        params = {
            "latlng": f"{lat},{lng}",
            "key": self._api_key,
            "result_type": "street_address|route|premise",
        }
        async with self._session() as client:
            response = await fetch_with_retry(
                client, GEOCODE_URL, provider=self.name, params=params
            )
        data = parse_json(response, self.name)
        status = data.get("status")
        if status == "REQUEST_DENIED":
            raise ProviderError(self.name, data.get("error_message", "request denied"))
        if status != "OK" or not data.get("results"):
            return None
        return parse_geocode_result(data["results"][0])
