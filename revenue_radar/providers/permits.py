from typing import List

from revenue_radar.schemas.provider import PermitRecord


class NullPermitProvider:
    """Permit Activity Provider for deployments without a permit feed.

    Returns no permits: permit activity is only ever reported from real
    records.
    """

    async def permits_near(
        self, lat: float, lng: float, radius_miles: float
    ) -> List[PermitRecord]:
        return []
