from revenue_radar.models.base import Base
from revenue_radar.models.radar_cache import RadarCacheEntry
from revenue_radar.models.rate_limit import RadarRateLimit

__all__ = [
    "Base",
    "RadarCacheEntry",
    "RadarRateLimit",
]
