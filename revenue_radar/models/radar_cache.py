from sqlalchemy import Column, DateTime, Float, Index, Integer, String, JSON
from sqlalchemy.sql import func

from revenue_radar.models.base import Base


class RadarCacheEntry(Base):
    """One cached search payload for a spatial/radius/industry bucket.

    ``payload`` is stored as plain JSON rather than JSONB so key order
    survives the round trip and a cache hit returns exactly what the
    miss produced.
    """

    __tablename__ = "radar_cache"

    cache_key = Column(String(255), primary_key=True)
    industry = Column(String(100), nullable=False)
    lat_bucket = Column(Float, nullable=False)
    lng_bucket = Column(Float, nullable=False)
    radius_miles = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    result_count = Column(Integer, nullable=False, server_default="0")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_radar_cache_expires_at", "expires_at"),)
