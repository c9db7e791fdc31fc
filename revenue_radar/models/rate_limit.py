from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String
from sqlalchemy.sql import func

from revenue_radar.models.base import Base


class RadarRateLimit(Base):
    """Daily search counter per tenant; a new UTC day starts a new row."""

    __tablename__ = "radar_rate_limits"

    org_id = Column(String(255), primary_key=True)
    search_date = Column(Date, primary_key=True)
    search_count = Column(Integer, nullable=False, server_default="0")
    last_search_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("search_count >= 0", name="ck_search_count_nonneg"),
    )
