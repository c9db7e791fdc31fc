"""Search request, response and quota schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from revenue_radar.schemas.provider import GeoPoint


class SearchRequest(BaseModel):
    """Parameters of one radar search.

    ``radius`` is in miles and is clamped to the industry maximum by the
    discovery service; validation only rejects values that can never be
    searched.
    """

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    radius: float = Field(10.0, gt=0, allow_inf_nan=False)
    industry: str = "residential_service"
    trade: Optional[str] = None
    filters: Dict[str, bool] = Field(default_factory=dict)
    nocache: bool = False

    @field_validator("industry")
    @classmethod
    def normalize_industry(cls, value: str) -> str:
        return value.strip().lower()


class RateLimitStatus(BaseModel):
    """Quota decision for one tenant and UTC day.

    ``remaining`` and ``limit`` are ``None`` for unmetered (tenant-less)
    searches.
    """

    allowed: bool
    remaining: Optional[int] = None
    limit: Optional[int] = None
    reset_at: Optional[datetime] = None


class SearchMeta(BaseModel):
    industry: str
    trade: str
    center: GeoPoint
    radius: float
    max_results: int
    result_count: int
    cached: bool = False
    timestamp: datetime
    remaining: Optional[int] = None
    limit: Optional[int] = None
    reset_at: Optional[datetime] = None


class SearchResponse(BaseModel):
    leads: Dict[str, Any]
    storms: Dict[str, Any]
    permits: Dict[str, Any]
    neighborhoods: Optional[Dict[str, Any]] = None
    census_stats: Optional[Dict[str, Any]] = None
    meta: SearchMeta


class SweepResponse(BaseModel):
    deleted: int
