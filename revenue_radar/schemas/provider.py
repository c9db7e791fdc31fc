"""Normalized records returned by the external data providers."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from revenue_radar.schemas.common import StormSeverity, StormType


class GeoPoint(BaseModel):
    lat: float
    lng: float


class Listing(BaseModel):
    """One nearby business listing."""

    id: str
    name: str
    location: GeoPoint
    vicinity: str = ""
    rating: Optional[float] = None
    review_count: Optional[int] = None
    types: List[str] = Field(default_factory=list)
    business_status: Optional[str] = None
    open_now: Optional[bool] = None


class TractStat(BaseModel):
    """ACS statistics for one census tract."""

    id: str
    state: str = ""
    county: str = ""
    tract: str = ""
    median_year_built: Optional[int] = None
    median_income: Optional[int] = None
    owner_occupied_pct: Optional[int] = None
    total_housing_units: Optional[int] = None
    estimated_median_age: Optional[int] = None


class AreaDemographics(BaseModel):
    tracts: List[TractStat] = Field(default_factory=list)
    area_median_year_built: Optional[int] = None
    area_median_income: Optional[int] = None
    area_owner_occupied_pct: Optional[int] = None
    area_total_units: int = 0


class StormEvent(BaseModel):
    id: str
    type: StormType
    severity: StormSeverity
    lat: float
    lng: float
    days_ago: int = Field(..., ge=0)
    label: str = ""
    date: str = ""
    magnitude: Optional[str] = None
    source: str = ""
    radius_meters: float = 3000.0


class StormData(BaseModel):
    """Storm events plus their GeoJSON polygon overlay."""

    events: List[StormEvent] = Field(default_factory=list)
    overlay: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "FeatureCollection", "features": []}
    )


class Address(BaseModel):
    formatted: str = ""
    street: str
    city: str = ""
    state: str = ""
    zip: str = ""
    county: str = ""


class PermitRecord(BaseModel):
    id: str
    lat: float
    lng: float
    permit_type: str
    issued_days_ago: Optional[int] = None
    address: str = ""
