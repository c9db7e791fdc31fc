"""Scored lead and neighborhood cluster schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field


class ScoredLead(BaseModel):
    """One ranked candidate.

    The identity and scoring fields are always present. The attribute
    groups below them are filled in by whichever scorer produced the
    lead and are dropped from serialized output when unset.
    """

    id: str
    lat: float
    lng: float
    name: str
    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    score: float = Field(..., ge=0, le=10)
    type: str
    trigger: str
    distance: float = Field(..., ge=0)
    reasons: List[str] = Field(..., min_length=1)
    industry: str
    trade: Optional[str] = None
    niche: Optional[str] = None
    place_id: Optional[str] = None

    # Commercial listings
    rating: Optional[float] = None
    review_count: Optional[int] = None
    category: Optional[str] = None
    website: Optional[str] = None
    low_rating: Optional[bool] = None
    no_website: Optional[bool] = None
    low_reviews: Optional[bool] = None

    # Photographer venues and locations
    venue_type: Optional[str] = None
    has_outdoor_space: Optional[bool] = None
    has_industrial_backdrop: Optional[bool] = None
    has_urban_aesthetic: Optional[bool] = None
    is_public_access: Optional[bool] = None
    niche_match: Optional[bool] = None

    # Residential properties
    median_year_built: Optional[int] = None
    property_age_years: Optional[int] = None
    median_income: Optional[int] = None
    owner_occupied_pct: Optional[int] = None
    storm_proximity_miles: Optional[float] = None
    permit_history: Optional[str] = None
    has_storm: Optional[bool] = None
    has_permit: Optional[bool] = None
    has_age: Optional[bool] = None
    has_income: Optional[bool] = None
    has_ownership: Optional[bool] = None
    nearby_count: Optional[int] = None


class ClusterBounds(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


class NeighborhoodCluster(BaseModel):
    """Aggregate over spatially co-located residential leads."""

    id: str
    lat: float
    lng: float
    name: str
    property_count: int
    avg_score: float
    avg_property_age: int = 0
    avg_median_income_k: int = 0
    avg_owner_occupied_pct: int = Field(0, ge=0, le=100)
    storm_exposure_pct: int = Field(0, ge=0, le=100)
    permit_activity_pct: int = Field(0, ge=0, le=100)
    top_reasons: List[str] = Field(default_factory=list)
    leads: List[ScoredLead] = Field(default_factory=list)
    bounds: ClusterBounds
