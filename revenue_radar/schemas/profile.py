"""Immutable scoring profiles for residential trades and photographer niches."""

from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Residential trades
# ---------------------------------------------------------------------------


class TradeWeights(_FrozenModel):
    """Importance fractions applied to the six residential 0-10 subscores."""

    property_age: float = Field(..., ge=0)
    storm_proximity: float = Field(..., ge=0)
    permit_activity: float = Field(..., ge=0)
    income_tier: float = Field(..., ge=0)
    owner_occupied: float = Field(..., ge=0)
    distance: float = Field(..., ge=0)


class AgeSignals(_FrozenModel):
    """Structure-age ranges (years) that signal opportunity for a trade."""

    prime_min: int
    prime_max: int
    extended_min: int
    extended_max: int
    label: str

    @model_validator(mode="after")
    def validate_ranges(self) -> Self:
        if self.prime_min > self.prime_max:
            raise ValueError("prime_min must not exceed prime_max")
        if self.extended_min > self.extended_max:
            raise ValueError("extended_min must not exceed extended_max")
        return self


class TradeReasonTemplates(_FrozenModel):
    """Reason lines; ``{age}``, ``{pct}``, ``{dist}`` and ``{when}`` are filled in."""

    age_in_prime: str
    age_in_extended: str
    high_income: str
    high_ownership: str
    storm_impact: str
    permit_cluster: str


class TradeProfile(_FrozenModel):
    id: str
    label: str
    description: str
    weights: TradeWeights
    age_signals: AgeSignals
    income_min_for_high_potential: int = Field(..., gt=0)
    reason_templates: TradeReasonTemplates


# ---------------------------------------------------------------------------
# Photographer niches
# ---------------------------------------------------------------------------


class NicheWeights(_FrozenModel):
    """Importance fractions applied to the five photographer subscores."""

    venue_match: float = Field(..., ge=0)
    high_rating: float = Field(..., ge=0)
    photo_friendly: float = Field(..., ge=0)
    accessibility: float = Field(..., ge=0)
    distance: float = Field(..., ge=0)


class NicheReasonTemplates(_FrozenModel):
    venue_match: str
    high_rating: str
    photo_friendly: str
    scenic: str


class NicheProfile(_FrozenModel):
    id: str
    label: str
    description: str
    search_keywords: Tuple[str, ...]
    weights: NicheWeights
    prime_venue_types: Tuple[str, ...]
    reason_templates: NicheReasonTemplates


class ProfileSummary(BaseModel):
    """Public listing entry for GET /radar/profiles."""

    id: str
    label: str
    description: str


class ProfileCatalog(BaseModel):
    trades: List[ProfileSummary]
    niches: List[ProfileSummary]
