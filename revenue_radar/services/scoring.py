"""Lead scoring.

Three pure scorers turn one provider record into a :class:`ScoredLead`:

- :func:`score_place_listing` for commercial listings (0-10), with a
  venue bonus when scoring for photographers;
- :func:`score_residential_lead` for census/storm/permit signals weighted
  by a trade profile (1-10);
- :func:`score_photographer_lead` for locations weighted by a niche
  profile (1-10).

Filter toggles are opt-out: a heuristic runs unless its key is
explicitly ``False``.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from revenue_radar.core.clock import days_ago_label
from revenue_radar.core.constants import (
    INDUSTRIAL_KEYWORDS,
    INDUSTRY_MATCH_BONUS,
    LOCATION_NAME_LABELS,
    LOCATION_TYPE_LABELS,
    LOW_RATING_BONUS,
    LOW_RATING_THRESHOLD,
    LOW_REVIEWS_BONUS,
    LOW_REVIEWS_THRESHOLD,
    MAX_DISTANCE_BONUS,
    MAX_SCORE,
    NEUTRAL_SUBSCORE,
    NO_STORM_DISTANCE_MILES,
    OUTDOOR_KEYWORDS,
    OWNERSHIP_FLAG_PCT,
    PERMIT_SUBSCORE,
    PLACE_BASE_SCORE,
    PLACE_TYPE_CATEGORIES,
    PUBLIC_ACCESS_TYPES,
    RESIDENTIAL_MIN_SCORE,
    STORM_CLOSE_MILES,
    STORM_NEAR_MILES,
    URBAN_KEYWORDS,
    VENUE_BONUS,
    VENUE_NAME_PATTERN,
    VENUE_PLACE_TYPES,
    WEAK_PRESENCE_BONUS,
    WEAK_PRESENCE_REVIEW_THRESHOLD,
)
from revenue_radar.core.geo import haversine_meters, meters_to_miles, round_half_up
from revenue_radar.schemas.common import Industry
from revenue_radar.schemas.lead import ScoredLead
from revenue_radar.schemas.profile import NicheProfile, TradeProfile
from revenue_radar.schemas.provider import Listing, StormEvent, TractStat

_VENUE_NAME_RE = re.compile(VENUE_NAME_PATTERN)


def _enabled(filters: Mapping[str, bool], key: str) -> bool:
    return filters.get(key, True) is not False


def _clip(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _distance_gradient(dist_m: float, radius_m: float) -> float:
    """10 at the search center decaying linearly to 2 at the edge, floor 1."""
    ratio = dist_m / radius_m if radius_m > 0 else 0.0
    return max(1.0, 10 - ratio * 8)


def _distance_miles(dist_m: float) -> float:
    return round_half_up(meters_to_miles(dist_m), 2)


# ---------------------------------------------------------------------------
# Place-based scoring (b2b / commercial / retail / photographer venues)
# ---------------------------------------------------------------------------


def _place_category(types: List[str]) -> str:
    for place_type in types:
        if place_type in PLACE_TYPE_CATEGORIES:
            return PLACE_TYPE_CATEGORIES[place_type]
    return "Business"


def is_venue(listing: Listing) -> bool:
    if any(t in VENUE_PLACE_TYPES for t in listing.types):
        return True
    return _VENUE_NAME_RE.search(listing.name.lower()) is not None


def score_place_listing(
    listing: Listing,
    industry: str,
    center_lat: float,
    center_lng: float,
    radius_m: float,
    filters: Mapping[str, bool],
) -> ScoredLead:
    lat, lng = listing.location.lat, listing.location.lng
    dist_m = haversine_meters(center_lat, center_lng, lat, lng)

    has_rating = listing.rating is not None
    rating = listing.rating or 0.0
    reviews = listing.review_count or 0
    reasons: List[str] = []
    score = PLACE_BASE_SCORE

    low_rating = has_rating and rating < LOW_RATING_THRESHOLD
    if _enabled(filters, "low_rating") and low_rating:
        score += LOW_RATING_BONUS
        reasons.append(f"Low rating: {rating:g}/5")

    weak_presence = not has_rating or reviews < WEAK_PRESENCE_REVIEW_THRESHOLD
    if _enabled(filters, "no_website") and weak_presence:
        score += WEAK_PRESENCE_BONUS
        reasons.append("Weak online presence detected")

    low_reviews = reviews < LOW_REVIEWS_THRESHOLD
    if _enabled(filters, "low_reviews") and low_reviews:
        score += LOW_REVIEWS_BONUS
        reasons.append(f"Only {reviews} reviews")

    if _enabled(filters, "industry_match"):
        score += INDUSTRY_MATCH_BONUS

    ratio = dist_m / radius_m if radius_m > 0 else 0.0
    score += max(0.0, MAX_DISTANCE_BONUS - ratio * MAX_DISTANCE_BONUS)
    score = _clip(score, 0.0, MAX_SCORE)

    if not reasons:
        reasons.append("General opportunity signal")

    # Precedence follows the signals themselves, not the filter toggles
    if low_rating:
        trigger = "Low Rating"
    elif weak_presence:
        trigger = "Weak Presence"
    elif low_reviews:
        trigger = "Few Reviews"
    else:
        trigger = "Opportunity"

    category = _place_category(listing.types)
    lead_type = category
    venue_type = None
    if industry == Industry.photographer.value and is_venue(listing):
        score = min(MAX_SCORE, score + VENUE_BONUS)
        trigger = "Venue"
        lead_type = venue_type = "Event Venue"

    return ScoredLead(
        id=listing.id,
        place_id=listing.id,
        lat=lat,
        lng=lng,
        name=listing.name,
        address=listing.vicinity,
        score=round_half_up(score, 1),
        type=lead_type,
        trigger=trigger,
        distance=_distance_miles(dist_m),
        reasons=reasons,
        industry=industry,
        rating=rating,
        review_count=reviews,
        category=category,
        venue_type=venue_type,
        low_rating=low_rating,
        no_website=weak_presence,
        low_reviews=low_reviews,
    )


# ---------------------------------------------------------------------------
# Residential scoring
# ---------------------------------------------------------------------------


@dataclass
class ResidentialSignals:
    """Everything known about one candidate property's surroundings."""

    tract: Optional[TractStat] = None
    nearby_storms: List[StormEvent] = field(default_factory=list)
    storm_proximity_miles: Optional[float] = None
    has_permit_activity: bool = False
    permit_info: Optional[str] = None


def _age_subscore(
    age: Optional[int], profile: TradeProfile, reasons: List[str]
) -> float:
    if age is None:
        return NEUTRAL_SUBSCORE
    signals = profile.age_signals
    templates = profile.reason_templates
    if signals.prime_min <= age <= signals.prime_max:
        reasons.append(templates.age_in_prime.replace("{age}", str(age)))
        return 10.0
    if signals.extended_min <= age <= signals.extended_max:
        reasons.append(templates.age_in_extended.replace("{age}", str(age)))
        return 8.0
    if age > signals.extended_max:
        reasons.append(f"Home age: ~{age}yr — older infrastructure")
        return 6.0
    if age > 0:
        return 3.0
    return NEUTRAL_SUBSCORE


def _storm_subscore(
    signals: ResidentialSignals, profile: TradeProfile, reasons: List[str]
) -> float:
    if not signals.nearby_storms:
        return NEUTRAL_SUBSCORE
    closest = (
        signals.storm_proximity_miles
        if signals.storm_proximity_miles is not None
        else NO_STORM_DISTANCE_MILES
    )
    if closest >= STORM_NEAR_MILES:
        return NEUTRAL_SUBSCORE
    most_recent = min(s.days_ago for s in signals.nearby_storms)
    reasons.append(
        profile.reason_templates.storm_impact.replace("{dist}", f"{closest:.1f}")
        .replace("{when}", days_ago_label(most_recent))
    )
    return 10.0 if closest < STORM_CLOSE_MILES else 8.0


def _income_subscore(
    income: Optional[int], profile: TradeProfile, reasons: List[str]
) -> float:
    if income is None:
        return NEUTRAL_SUBSCORE
    threshold = profile.income_min_for_high_potential
    if income >= threshold * 1.5:
        reasons.append(profile.reason_templates.high_income)
        return 10.0
    if income >= threshold:
        reasons.append(profile.reason_templates.high_income)
        return 8.0
    if income >= threshold * 0.7:
        return 6.0
    if income >= threshold * 0.5:
        return 4.0
    return 2.0


def _owner_subscore(
    owner_pct: Optional[int], profile: TradeProfile, reasons: List[str]
) -> float:
    if owner_pct is None:
        return NEUTRAL_SUBSCORE
    if owner_pct >= 65:
        reasons.append(
            profile.reason_templates.high_ownership.replace("{pct}", str(owner_pct))
        )
        return 10.0 if owner_pct >= 80 else 8.0
    if owner_pct >= 50:
        return 6.0
    if owner_pct >= 30:
        return 3.0
    return 1.0


def score_residential_lead(
    lead_id: str,
    lat: float,
    lng: float,
    address: str,
    signals: ResidentialSignals,
    profile: TradeProfile,
    center_lat: float,
    center_lng: float,
    radius_m: float,
    filters: Mapping[str, bool],
) -> ScoredLead:
    """Score one property with the trade profile's weight vector.

    Every subscore starts neutral (5) so missing data never reads as a
    negative signal; only low income and rental-heavy areas pull below 5.
    """
    dist_m = haversine_meters(center_lat, center_lng, lat, lng)
    reasons: List[str] = []
    tract = signals.tract
    age = tract.estimated_median_age if tract else None
    income = tract.median_income if tract else None
    owner_pct = tract.owner_occupied_pct if tract else None

    age_score = (
        _age_subscore(age, profile, reasons)
        if _enabled(filters, "age")
        else NEUTRAL_SUBSCORE
    )
    storm_score = (
        _storm_subscore(signals, profile, reasons)
        if _enabled(filters, "storm")
        else NEUTRAL_SUBSCORE
    )
    permit_score = NEUTRAL_SUBSCORE
    if _enabled(filters, "permit") and signals.has_permit_activity:
        permit_score = PERMIT_SUBSCORE
        reasons.append(profile.reason_templates.permit_cluster)
    income_score = (
        _income_subscore(income, profile, reasons)
        if _enabled(filters, "income")
        else NEUTRAL_SUBSCORE
    )
    owner_score = (
        _owner_subscore(owner_pct, profile, reasons)
        if _enabled(filters, "owner")
        else NEUTRAL_SUBSCORE
    )
    dist_score = _distance_gradient(dist_m, radius_m)

    w = profile.weights
    # Evaluation order doubles as the trigger tie-break order
    contributions: Dict[str, float] = {
        "Storm": storm_score * w.storm_proximity,
        "Age": age_score * w.property_age,
        "Permit": permit_score * w.permit_activity,
        "Income": income_score * w.income_tier,
        "Ownership": owner_score * w.owner_occupied,
    }
    raw = sum(contributions.values()) + dist_score * w.distance
    score = _clip(round_half_up(raw, 1), RESIDENTIAL_MIN_SCORE, MAX_SCORE)

    top = max(contributions.values())
    trigger = next(name for name, value in contributions.items() if value == top)

    if not reasons:
        reasons.append("Area opportunity signal")

    signals_age = profile.age_signals
    return ScoredLead(
        id=lead_id,
        lat=lat,
        lng=lng,
        name=address,
        address=address,
        score=score,
        type="Residential",
        trigger=trigger,
        distance=_distance_miles(dist_m),
        reasons=reasons,
        industry=Industry.residential_service.value,
        trade=profile.id,
        median_year_built=tract.median_year_built if tract else None,
        property_age_years=age,
        median_income=income,
        owner_occupied_pct=owner_pct,
        storm_proximity_miles=(
            round_half_up(signals.storm_proximity_miles, 1)
            if signals.storm_proximity_miles is not None
            else None
        ),
        permit_history=(
            signals.permit_info or "Active permits nearby"
            if signals.has_permit_activity
            else "None nearby"
        ),
        has_storm=bool(signals.nearby_storms),
        has_permit=signals.has_permit_activity,
        has_age=age is not None and age >= signals_age.extended_min,
        has_income=income is not None
        and income >= profile.income_min_for_high_potential,
        has_ownership=owner_pct is not None and owner_pct >= OWNERSHIP_FLAG_PCT,
        nearby_count=0,
    )


# ---------------------------------------------------------------------------
# Photographer niche scoring
# ---------------------------------------------------------------------------


def _location_type(listing: Listing) -> str:
    label = "Location"
    for place_type in listing.types:
        if place_type in LOCATION_TYPE_LABELS:
            label = LOCATION_TYPE_LABELS[place_type]
            break
    name = listing.name.lower()
    for keywords, name_label in LOCATION_NAME_LABELS:
        if any(k in name for k in keywords):
            return name_label
    return label


def score_photographer_lead(
    listing: Listing,
    profile: NicheProfile,
    center_lat: float,
    center_lng: float,
    radius_m: float,
    filters: Mapping[str, bool],
) -> ScoredLead:
    lat, lng = listing.location.lat, listing.location.lng
    dist_m = haversine_meters(center_lat, center_lng, lat, lng)
    templates = profile.reason_templates
    reasons: List[str] = []

    rating = listing.rating or 0.0
    reviews = listing.review_count or 0
    types_lc = [t.lower() for t in listing.types]
    text = f"{listing.name.lower()} {' '.join(types_lc)}"

    matched = [v for v in profile.prime_venue_types if v.lower() in text]
    if len(matched) >= 3:
        venue_score = 10.0
    elif matched:
        venue_score = 8.0
    else:
        venue_score = 4.0
    if matched:
        reasons.append(templates.venue_match)

    if rating >= 4.5 and reviews >= 50:
        rating_score = 10.0
    elif rating >= 4.0 and reviews >= 20:
        rating_score = 8.0
    elif rating >= 3.5:
        rating_score = 6.0
    elif rating > 0:
        rating_score = 3.0
    else:
        rating_score = NEUTRAL_SUBSCORE
    if rating_score >= 8:
        reasons.append(
            templates.high_rating.replace("{rating}", f"{rating:.1f}").replace(
                "{reviews}", str(reviews)
            )
        )

    has_outdoor = any(k in text for k in OUTDOOR_KEYWORDS)
    has_industrial = any(k in text for k in INDUSTRIAL_KEYWORDS)
    has_urban = any(k in text for k in URBAN_KEYWORDS)
    photo_score = NEUTRAL_SUBSCORE
    if has_outdoor:
        photo_score += 2
    if has_industrial:
        photo_score += 1.5
    if has_urban:
        photo_score += 1.5
    photo_score = min(MAX_SCORE, photo_score)
    if has_outdoor:
        reasons.append(templates.photo_friendly)
    elif has_industrial or has_urban:
        reasons.append(templates.scenic)

    is_public = any(t in PUBLIC_ACCESS_TYPES for t in types_lc)
    access_score = 8.0 if is_public else NEUTRAL_SUBSCORE
    if listing.open_now is True:
        access_score = min(MAX_SCORE, access_score + 1)

    dist_score = _distance_gradient(dist_m, radius_m)

    w = profile.weights
    raw = (
        venue_score * w.venue_match
        + rating_score * w.high_rating
        + photo_score * w.photo_friendly
        + access_score * w.accessibility
        + dist_score * w.distance
    )
    score = _clip(round_half_up(raw, 1), RESIDENTIAL_MIN_SCORE, MAX_SCORE)

    if not reasons:
        reasons.append("Location with visual potential")

    venue_part = venue_score * w.venue_match
    rating_part = rating_score * w.high_rating
    photo_part = photo_score * w.photo_friendly
    top = max(venue_part, rating_part, photo_part)
    if top == venue_part and venue_score > NEUTRAL_SUBSCORE:
        trigger = "Venue Match"
    elif top == rating_part and rating_score > NEUTRAL_SUBSCORE:
        trigger = "Popular"
    elif top == photo_part and photo_score > NEUTRAL_SUBSCORE:
        trigger = "Scenic"
    else:
        trigger = "Location"

    location_type = _location_type(listing)
    return ScoredLead(
        id=listing.id,
        place_id=listing.id,
        lat=lat,
        lng=lng,
        name=listing.name,
        address=listing.vicinity,
        score=score,
        type=location_type,
        trigger=trigger,
        distance=_distance_miles(dist_m),
        reasons=reasons,
        industry=Industry.photographer.value,
        niche=profile.id,
        rating=rating,
        review_count=reviews,
        venue_type=location_type,
        has_outdoor_space=has_outdoor,
        has_industrial_backdrop=has_industrial,
        has_urban_aesthetic=has_urban,
        is_public_access=is_public,
        niche_match=bool(matched),
    )
