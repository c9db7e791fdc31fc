from typing import Dict, FrozenSet, List, NamedTuple

from revenue_radar.schemas.common import Industry

METERS_PER_MILE: float = 1609.344

# Google Nearby Search refuses radii above 50 km
MAX_PROVIDER_RADIUS_METERS: int = 50_000

RESIDENTIAL_INDUSTRIES: FrozenSet[str] = frozenset(
    {
        Industry.residential_service.value,
        Industry.roofing.value,
        Industry.solar.value,
        Industry.hvac.value,
    }
)


class IndustrySearchConfig(NamedTuple):
    """Per-industry search envelope and listing keywords."""

    max_radius_miles: float
    max_results: int
    keywords: List[str]


_B2B_KEYWORDS: List[str] = [
    "business services",
    "marketing agency",
    "consulting firm",
    "IT services",
    "accounting firm",
    "law office",
    "insurance agency",
    "real estate office",
]

INDUSTRY_SEARCH_CONFIGS: Dict[str, IndustrySearchConfig] = {
    Industry.residential_service.value: IndustrySearchConfig(50, 200, []),
    Industry.roofing.value: IndustrySearchConfig(50, 200, []),
    Industry.solar.value: IndustrySearchConfig(50, 200, []),
    Industry.hvac.value: IndustrySearchConfig(50, 200, []),
    Industry.b2b_service.value: IndustrySearchConfig(25, 200, _B2B_KEYWORDS),
    Industry.commercial_service.value: IndustrySearchConfig(
        30,
        300,
        [
            "office building",
            "commercial property",
            "shopping center",
            "medical office",
            "industrial park",
            "warehouse",
        ],
    ),
    Industry.retail.value: IndustrySearchConfig(
        50,
        300,
        [
            "retail store",
            "shopping center",
            "franchise",
            "restaurant",
            "fast food",
        ],
    ),
    # Photographer keywords come from the selected niche profile
    Industry.photographer.value: IndustrySearchConfig(30, 150, []),
    Industry.default.value: IndustrySearchConfig(25, 200, _B2B_KEYWORDS),
}

# ---------------------------------------------------------------------------
# Place-based scoring
# ---------------------------------------------------------------------------

PLACE_BASE_SCORE: float = 3.0
LOW_RATING_THRESHOLD: float = 3.8
LOW_RATING_BONUS: float = 2.5
WEAK_PRESENCE_REVIEW_THRESHOLD: int = 5
WEAK_PRESENCE_BONUS: float = 1.5
LOW_REVIEWS_THRESHOLD: int = 20
LOW_REVIEWS_BONUS: float = 1.5
INDUSTRY_MATCH_BONUS: float = 0.8
MAX_DISTANCE_BONUS: float = 1.2
VENUE_BONUS: float = 1.0

PLACE_TYPE_CATEGORIES: Dict[str, str] = {
    "restaurant": "Restaurant",
    "dentist": "Dental Office",
    "doctor": "Medical Clinic",
    "lawyer": "Law Firm",
    "accounting": "Accounting",
    "real_estate_agency": "Real Estate",
    "insurance_agency": "Insurance",
    "car_repair": "Auto Repair",
    "beauty_salon": "Salon",
    "gym": "Gym/Fitness",
    "veterinary_care": "Veterinary",
    "store": "Retail Store",
    "lodging": "Hotel/Lodging",
    "church": "Church",
}

VENUE_PLACE_TYPES: FrozenSet[str] = frozenset(
    {"lodging", "event_venue", "wedding_venue", "banquet_hall", "restaurant"}
)
VENUE_NAME_PATTERN: str = r"venue|event|ballroom|garden|estate|winery|manor"

# ---------------------------------------------------------------------------
# Residential scoring
# ---------------------------------------------------------------------------

NEUTRAL_SUBSCORE: float = 5.0
STORM_CLOSE_MILES: float = 5.0
STORM_NEAR_MILES: float = 15.0
NO_STORM_DISTANCE_MILES: float = 999.0
PERMIT_SUBSCORE: float = 9.0
OWNERSHIP_FLAG_PCT: int = 55
RESIDENTIAL_MIN_SCORE: float = 1.0
MAX_SCORE: float = 10.0

# ---------------------------------------------------------------------------
# Photographer niche scoring
# ---------------------------------------------------------------------------

OUTDOOR_KEYWORDS: List[str] = [
    "park", "garden", "outdoor", "field", "lake", "waterfront", "pier",
    "beach", "trail", "nature", "scenic", "overlook", "terrace", "rooftop",
    "patio", "courtyard", "meadow", "forest", "river", "pond", "bridge",
]
INDUSTRIAL_KEYWORDS: List[str] = [
    "warehouse", "industrial", "dock", "garage", "parking", "factory",
    "rail", "terminal", "yard", "hangar", "port", "overpass",
]
URBAN_KEYWORDS: List[str] = [
    "gallery", "museum", "mural", "art", "monument", "historic",
    "architecture", "tower", "library", "theater", "station", "cultural",
]
PUBLIC_ACCESS_TYPES: FrozenSet[str] = frozenset(
    {"park", "museum", "church", "library", "tourist_attraction"}
)

LOCATION_TYPE_LABELS: Dict[str, str] = {
    "park": "Park",
    "museum": "Museum",
    "art_gallery": "Gallery",
    "church": "Church",
    "lodging": "Hotel",
    "restaurant": "Restaurant",
    "tourist_attraction": "Attraction",
    "campground": "Campground",
    "library": "Library",
    "stadium": "Stadium",
}

# Name keyword → location label, first match wins
LOCATION_NAME_LABELS: List[tuple] = [
    (("venue", "banquet"), "Event Venue"),
    (("garden", "botanical"), "Garden"),
    (("winery", "vineyard"), "Winery"),
    (("warehouse",), "Warehouse"),
    (("marina", "dock"), "Marina"),
    (("gallery",), "Gallery"),
    (("cafe", "coffee"), "Cafe"),
]

# ---------------------------------------------------------------------------
# Residential candidate generation
# ---------------------------------------------------------------------------

CANDIDATE_BASE_COUNT: int = 80
CANDIDATE_PER_MILE: int = 3
MAX_GEOCODES: int = 60
MAX_TRACT_LOOKUPS: int = 30
NEARBY_STORM_MILES: float = 15.0
PERMIT_MATCH_MILES: float = 0.5
CANVASS_RADIUS_METERS: float = 483.0  # ~0.3 mi
MAX_PERMIT_FEATURES: int = 50

# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------

CLUSTER_CELL_DEGREES: float = 0.007  # ~800 m
CLUSTER_MERGE_METERS: float = 1500.0
MIN_CLUSTER_SIZE: int = 3
CLUSTER_POLYGON_PAD_FACTOR: float = 0.3

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

CACHE_COORD_DECIMALS: int = 2  # ~1.1 km buckets
CACHE_RADIUS_BUCKET_MILES: int = 5
