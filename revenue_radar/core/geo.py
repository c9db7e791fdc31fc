"""Spherical distance, seeded randomness and small geometry helpers."""

import hashlib
import math
import random
from typing import List, Tuple

from revenue_radar.core.constants import METERS_PER_MILE

EARTH_RADIUS_METERS = 6_371_000.0


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two WGS84 points, in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, a)))


def round_half_up(value: float, decimals: int = 0) -> float:
    """Round with ties going toward +infinity.

    ``round()`` uses banker's rounding, which would split cache buckets
    and percentages differently from the stored data.
    """
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


def meters_per_degree(lat: float) -> Tuple[float, float]:
    """Return (meters per degree latitude, meters per degree longitude)."""
    lat_rad = math.radians(lat)
    m_lat = 111132.92 - 559.82 * math.cos(2 * lat_rad)
    m_lng = 111412.84 * math.cos(lat_rad)
    return m_lat, m_lng


def seeded_random(*coords: float) -> random.Random:
    """Return a PRNG seeded from a hash of *coords*.

    Identical coordinates always yield the same sequence, independent of
    the interpreter's hash seed and of the module-level ``random`` state.
    """
    text = ":".join(f"{c:.6f}" for c in coords)
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest[:8], "big"))


def random_point_in_radius(
    lat: float, lng: float, radius_m: float, rng: random.Random
) -> Tuple[float, float]:
    """Uniformly sample a (lat, lng) inside a circle around the center."""
    r = radius_m * math.sqrt(rng.random())
    theta = rng.random() * 2 * math.pi
    m_lat, m_lng = meters_per_degree(lat)
    return lat + (r * math.sin(theta)) / m_lat, lng + (r * math.cos(theta)) / m_lng


def circle_polygon(
    lat: float,
    lng: float,
    radius_m: float,
    steps: int = 48,
    jitter: float = 0.06,
) -> List[List[float]]:
    """Closed GeoJSON ring ([lng, lat] pairs) approximating a circle.

    Each vertex radius is perturbed by up to ``jitter / 2`` using a PRNG
    seeded from the center, so the ring is irregular but reproducible.
    """
    m_lat, m_lng = meters_per_degree(lat)
    rng = seeded_random(lat, lng)
    ring: List[List[float]] = []
    for i in range(steps + 1):
        angle = (i / steps) * 2 * math.pi
        scale = 1 + (rng.random() - 0.5) * jitter
        ring.append(
            [
                lng + (radius_m * scale * math.cos(angle)) / m_lng,
                lat + (radius_m * scale * math.sin(angle)) / m_lat,
            ]
        )
    # Close the ring exactly
    ring[-1] = list(ring[0])
    return ring
