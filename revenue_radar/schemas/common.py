from enum import Enum


class Industry(str, Enum):
    residential_service = "residential_service"
    roofing = "roofing"
    solar = "solar"
    hvac = "hvac"
    b2b_service = "b2b_service"
    commercial_service = "commercial_service"
    retail = "retail"
    photographer = "photographer"
    default = "default"


class StormType(str, Enum):
    hail = "hail"
    wind = "wind"
    tornado = "tornado"
    thunderstorm = "thunderstorm"


class StormSeverity(str, Enum):
    minor = "minor"
    moderate = "moderate"
    severe = "severe"


class CacheStatus(str, Enum):
    """Outcome of a cache read.

    ``miss``, ``expired`` and ``unavailable`` all degrade to a fresh
    search; they stay distinct so each can be logged and counted.
    """

    hit = "hit"
    miss = "miss"
    expired = "expired"
    unavailable = "unavailable"


class CounterStatus(str, Enum):
    """Where a rate-limit decision came from."""

    counted = "counted"
    missing = "missing"
    unavailable = "unavailable"
    unmetered = "unmetered"

