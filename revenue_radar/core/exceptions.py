from datetime import datetime
from typing import Optional


class RadarError(Exception):
    """Base class for all Revenue Radar domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except RadarError`` clause can catch any domain error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class InvalidSearchError(RadarError):
    """Raised when search parameters are rejected before any provider call."""

    def __init__(self, detail: str = "Invalid search parameters"):
        super().__init__(detail)


class SearchQuotaExceededError(RadarError):
    """Raised when a tenant has used up its daily search quota.

    Carries the quota figures so the caller can render a specific
    "quota exhausted, retry after X" message instead of a generic error.
    """

    def __init__(
        self,
        limit: int,
        reset_at: datetime,
        detail: Optional[str] = None,
    ):
        self.limit = limit
        self.remaining = 0
        self.reset_at = reset_at
        super().__init__(detail or f"Daily search limit reached ({limit}/day)")


class SearchDeadlineExceededError(RadarError):
    """Raised when a cache-miss search does not finish within its deadline."""

    def __init__(self, detail: str = "Search did not complete in time"):
        super().__init__(detail)


class ProviderError(RadarError):
    """Raised by a provider client on a failed or malformed upstream response.

    Never reaches the caller: the discovery service degrades the affected
    data layer to an empty result.
    """

    def __init__(self, provider: str, detail: str = "Provider request failed"):
        self.provider = provider
        super().__init__(f"{provider}: {detail}")


class StoreUnavailableError(RadarError):
    """Raised by a persistent store when its backend cannot be reached.

    The radar cache and the search rate limiter catch this and fail open.
    """

    def __init__(self, detail: str = "Persistent store unavailable"):
        super().__init__(detail)
