"""Persistent store contract shared by the radar cache and rate limiter."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class CacheRecord:
    cache_key: str
    industry: str
    lat_bucket: float
    lng_bucket: float
    radius_miles: int
    payload: Dict[str, Any]
    result_count: int
    expires_at: datetime
    created_at: datetime


class PersistentStore(Protocol):
    """Backend for cache rows and daily counters.

    Implementations raise ``StoreUnavailableError`` when the backend
    cannot be reached; they never return a fabricated value instead.
    """

    async def get_cache_entry(self, cache_key: str) -> Optional[CacheRecord]: ...

    async def upsert_cache_entry(self, record: CacheRecord) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...

    async def increment_counter(
        self, tenant_id: str, day: date, now: datetime
    ) -> int: ...

    async def get_counter(self, tenant_id: str, day: date) -> Optional[int]: ...
