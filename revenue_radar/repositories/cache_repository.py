from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert

from revenue_radar.models.radar_cache import RadarCacheEntry
from revenue_radar.repositories.base import BaseRepository

_UPDATABLE_COLUMNS = (
    "industry",
    "lat_bucket",
    "lng_bucket",
    "radius_miles",
    "payload",
    "result_count",
    "expires_at",
    "created_at",
)


class CacheRepository(BaseRepository):
    async def get(self, cache_key: str) -> Optional[RadarCacheEntry]:
        result = await self._db.execute(
            select(RadarCacheEntry).where(RadarCacheEntry.cache_key == cache_key)
        )
        return result.scalar_one_or_none()

    async def upsert(self, values: Dict[str, Any]) -> None:
        """Insert a row or replace every column of the existing one."""
        stmt = insert(RadarCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RadarCacheEntry.cache_key],
            set_={col: stmt.excluded[col] for col in _UPDATABLE_COLUMNS},
        )
        await self._db.execute(stmt)

    async def delete_expired(self, now: datetime) -> int:
        result = await self._db.execute(
            delete(RadarCacheEntry).where(RadarCacheEntry.expires_at <= now)
        )
        return result.rowcount or 0
