from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from revenue_radar.models.rate_limit import RadarRateLimit
from revenue_radar.repositories.base import BaseRepository


class RateLimitRepository(BaseRepository):
    async def increment(self, org_id: str, search_date: date, now: datetime) -> int:
        """Atomically create-or-increment the day's counter.

        A single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` so
        concurrent searches from one tenant never lose an increment.
        """
        stmt = insert(RadarRateLimit).values(
            org_id=org_id,
            search_date=search_date,
            search_count=1,
            last_search_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RadarRateLimit.org_id, RadarRateLimit.search_date],
            set_={
                "search_count": RadarRateLimit.search_count + 1,
                "last_search_at": stmt.excluded.last_search_at,
            },
        ).returning(RadarRateLimit.search_count)
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    async def get_count(self, org_id: str, search_date: date) -> Optional[int]:
        result = await self._db.execute(
            select(RadarRateLimit.search_count).where(
                RadarRateLimit.org_id == org_id,
                RadarRateLimit.search_date == search_date,
            )
        )
        return result.scalar_one_or_none()
