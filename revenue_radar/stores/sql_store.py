import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revenue_radar.core.exceptions import StoreUnavailableError
from revenue_radar.repositories.cache_repository import CacheRepository
from revenue_radar.repositories.rate_limit_repository import RateLimitRepository
from revenue_radar.stores.base import CacheRecord

logger = logging.getLogger(__name__)

# asyncpg surfaces refused connections as OSError before SQLAlchemy wraps them
_BACKEND_ERRORS = (SQLAlchemyError, OSError)


class SqlRadarStore:
    """PostgreSQL-backed store; each operation runs in its own session."""

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_cache_entry(self, cache_key: str) -> Optional[CacheRecord]:
        try:
            async with self._session_factory() as session:
                row = await CacheRepository(session).get(cache_key)
        except _BACKEND_ERRORS as exc:
            raise StoreUnavailableError(f"cache read failed: {exc}") from exc
        if row is None:
            return None
        return CacheRecord(
            cache_key=row.cache_key,
            industry=row.industry,
            lat_bucket=row.lat_bucket,
            lng_bucket=row.lng_bucket,
            radius_miles=row.radius_miles,
            payload=row.payload,
            result_count=row.result_count,
            expires_at=row.expires_at,
            created_at=row.created_at,
        )

    async def upsert_cache_entry(self, record: CacheRecord) -> None:
        try:
            async with self._session_factory() as session:
                repo = CacheRepository(session)
                await repo.upsert(asdict(record))
                await repo.commit()
        except _BACKEND_ERRORS as exc:
            raise StoreUnavailableError(f"cache write failed: {exc}") from exc

    async def delete_expired(self, now: datetime) -> int:
        try:
            async with self._session_factory() as session:
                repo = CacheRepository(session)
                deleted = await repo.delete_expired(now)
                await repo.commit()
        except _BACKEND_ERRORS as exc:
            raise StoreUnavailableError(f"cache sweep failed: {exc}") from exc
        return deleted

    async def increment_counter(self, tenant_id: str, day: date, now: datetime) -> int:
        try:
            async with self._session_factory() as session:
                repo = RateLimitRepository(session)
                count = await repo.increment(tenant_id, day, now)
                await repo.commit()
        except _BACKEND_ERRORS as exc:
            raise StoreUnavailableError(f"counter increment failed: {exc}") from exc
        return count

    async def get_counter(self, tenant_id: str, day: date) -> Optional[int]:
        try:
            async with self._session_factory() as session:
                return await RateLimitRepository(session).get_count(tenant_id, day)
        except _BACKEND_ERRORS as exc:
            raise StoreUnavailableError(f"counter read failed: {exc}") from exc
