"""Per-tenant daily search quota."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from revenue_radar.core.clock import next_utc_midnight, utc_now
from revenue_radar.core.config import settings
from revenue_radar.core.exceptions import SearchQuotaExceededError, StoreUnavailableError
from revenue_radar.schemas.common import CounterStatus
from revenue_radar.schemas.search import RateLimitStatus
from revenue_radar.stores.base import PersistentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaCheck:
    status: RateLimitStatus
    source: CounterStatus


class SearchRateLimiter:
    """One counter per (tenant, UTC day).

    A missing counter or an unreachable store both fail open with the
    full quota. Searches without a tenant are unmetered.
    """

    def __init__(
        self,
        store: PersistentStore,
        daily_limit: int = settings.DAILY_SEARCH_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.daily_limit = daily_limit
        self.clock = clock

    def _status(self, count: int, now: datetime) -> RateLimitStatus:
        return RateLimitStatus(
            allowed=count < self.daily_limit,
            remaining=max(0, self.daily_limit - count),
            limit=self.daily_limit,
            reset_at=next_utc_midnight(now),
        )

    async def check(self, tenant_id: Optional[str]) -> QuotaCheck:
        now = self.clock()
        if not tenant_id:
            return QuotaCheck(RateLimitStatus(allowed=True), CounterStatus.unmetered)

        try:
            count = await self.store.get_counter(tenant_id, now.date())
        except StoreUnavailableError as exc:
            logger.warning(f"Quota store unavailable for {tenant_id}: {exc.detail}")
            return QuotaCheck(self._status(0, now), CounterStatus.unavailable)

        if count is None:
            return QuotaCheck(self._status(0, now), CounterStatus.missing)
        return QuotaCheck(self._status(count, now), CounterStatus.counted)

    async def enforce(self, tenant_id: Optional[str]) -> RateLimitStatus:
        """Return the quota status or raise when it is exhausted."""
        result = await self.check(tenant_id)
        if not result.status.allowed:
            raise SearchQuotaExceededError(
                limit=self.daily_limit, reset_at=result.status.reset_at
            )
        return result.status

    async def record(self, tenant_id: Optional[str]) -> Optional[int]:
        """Atomically count one search; ``None`` if unmetered or not stored."""
        if not tenant_id:
            return None
        now = self.clock()
        try:
            return await self.store.increment_counter(tenant_id, now.date(), now)
        except StoreUnavailableError as exc:
            logger.warning(f"Quota increment failed for {tenant_id}: {exc.detail}")
            return None

    def status_after(self, count: Optional[int], before: RateLimitStatus) -> RateLimitStatus:
        """Quota status once *count* searches have been recorded today."""
        if before.limit is None:
            return before
        if count is None:
            return before
        return self._status(count, self.clock())
