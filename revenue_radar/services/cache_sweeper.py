import asyncio
import logging
from typing import Callable

from revenue_radar.core.config import settings
from revenue_radar.services.radar_cache import RadarCache

logger = logging.getLogger(__name__)


async def sweep_expired_cache(cache: RadarCache) -> int:
    """One-shot: delete every expired cache entry.

    Returns the number of deleted entries (0 when the store is down).
    """
    return await cache.sweep()


async def start_cache_sweep_loop(
    cache_factory: Callable[[], RadarCache],
    interval_seconds: int = settings.CACHE_SWEEP_INTERVAL_SECONDS,
) -> None:
    """Infinite loop that sweeps expired cache rows on a fixed interval.

    Parameters:
        cache_factory: Returns the :class:`RadarCache` to sweep; called
            each cycle so a reconnected store is picked up.
        interval_seconds: Pause between cycles.
    """
    logger.info("Cache sweep background task started (interval=%ds)", interval_seconds)
    while True:
        try:
            deleted = await sweep_expired_cache(cache_factory())
            if deleted:
                logger.info("Cache sweep cycle complete: %d entr(ies) removed", deleted)
        except Exception:
            logger.error("Cache sweep cycle failed", exc_info=True)
        await asyncio.sleep(interval_seconds)
