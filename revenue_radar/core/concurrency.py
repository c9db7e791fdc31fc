import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from revenue_radar.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def gather_in_batches(
    items: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    batch_size: int = settings.PROVIDER_BATCH_SIZE,
    pause_seconds: float = settings.PROVIDER_BATCH_PAUSE_SECONDS,
) -> List[R]:
    """Run ``func`` over *items* at most *batch_size* at a time.

    Results come back in input order. A short pause separates batches so
    third-party quotas are not hammered. Exceptions propagate; callers
    that want per-item degradation wrap ``func`` themselves.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    results: List[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(func(item) for item in batch)))
        if start + batch_size < len(items) and pause_seconds > 0:
            await asyncio.sleep(pause_seconds)
    return results


def sample_indices(total: int, max_count: int) -> List[int]:
    """Evenly spaced indices into a sequence of *total* items, at most *max_count*."""
    if total <= 0 or max_count <= 0:
        return []
    step = max(1, total // max_count)
    return list(range(0, total, step))[:max_count]
