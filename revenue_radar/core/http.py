import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from revenue_radar.core.config import settings
from revenue_radar.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

_BASE_BACKOFF_SECONDS = 0.2
_BACKOFF_FACTOR = 2.0


def compute_backoff_delays(
    retries: int,
    base_delay: float = _BASE_BACKOFF_SECONDS,
    factor: float = _BACKOFF_FACTOR,
) -> List[float]:
    """Exponential delays (seconds) slept before each retry."""
    delays = []
    current = base_delay
    for _ in range(retries):
        delays.append(current)
        current *= factor
    return delays


def build_client(**kwargs: Any) -> httpx.AsyncClient:
    """AsyncClient with the per-call provider timeout applied."""
    kwargs.setdefault("timeout", settings.PROVIDER_TIMEOUT_SECONDS)
    return httpx.AsyncClient(**kwargs)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_retries: int = settings.PROVIDER_MAX_RETRIES,
    base_delay: float = _BASE_BACKOFF_SECONDS,
) -> httpx.Response:
    """GET *url*, retrying transport errors and 5xx responses.

    4xx responses raise :class:`ProviderError` straight away: repeating a
    rejected request cannot change the outcome.
    """
    delays = compute_backoff_delays(max_retries, base_delay)
    attempt = 0
    while True:
        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TransportError as exc:
            if attempt >= len(delays):
                raise ProviderError(provider, f"request failed: {exc}") from exc
            logger.debug(
                "%s transport error on attempt %d, retrying", provider, attempt + 1
            )
        else:
            if response.status_code < 400:
                return response
            if response.status_code < 500:
                raise ProviderError(
                    provider, f"HTTP {response.status_code} from {response.url}"
                )
            if attempt >= len(delays):
                raise ProviderError(
                    provider,
                    f"HTTP {response.status_code} after {attempt + 1} attempts",
                )
            logger.debug(
                "%s returned %s on attempt %d, retrying",
                provider,
                response.status_code,
                attempt + 1,
            )
        await asyncio.sleep(delays[attempt])
        attempt += 1


def parse_json(response: httpx.Response, provider: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(provider, "malformed JSON response") from exc
