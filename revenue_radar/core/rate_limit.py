from slowapi import Limiter
from slowapi.util import get_remote_address

from revenue_radar.core.config import settings

# Per-IP HTTP throttle; the per-tenant daily quota lives in
# services/rate_limiter.py
limiter = Limiter(key_func=get_remote_address)

SEARCH_RATE = f"{settings.SEARCH_REQUESTS_PER_MINUTE}/minute"
