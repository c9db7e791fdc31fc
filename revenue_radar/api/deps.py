"""API-layer dependency functions.

Re-exports the dependency factories from ``revenue_radar.dependencies``
so that endpoint modules only need to import from ``revenue_radar.api.deps``.
"""

from revenue_radar.dependencies import (
    # Store and service factories
    get_persistent_store,
    get_radar_cache,
    get_rate_limiter,
    get_provider_set,
    get_profile_registry,
    get_lead_discovery_service,
    # Request context
    get_tenant_id,
    # Redis
    get_redis_client,
)

__all__ = [
    "get_persistent_store",
    "get_radar_cache",
    "get_rate_limiter",
    "get_provider_set",
    "get_profile_registry",
    "get_lead_discovery_service",
    "get_tenant_id",
    "get_redis_client",
]
