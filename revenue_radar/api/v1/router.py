from fastapi import APIRouter

from revenue_radar.api.v1.endpoints import health, radar

router = APIRouter(prefix="/api/v1")

router.include_router(radar.router)
router.include_router(health.router)
