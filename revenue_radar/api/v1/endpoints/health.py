from fastapi import APIRouter
from pydantic import BaseModel

from revenue_radar import __version__
from revenue_radar.core.config import settings

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    store_backend: str


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe; does not touch the store or any provider."""
    return HealthResponse(version=__version__, store_backend=settings.STORE_BACKEND)
