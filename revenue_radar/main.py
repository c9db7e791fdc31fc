import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from revenue_radar import __version__
from revenue_radar.api.v1.router import router as api_v1_router
from revenue_radar.core.config import settings as app_settings
from revenue_radar.core.exceptions import (
    InvalidSearchError,
    SearchDeadlineExceededError,
    SearchQuotaExceededError,
)
from revenue_radar.core.rate_limit import limiter
from revenue_radar.dependencies import build_persistent_store
from revenue_radar.services.cache_sweeper import start_cache_sweep_loop
from revenue_radar.services.radar_cache import RadarCache

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application-level background tasks."""
    sweep_task = None
    # Redis entries expire natively; only the SQL store needs sweeping
    if app_settings.STORE_BACKEND == "postgres":
        sweep_task = asyncio.create_task(
            start_cache_sweep_loop(lambda: RadarCache(build_persistent_store()))
        )
        logger.info("Background cache sweep task scheduled")
    yield
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            logger.info("Background cache sweep task stopped")


app = FastAPI(
    title="Revenue Radar",
    description="Map-area lead discovery with trade-weighted scoring and neighborhood clustering",
    version=__version__,
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware, restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(InvalidSearchError)
async def invalid_search_handler(request: Request, exc: InvalidSearchError):
    logger.warning("Invalid search: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_search"},
    )


@app.exception_handler(SearchQuotaExceededError)
async def quota_exceeded_handler(request: Request, exc: SearchQuotaExceededError):
    logger.warning("Search quota exceeded: %s", exc.detail)
    return JSONResponse(
        status_code=429,
        content={
            "detail": exc.detail,
            "type": "rate_limit_exceeded",
            "remaining": exc.remaining,
            "limit": exc.limit,
            "reset_at": exc.reset_at.isoformat(),
        },
    )


@app.exception_handler(SearchDeadlineExceededError)
async def search_deadline_handler(request: Request, exc: SearchDeadlineExceededError):
    logger.error("Search deadline exceeded: %s", exc.detail)
    return JSONResponse(
        status_code=504,
        content={"detail": exc.detail, "type": "search_deadline_exceeded"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
