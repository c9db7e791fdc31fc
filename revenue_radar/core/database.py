from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from revenue_radar.core.config import settings

# Pooled engine; the radar tables see one short session per store call
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

# Session factory shared by SqlRadarStore and the cache sweep loop
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
