"""
Database session configuration.

Async engine and session factory for the driver record store (profiles,
shifts, telemetry and alerts). Production runs on PostgreSQL via asyncpg;
tests bind the same metadata to an in-memory SQLite engine.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from dutylink.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# BackendStore opens one session per operation from this factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


def _register_models():
    # Deferred: the model modules import Base from here
    from dutylink.app.models import driver_profile, emergency_alert, shift_record, telemetry_record  # noqa: F401


async def create_tables(bind: AsyncEngine = None):
    """Create every driver-core table (and the open-shift index) if missing."""
    _register_models()
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """FastAPI dependency yielding a request-scoped session."""
    async with AsyncSessionLocal() as session:
        yield session
