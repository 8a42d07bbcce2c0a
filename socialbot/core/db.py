"""Database module with async SQLAlchemy engine and session management."""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import get_settings

settings = get_settings()

# SQLAlchemy base for models
Base = declarative_base()


def engine_options(db_url: str) -> Dict[str, Any]:
    """Pool options for the engine; SQLite drivers manage their own pool."""
    options: Dict[str, Any] = {"echo": settings.debug}
    if not db_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


# Async engine
async_engine = create_async_engine(settings.db_url, **engine_options(settings.db_url))

# Async session maker
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_all():
    """Create all tables in the database."""
    # models must be imported so their tables are registered on Base
    from . import models  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

