"""SQLAlchemy async database setup and engine configuration."""

from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings


def create_db_engine(url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create and configure an async SQLAlchemy engine.

    Args:
        url: Database URL, defaults to settings.DATABASE_URL.
        overrides: Extra keyword arguments for create_async_engine.

    Returns:
        Async SQLAlchemy engine instance.
    """
    settings = get_settings()
    url = url or settings.DATABASE_URL
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if url.startswith("sqlite"):
        # Concurrent steps queue on SQLite's file lock instead of erroring out.
        kwargs.update(connect_args={"timeout": 30})
    else:
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=1800,
        )
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory.

    Args:
        engine: SQLAlchemy async engine instance.

    Returns:
        Async sessionmaker instance.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache()
def get_engine() -> AsyncEngine:
    """Process-wide engine for the API server."""
    return create_db_engine()


@lru_cache()
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_engine())


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create tables for all registered models.

    This should be called once at application startup.
    """
    from db.base import Base
    import db.models  # noqa: F401  registers every model on Base.metadata

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: Optional[AsyncEngine] = None) -> None:
    """Dispose of pooled connections at shutdown."""
    await (engine or get_engine()).dispose()
