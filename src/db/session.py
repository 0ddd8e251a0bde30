"""Async SQLAlchemy engine and session factory construction."""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Build the database engine (connection pool) from settings.

    Called once at process startup; the caller owns the engine and must
    dispose() it at shutdown.
    """
    pool_options: dict[str, int] = {}
    if not settings.database_url.startswith("sqlite"):
        pool_options = {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
        }
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        **pool_options,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Return a session factory bound to ``engine``.

    expire_on_commit=False keeps loaded attributes readable after commit, so the
    store can build detached records once its unit of work has finished.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
