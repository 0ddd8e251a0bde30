"""
Create the users table and its indexes.

Usage:
    python -m tasks.init_db

Idempotent: existing tables and indexes are left alone.
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import get_settings
from db.session import create_engine_from_settings
from models.base import Base

logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine) -> list[str]:
    """
    Create all model tables on ``engine``.

    Returns:
        Names of the tables defined by the models.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tables = sorted(Base.metadata.tables)
    logger.info("Schema ready: %s", ", ".join(tables))
    return tables


async def run_init_db() -> list[str]:
    """Create the schema on the configured database."""
    engine = create_engine_from_settings(get_settings())
    try:
        return await create_schema(engine)
    finally:
        await engine.dispose()


def main() -> None:
    """Entry point for running schema creation as a script."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_init_db())


if __name__ == "__main__":
    main()
