"""Explicit construction and teardown of the directory's backend handles."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from core.config import Settings, get_settings
from core.redis import RedisClient
from core.session_store import SessionStore
from core.user_cache import UserCache
from db.session import create_engine_from_settings, create_session_factory
from services.directory_service import DirectoryService
from services.user_store import UserStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def directory_lifespan(
    settings: Settings | None = None,
) -> AsyncGenerator[DirectoryService]:
    """
    Build every backend handle once, yield the directory, tear down in reverse.

    Usage:
        async with directory_lifespan() as directory:
            user = await directory.get_by_id(user_id)

    Redis being unreachable at startup is not an error: the cache and session
    registry then behave as empty and the directory runs store-only.
    """
    app_settings = settings or get_settings()

    # Startup: database engine and session factory
    engine = create_engine_from_settings(app_settings)
    session_factory = create_session_factory(engine)

    # Startup: Redis, shared by cache and session registry
    redis_client = RedisClient(
        url=app_settings.redis_url,
        enabled=app_settings.redis_enabled,
        pool_size=app_settings.redis_pool_size,
        timeout=app_settings.redis_timeout_seconds,
    )
    await redis_client.connect()

    directory = DirectoryService(
        store=UserStore(session_factory, timeout=app_settings.store_timeout_seconds),
        cache=UserCache(redis_client, ttl_seconds=app_settings.user_cache_ttl_seconds),
        sessions=SessionStore(redis_client, ttl_seconds=app_settings.session_ttl_seconds),
        verify_cache_hits=app_settings.verify_cache_hits,
    )
    logger.info("directory_started redis_connected=%s", redis_client.is_connected)

    try:
        yield directory
    finally:
        # Shutdown: Redis first, then the database pool
        await redis_client.close()
        await engine.dispose()
        logger.info("directory_stopped")
