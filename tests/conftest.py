"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator, Callable

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.redis import RedisClient
from core.session_store import SessionStore
from core.user_cache import UserCache
from db.session import create_session_factory
from models.base import Base
from schemas.user import UserCreate
from services.directory_service import DirectoryService
from services.user_store import UserStore


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    In-memory SQLite engine with the schema created.

    StaticPool keeps a single connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest.fixture
def user_store(session_factory: async_sessionmaker[AsyncSession]) -> UserStore:
    """User store over the test database."""
    return UserStore(session_factory, timeout=5.0)


@pytest.fixture
async def redis_client() -> AsyncGenerator[RedisClient]:
    """RedisClient backed by an isolated fake Redis server."""
    client = RedisClient(
        "redis://fake:6379",
        client=FakeAsyncRedis(server=FakeServer()),
    )
    await client.connect()

    yield client

    await client.flushdb()
    await client.close()


@pytest.fixture
async def disabled_redis_client() -> AsyncGenerator[RedisClient]:
    """RedisClient with Redis switched off - every read misses, every write no-ops."""
    client = RedisClient("redis://localhost:6379", enabled=False)
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def user_cache(redis_client: RedisClient) -> UserCache:
    """User cache over the fake Redis."""
    return UserCache(redis_client, ttl_seconds=300)


@pytest.fixture
def session_store(redis_client: RedisClient) -> SessionStore:
    """Session registry over the fake Redis."""
    return SessionStore(redis_client, ttl_seconds=3600)


@pytest.fixture
def directory(
    user_store: UserStore,
    user_cache: UserCache,
    session_store: SessionStore,
) -> DirectoryService:
    """Directory service wired to the test store, cache and session registry."""
    return DirectoryService(user_store, user_cache, session_store)


@pytest.fixture
def new_user() -> Callable[..., UserCreate]:
    """Factory for valid create payloads; keyword arguments override defaults."""

    def _make(
        username: str = "alice01",
        email: str = "alice@example.com",
        **overrides: object,
    ) -> UserCreate:
        values: dict[str, object] = {
            "username": username,
            "email": email,
            "password_hash": "$argon2id$v=19$m=65536,t=3,p=4$c2FsdA$aGFzaA",
        }
        values.update(overrides)
        return UserCreate(**values)

    return _make
