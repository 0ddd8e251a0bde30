"""Tests for directory construction and teardown."""
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from core.config import Settings
from core.lifespan import directory_lifespan
from schemas.user import UserCreate
from services.directory_service import DirectoryService
from tasks.init_db import create_schema


@pytest.fixture
async def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh SQLite file with Redis switched off."""
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'directory.db'}"
    engine = create_async_engine(database_url)
    await create_schema(engine)
    await engine.dispose()
    return Settings(_env_file=None, database_url=database_url, redis_enabled=False)


class TestDirectoryLifespan:
    """Tests for directory_lifespan."""

    async def test__lifespan__yields_working_directory(self, settings: Settings) -> None:
        """The yielded directory is fully wired and runs store-only without Redis."""
        async with directory_lifespan(settings) as directory:
            assert isinstance(directory, DirectoryService)
            created = await directory.create_user(
                UserCreate(username="alice01", email="alice@example.com", password_hash="x"),
            )
            assert await directory.get_by_email("alice@example.com") == created

    async def test__lifespan__data_survives_restart(self, settings: Settings) -> None:
        """Handles are rebuilt on each start; the store keeps the data."""
        async with directory_lifespan(settings) as directory:
            created = await directory.create_user(
                UserCreate(username="alice01", email="alice@example.com", password_hash="x"),
            )

        async with directory_lifespan(settings) as directory:
            assert await directory.get_by_id(created.id) == created

    async def test__lifespan__unreachable_redis_tolerated(self, settings: Settings) -> None:
        """An unreachable Redis at startup degrades to store-only instead of failing."""
        unreachable = settings.model_copy(
            update={"redis_enabled": True, "redis_url": "redis://127.0.0.1:1", "redis_timeout_seconds": 0.2},
        )

        async with directory_lifespan(unreachable) as directory:
            page = await directory.list_users()

        assert page.total == 0
