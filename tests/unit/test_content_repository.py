"""
Unit Tests for Content Repositories
===================================

In-memory store plus the SQLAlchemy store on a temporary SQLite file
(aiosqlite), exercising the same schema the PostgreSQL deployment uses.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from config.settings import DatabaseSettings
from core.enums import ContentType, Platform
from core.exceptions import PersistenceError
from core.models import PersistedContent
from infrastructure.database import DatabaseManager
from knowledge.content_repository import InMemoryContentRepository, SqlContentRepository


def _content(user_id="42", **kwargs) -> PersistedContent:
    values = {
        "title": "Remote Work Wins",
        "content": "Remote teams ship faster.",
        "platform": Platform.LINKEDIN,
        "content_type": ContentType.POST_WITH_IMAGE,
        "user_id": user_id,
        "category": "work",
        "image_url": "https://images.test/1.png",
    }
    values.update(kwargs)
    return PersistedContent(**values)


@pytest_asyncio.fixture
async def database(tmp_path):
    settings = DatabaseSettings(DATABASE_URL=f"sqlite:///{tmp_path / 'content.db'}")
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def sql_repository(database) -> SqlContentRepository:
    return SqlContentRepository(database, write_timeout=5.0)


class TestInMemoryContentRepository:
    @pytest.mark.asyncio
    async def test_create_and_read(self):
        repository = InMemoryContentRepository()
        content = _content()

        content_id = await repository.create_content(content)

        assert content_id == content.id
        assert (await repository.get_content(content_id)).title == "Remote Work Wins"
        assert len(repository) == 1

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        repository = InMemoryContentRepository()
        content = _content()
        await repository.create_content(content)

        with pytest.raises(PersistenceError):
            await repository.create_content(content)

    @pytest.mark.asyncio
    async def test_list_for_user_newest_first(self):
        repository = InMemoryContentRepository()
        now = datetime(2025, 1, 1)
        await repository.create_content(_content(title="old", created_at=now))
        await repository.create_content(_content(title="new", created_at=now + timedelta(hours=1)))
        await repository.create_content(_content(user_id="someone-else"))

        rows = await repository.list_for_user("42")

        assert [row.title for row in rows] == ["new", "old"]


class TestSqlContentRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self, sql_repository):
        content = _content()

        content_id = await sql_repository.create_content(content)
        stored = await sql_repository.get_content(content_id)

        assert stored is not None
        assert stored.platform is Platform.LINKEDIN
        assert stored.content_type is ContentType.POST_WITH_IMAGE
        assert stored.image_url == "https://images.test/1.png"
        assert stored.category == "work"

    @pytest.mark.asyncio
    async def test_anonymous_content_has_no_user(self, sql_repository):
        content_id = await sql_repository.create_content(_content(user_id=None))

        stored = await sql_repository.get_content(content_id)

        assert stored.user_id is None

    @pytest.mark.asyncio
    async def test_list_for_user(self, sql_repository):
        now = datetime(2025, 1, 1)
        await sql_repository.create_content(_content(title="old", created_at=now))
        await sql_repository.create_content(
            _content(title="new", created_at=now + timedelta(minutes=5))
        )

        rows = await sql_repository.list_for_user("42", limit=1)

        assert [row.title for row in rows] == ["new"]

    @pytest.mark.asyncio
    async def test_duplicate_id_is_persistence_error(self, sql_repository):
        content = _content()
        await sql_repository.create_content(content)

        with pytest.raises(PersistenceError):
            await sql_repository.create_content(content)

    @pytest.mark.asyncio
    async def test_uninitialized_database_is_persistence_error(self):
        manager = DatabaseManager(MagicMock(spec=DatabaseSettings))
        repository = SqlContentRepository(manager)

        with pytest.raises(PersistenceError):
            await repository.create_content(_content())

    @pytest.mark.asyncio
    async def test_health_check(self, database):
        assert await database.health_check() is True
