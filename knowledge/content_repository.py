"""
Content Repository: write-once store for generated content
===========================================================

create_content() is the only operation the orchestrator needs. Reads are
provided for history views and tests.

Architecture: Repository Pattern + SQLAlchemy Core
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError

from core.enums import ContentType, Platform
from core.exceptions import InfrastructureError, PersistenceError
from core.models import PersistedContent
from infrastructure.database import DatabaseManager
from infrastructure.schema import contents_table


class ContentRepository(ABC):
    @abstractmethod
    async def create_content(self, content: PersistedContent) -> str:
        """
        Persist one accepted result.

        Returns:
            The content id

        Raises:
            PersistenceError: If the write fails
        """

    @abstractmethod
    async def get_content(self, content_id: str) -> Optional[PersistedContent]:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> List[PersistedContent]:
        ...


class InMemoryContentRepository(ContentRepository):
    def __init__(self):
        self._rows: Dict[str, PersistedContent] = {}
        self._lock = asyncio.Lock()

    async def create_content(self, content: PersistedContent) -> str:
        async with self._lock:
            if content.id in self._rows:
                raise PersistenceError(f"Content {content.id} already exists")
            self._rows[content.id] = content.model_copy()
        logger.debug(f"Content stored in memory | content_id={content.id}")
        return content.id

    async def get_content(self, content_id: str) -> Optional[PersistedContent]:
        return self._rows.get(content_id)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[PersistedContent]:
        rows = [row for row in self._rows.values() if row.user_id == user_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return rows[:limit]

    def __len__(self) -> int:
        return len(self._rows)


class SqlContentRepository(ContentRepository):
    """
    SQLAlchemy Core repository over the contents table.

    All methods are type-safe and run inside DatabaseManager sessions.
    """

    def __init__(self, database_manager: DatabaseManager, write_timeout: float = 10.0):
        self.database_manager = database_manager
        self.write_timeout = write_timeout
        logger.debug("SqlContentRepository initialized")

    async def create_content(self, content: PersistedContent) -> str:
        values = {
            "id": content.id,
            "title": content.title,
            "content": content.content,
            "platform": content.platform.value,
            "content_type": content.content_type.value,
            "user_id": content.user_id,
            "category": content.category,
            "image_url": content.image_url,
            "video_url": content.video_url,
            "created_at": content.created_at,
        }
        try:
            await asyncio.wait_for(self._insert(values), timeout=self.write_timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceError(
                f"Content write timed out after {self.write_timeout}s", cause=e
            ) from e
        except (SQLAlchemyError, InfrastructureError) as e:
            logger.error(f"Failed to create content {content.id}: {e}")
            raise PersistenceError(cause=e) from e

        logger.info(f"Content persisted | content_id={content.id} | platform={content.platform.value}")
        return content.id

    async def _insert(self, values: dict) -> None:
        async with self.database_manager.session() as session:
            await session.execute(insert(contents_table).values(**values))

    async def get_content(self, content_id: str) -> Optional[PersistedContent]:
        async with self.database_manager.session() as session:
            result = await session.execute(
                select(contents_table).where(contents_table.c.id == content_id)
            )
            row = result.fetchone()
        return self._to_model(row) if row is not None else None

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[PersistedContent]:
        async with self.database_manager.session() as session:
            result = await session.execute(
                select(contents_table)
                .where(contents_table.c.user_id == user_id)
                .order_by(contents_table.c.created_at.desc())
                .limit(limit)
            )
            rows = result.fetchall()
        return [self._to_model(row) for row in rows]

    @staticmethod
    def _to_model(row) -> PersistedContent:
        data = row._asdict()
        data["platform"] = Platform(data["platform"])
        data["content_type"] = ContentType(data["content_type"])
        return PersistedContent(**data)
