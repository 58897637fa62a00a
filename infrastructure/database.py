"""
Database Infrastructure & Connection Management
================================================
Async SQLAlchemy engine for the content store:
- Connection pooling (asyncpg on PostgreSQL)
- SQLite via aiosqlite for local runs and tests
- Session context managers with commit/rollback
- Schema creation at startup

Architecture: Repository Pattern + Unit of Work
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool.impl import AsyncAdaptedQueuePool

from config.settings import DatabaseSettings
from core.exceptions import InfrastructureError
from infrastructure.schema import metadata

# Initialize logger
logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Centralized database connection and session management.

    Owns the engine lifecycle; initialize() at startup, close() at shutdown.
    """

    def __init__(self, database_settings: DatabaseSettings):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._is_initialized: bool = False
        self._settings = database_settings

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self._settings.echo_sql}
        if not self._settings.is_sqlite:
            options.update(
                pool_size=self._settings.pool_size,
                max_overflow=self._settings.max_overflow,
                pool_timeout=self._settings.pool_timeout,
                pool_recycle=self._settings.pool_recycle,
                pool_pre_ping=True,  # Verify connections before use
                poolclass=AsyncAdaptedQueuePool,
            )
        return options

    async def initialize(self, create_tables: bool = True) -> None:
        """
        Initialize database engine and session factory.

        Must be called during application startup.
        """
        if self._is_initialized:
            logger.warning("Database already initialized")
            return

        try:
            self._engine = create_async_engine(self._settings.async_url, **self._engine_options())
            self._register_events()
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,  # Prevent lazy loading after commit
            )

            await self.health_check()
            if create_tables:
                await self.create_tables()

            self._is_initialized = True
            logger.info("Database initialized successfully")

        except (OperationalError, DBAPIError, OSError) as e:
            logger.error(f"Database initialization failed: {e}")
            raise InfrastructureError(
                "Failed to initialize database connection",
                error_code="DATABASE_UNAVAILABLE",
                cause=e,
            ) from e

    async def create_tables(self) -> None:
        """Create missing tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise InfrastructureError("Database engine not initialized")
        return self._engine

    async def close(self) -> None:
        """
        Close database connections and dispose engine.

        Should be called during application shutdown.
        """
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._is_initialized = False
            logger.info("Database connections closed")

    def _register_events(self) -> None:
        """Register SQLAlchemy event listeners for monitoring."""
        if not self._engine:
            return

        @event.listens_for(self._engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Log new connections."""
            logger.debug("New database connection established")

    async def health_check(self) -> bool:
        """
        Verify database connectivity.

        Returns:
            True if healthy, raises exception otherwise
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Database health check failed: {e}")
            raise InfrastructureError("Database health check failed", cause=e) from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide async database session with automatic cleanup.

        Usage:
            async with db_manager.session() as session:
                await session.execute(query)

        Yields:
            AsyncSession: Database session, committed on clean exit
        """
        if not self._session_factory:
            raise InfrastructureError("Database not initialized")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error, rolled back: {e}")
            raise
        finally:
            await session.close()
