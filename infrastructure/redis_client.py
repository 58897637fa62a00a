"""
Redis Client for the Usage Store
=================================

Owns the connection pool the usage repository runs its optimistic
transactions on, and verifies connectivity at startup.

Architecture: one pool per process, created in initialize() and released
in close() by the container manager.
"""

from typing import Optional

from loguru import logger
from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from config.settings import RedisSettings
from core.exceptions import InfrastructureError


class RedisClient:
    """Pooled redis.asyncio client built from RedisSettings."""

    def __init__(self, redis_settings: RedisSettings):
        self._settings = redis_settings
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    async def initialize(self) -> None:
        """Create the connection pool and verify connectivity."""
        if self._client is not None:
            return
        try:
            self._pool = ConnectionPool.from_url(
                str(self._settings.url),
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._settings.max_connections,
                socket_timeout=self._settings.socket_timeout,
                socket_connect_timeout=self._settings.socket_connect_timeout,
                socket_keepalive=True,
                health_check_interval=30,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            logger.info("Redis connection pool initialized successfully")
        except RedisError as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise InfrastructureError(f"Redis initialization failed: {e}", cause=e) from e

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise InfrastructureError("Redis client used before initialize()")
        return self._client

    async def ping(self) -> bool:
        """Ping Redis to verify connectivity."""
        try:
            return bool(await self.client.ping())
        except (RedisError, InfrastructureError) as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Gracefully close connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection pool closed")
