#!/usr/bin/env python3
"""
Redis Client with Connection Pooling

This module provides the async key-value store used for the reference-data
cache, conversation history, error-report dedup keys and workflow step
checkpoints. Expiry is delegated entirely to Redis' native per-key TTL
(``SET key value EX ttl``): an expired key is simply absent.

Author: Senior Solution Architect
Date: 2026-02-10
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import CacheConnectionError, CacheKeyError
from sheetqa.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client with connection pooling.

    STAGE-REDIS: Redis client initialization and operations

    Usage:
        client = RedisClient()
        await client.connect()

        await client.set("key", "value", ttl=300)
        value = await client.get("key")

        await client.disconnect()
    """

    def __init__(self, settings=None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self.settings = settings or get_settings()
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._is_connected = False

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            host=self.settings.redis.REDIS_HOST,
            port=self.settings.redis.REDIS_PORT,
        )

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def connect(self) -> None:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected:
            return

        redis_settings = self.settings.redis
        try:
            self.pool = ConnectionPool(
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            await self.client.ping()
            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
            )

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"host": redis_settings.REDIS_HOST, "port": redis_settings.REDIS_PORT},
            ) from e

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self.client:
            await self.client.aclose()

        if self.pool:
            await self.pool.disconnect()

        self._is_connected = False
        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        """Check Redis connection health."""
        try:
            if self.client and self._is_connected:
                await self.client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    # =========================================================================
    # Basic Operations
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """
        Get value from Redis.

        Returns:
            Value or None if absent / expired
        """
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.error("Redis GET failed", stage="REDIS.GET", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis GET failed: {e}", details={"key": key}) from e

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Set value in Redis with an optional native TTL (seconds).
        """
        try:
            result = await self.client.set(key, value, ex=ttl)
            return result is not None
        except RedisError as e:
            logger.error("Redis SET failed", stage="REDIS.SET", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis SET failed: {e}", details={"key": key}) from e


# ============================================================================
# Global Instance
# ============================================================================

_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient:
    """Get the process-wide Redis client (connection pool holder)."""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client


async def init_redis() -> RedisClient:
    client = get_redis_client()
    await client.connect()
    return client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
