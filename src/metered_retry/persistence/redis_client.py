"""
Redis connections for the quota store.

One asyncio connection pool per Redis URL, created lazily and shared by every
RedisQuotaStore in the process. Quota scripts are short, so socket timeouts
are kept tight: a slow store should surface as STORE_UNAVAILABLE rather than
stall a run.
"""

from typing import Optional

import structlog
from redis.asyncio import ConnectionPool as AsyncConnectionPool
from redis.asyncio import Redis as AsyncRedis

from metered_retry.config import Settings

logger = structlog.get_logger(__name__)

SOCKET_TIMEOUT_SECONDS = 5


class RedisClient:
    """
    Registry of asyncio connection pools keyed by URL.

    Usage:
        client = RedisClient.get_async_client(settings)
        store = RedisQuotaStore.from_settings(client, settings)
        ...
        await RedisClient.close_async_pools()
    """

    _async_pools: dict[str, AsyncConnectionPool] = {}

    @classmethod
    def get_async_client(cls, settings: Settings) -> AsyncRedis:
        """
        Client bound to the shared pool for settings.REDIS_URL.

        Args:
            settings: Application settings (REDIS_URL, REDIS_MAX_CONNECTIONS)

        Returns:
            AsyncRedis client decoding responses to str
        """
        pool = cls._async_pools.get(settings.REDIS_URL)
        if pool is None:
            pool = AsyncConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                socket_timeout=SOCKET_TIMEOUT_SECONDS,
                socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
                retry_on_timeout=False,
            )
            cls._async_pools[settings.REDIS_URL] = pool
            logger.info(
                "Initialized Redis connection pool",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                pools=len(cls._async_pools),
            )

        return AsyncRedis(connection_pool=pool)

    @classmethod
    async def close_async_pools(cls) -> None:
        """Disconnect every pool (cleanup on shutdown)."""
        pools = list(cls._async_pools.values())
        cls._async_pools.clear()
        for pool in pools:
            await pool.disconnect()
        if pools:
            logger.info("Closed Redis connection pools", count=len(pools))


async def health_check(client: AsyncRedis) -> bool:
    """
    PING the quota store.

    Returns True if Redis answers, False otherwise.
    """
    try:
        await client.ping()
        logger.debug("Redis health check passed")
        return True
    except Exception as e:
        logger.warning("Redis health check failed", error_type=type(e).__name__)
        return False


async def get_async_redis_client(settings: Optional[Settings] = None) -> AsyncRedis:
    """Shared-pool client for the given (or global) settings."""
    if settings is None:
        from metered_retry.config import settings as default_settings

        settings = default_settings
    return RedisClient.get_async_client(settings)
