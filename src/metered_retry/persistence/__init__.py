"""
Redis persistence layer.

- redis_client.py: Redis async connection pooling

Quota accounts are stored by metered_retry.quota.redis_store using this pool.
"""

from metered_retry.persistence.redis_client import (
    RedisClient,
    get_async_redis_client,
    health_check,
)

__all__ = [
    "RedisClient",
    "get_async_redis_client",
    "health_check",
]
