"""Integration test fixtures (service checks and prerequisites).

Provides fixtures for checking if external services are available.
Integration tests are skipped if required services are not running.
"""

import pytest
from redis import Redis
from redis.asyncio import Redis as AsyncRedis

TEST_REDIS_URL = "redis://localhost:6379/15"


@pytest.fixture(scope="session")
def check_redis():
    """Check if Redis is available at localhost:6379.

    Skips tests if Redis is not reachable.
    """
    try:
        client = Redis.from_url(TEST_REDIS_URL)
        client.ping()
        client.close()
    except Exception as e:
        pytest.skip(f"Redis not available: {e}")


@pytest.fixture
async def real_async_redis_client(check_redis):
    """Real AsyncRedis client instance for integration tests.

    Requires Redis to be running (checked by check_redis fixture).
    Uses database 15 (test database).
    """
    client = AsyncRedis.from_url(TEST_REDIS_URL, decode_responses=True)

    # Clear test database before test
    await client.flushdb()

    yield client

    # Clear test database after test
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def integration_settings(test_settings):
    """Settings for integration tests with real services.

    Points to localhost Redis, test database.
    """
    test_settings.QUOTA_BACKEND = "redis"
    test_settings.QUOTA_KEY_PREFIX = "it-quota"
    test_settings.REDIS_URL = TEST_REDIS_URL
    test_settings.PROMETHEUS_ENABLED = False

    return test_settings
