"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import asyncio

import pytest

from metered_retry.config import Settings


class FakeClock:
    """Deterministic clock: sleep() advances time instantly and records the delay."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds
        # Yield so cancel events and other tasks get a chance to run
        await asyncio.sleep(0)


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.MAX_RETRIES = 5
    """
    return Settings(
        # === Application ===
        APP_NAME="Metered Retry Orchestrator (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === Retry ===
        MAX_RETRIES=3,
        INITIAL_BACKOFF_SECONDS=1.0,
        MAX_BACKOFF_SECONDS=None,
        OPERATION_TIMEOUT_SECONDS=None,
        RATE_LIMIT_COOLDOWN_SECONDS=60.0,

        # === Quota ===
        QUOTA_BACKEND="memory",
        DEFAULT_QUOTA_LIMIT=100,
        QUOTA_CYCLE_DAYS=30,

        # === Redis ===
        REDIS_URL="redis://localhost:6379/0",
        REDIS_MAX_CONNECTIONS=10,

        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fake clock starting at a fixed epoch; sleeps return immediately."""
    return FakeClock()
