"""Unit test fixtures (stores, ledgers, stubs).

Provides in-memory collaborators for testing without external services.
"""

from unittest.mock import AsyncMock

import fakeredis.aioredis
import pytest

from metered_retry.models.outcome import Outcome
from metered_retry.quota.client import QuotaLedgerClient
from metered_retry.quota.redis_store import RedisQuotaStore
from metered_retry.quota.store import InMemoryQuotaStore
from metered_retry.ratelimit.ledger import RateLimitLedger
from metered_retry.retry.orchestrator import CallOrchestrator

USER_ID = "user-123"


class RecordingSink:
    """Outcome sink that keeps every delivered outcome."""

    def __init__(self):
        self.outcomes: list[Outcome] = []

    async def deliver(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)


class CountingStore(InMemoryQuotaStore):
    """In-memory store that counts reserve/refund calls, including rejected ones."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reserve_calls = 0
        self.refund_calls = 0

    async def reserve(self, user_id, cost):
        self.reserve_calls += 1
        return await super().reserve(user_id, cost)

    async def refund(self, user_id, cost, request_id):
        self.refund_calls += 1
        return await super().refund(user_id, cost, request_id)


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def memory_store(fake_clock) -> CountingStore:
    """Counting in-memory quota store with the default limit of 100."""
    return CountingStore(default_limit=100, cycle_seconds=30 * 86400, clock=fake_clock)


@pytest.fixture
def quota_client(memory_store) -> QuotaLedgerClient:
    return QuotaLedgerClient(memory_store, metrics_enabled=False)


@pytest.fixture
def ledger(fake_clock) -> RateLimitLedger:
    return RateLimitLedger(clock=fake_clock, metrics_enabled=False)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def orchestrator(user_id, quota_client, ledger, test_settings, recording_sink, fake_clock) -> CallOrchestrator:
    """Orchestrator wired to the in-memory store, fake clock and a recording sink."""
    return CallOrchestrator(
        user_id=user_id,
        quota=quota_client,
        rate_limits=ledger,
        settings=test_settings,
        sinks=[recording_sink],
        clock=fake_clock,
    )


@pytest.fixture
def make_operation():
    """Factory fixture building an AsyncMock operation from a sequence of results.

    Exceptions in the sequence are raised, other values are returned.

    Usage:
        def test_something(make_operation):
            op = make_operation(UpstreamUnavailableError("503"), "ok")
    """
    def _create(*results) -> AsyncMock:
        return AsyncMock(side_effect=list(results))

    return _create


@pytest.fixture
def fake_redis():
    """Isolated fakeredis asyncio client (Lua scripting enabled through lupa)."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def redis_store(fake_redis, fake_clock) -> RedisQuotaStore:
    return RedisQuotaStore(
        fake_redis,
        key_prefix="test-quota",
        default_limit=100,
        cycle_seconds=30 * 86400,
        refund_token_ttl=3600,
        clock=fake_clock,
    )
