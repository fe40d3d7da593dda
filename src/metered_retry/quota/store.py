"""
Quota store protocol and in-memory implementation.

The store is the source of truth for usage. It must apply reserve
atomically (check ceiling + increment, no mutation on rejection) and
should dedupe refunds replayed with the same request token.

Stores:
- InMemoryQuotaStore: single process, asyncio.Lock guarded (tests, local runs)
- RedisQuotaStore (redis_store.py): Lua scripts, shared across processes
"""

import asyncio
from collections import OrderedDict
from typing import Optional, Protocol

import structlog

from metered_retry.clock import Clock, SystemClock, to_datetime
from metered_retry.models.quota import QuotaAccount
from metered_retry.quota.exceptions import QuotaExceededError

logger = structlog.get_logger(__name__)


class QuotaStore(Protocol):
    """
    External transactional quota store.

    reserve raises QuotaExceededError when used + cost > limit; any other
    exception is treated by callers as the store being unavailable.
    """

    async def reserve(self, user_id: str, cost: int) -> QuotaAccount:
        """Atomically add cost to used if it stays within limit."""
        ...

    async def refund(self, user_id: str, cost: int, request_id: str) -> QuotaAccount:
        """Subtract cost from used, floored at 0. Replays of request_id are no-ops."""
        ...

    async def get_account(self, user_id: str) -> QuotaAccount:
        """Current account, created lazily with the default limit."""
        ...


class InMemoryQuotaStore:
    """
    Process-local quota store.

    Applies the same rules as the Redis store: lazy account creation with
    the default limit, cycle rollover after `cycle_seconds`, ceiling check
    on positive increments, floor at zero on refunds.

    Attributes:
        default_limit: Limit given to newly created accounts
        cycle_seconds: Cycle length; usage resets once it has elapsed
        clock: Time source for cycle rollover
    """

    MAX_REFUND_TOKENS = 10_000

    def __init__(
        self,
        default_limit: int = 100,
        cycle_seconds: int = 30 * 86400,
        clock: Optional[Clock] = None,
    ):
        self.default_limit = default_limit
        self.cycle_seconds = cycle_seconds
        self.clock: Clock = clock or SystemClock()
        # user_id -> [used, limit, cycle_start]
        self._accounts: dict[str, list] = {}
        self._refund_tokens: OrderedDict[str, None] = OrderedDict()
        self._lock = asyncio.Lock()

    def set_account(self, user_id: str, used: int, limit: Optional[int] = None) -> None:
        """Seed an account (tests, migrations)."""
        self._accounts[user_id] = [
            used,
            self.default_limit if limit is None else limit,
            self.clock.now(),
        ]

    def _load(self, user_id: str) -> list:
        """Fetch or create the account, applying cycle rollover. Lock must be held."""
        now = self.clock.now()
        record = self._accounts.get(user_id)
        if record is None:
            record = [0, self.default_limit, now]
            self._accounts[user_id] = record
            logger.debug("Quota account created", user_id=user_id, limit=self.default_limit)
        elif now - record[2] >= self.cycle_seconds:
            record[0] = 0
            record[2] = now
            logger.info("Quota cycle reset", user_id=user_id)
        return record

    @staticmethod
    def _snapshot(user_id: str, record: list) -> QuotaAccount:
        return QuotaAccount(
            user_id=user_id,
            used=record[0],
            limit=record[1],
            cycle_start=to_datetime(record[2]),
        )

    async def reserve(self, user_id: str, cost: int) -> QuotaAccount:
        async with self._lock:
            record = self._load(user_id)
            if record[0] + cost > record[1]:
                raise QuotaExceededError(
                    "Quota limit exceeded",
                    {"user_id": user_id, "cost": cost, "used": record[0], "limit": record[1]},
                )
            record[0] += cost
            return self._snapshot(user_id, record)

    async def refund(self, user_id: str, cost: int, request_id: str) -> QuotaAccount:
        async with self._lock:
            record = self._load(user_id)
            if request_id in self._refund_tokens:
                logger.info("Duplicate refund ignored", user_id=user_id, request_id=request_id)
                return self._snapshot(user_id, record)
            self._refund_tokens[request_id] = None
            if len(self._refund_tokens) > self.MAX_REFUND_TOKENS:
                self._refund_tokens.popitem(last=False)
            record[0] = max(0, record[0] - cost)
            return self._snapshot(user_id, record)

    async def get_account(self, user_id: str) -> QuotaAccount:
        async with self._lock:
            return self._snapshot(user_id, self._load(user_id))
