"""
Redis-backed quota store.

Storage Strategy:
- Account: Hash "{prefix}:{user_id}" with fields used, limit, cycle_start
- Refund tokens: String "{prefix}:refund:{request_id}" with TTL, for dedupe
- Reserve and refund run as Lua scripts, so check-and-increment is atomic
  across every process sharing the Redis instance

Cycle rollover happens inside the scripts: once now - cycle_start reaches
the cycle length, used resets to 0 before the ceiling check.
"""

from typing import Optional

import structlog
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from metered_retry.clock import Clock, SystemClock, to_datetime
from metered_retry.config import Settings
from metered_retry.models.quota import QuotaAccount
from metered_retry.quota.exceptions import QuotaExceededError, StoreUnavailableError

logger = structlog.get_logger(__name__)


# Returns: {allowed (1/0), used, limit, cycle_start}
RESERVE_LUA = """
local key = KEYS[1]
local cost = tonumber(ARGV[1])
local default_limit = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local cycle_seconds = tonumber(ARGV[4])

if redis.call('EXISTS', key) == 0 then
    redis.call('HSET', key, 'used', 0, 'limit', default_limit, 'cycle_start', now)
end

local used = tonumber(redis.call('HGET', key, 'used') or '0')
local limit = tonumber(redis.call('HGET', key, 'limit') or default_limit)
local cycle_start = tonumber(redis.call('HGET', key, 'cycle_start') or now)

if now - cycle_start >= cycle_seconds then
    used = 0
    cycle_start = now
    redis.call('HSET', key, 'used', 0, 'cycle_start', now)
end

if cost > 0 and used + cost > limit then
    return {0, used, limit, cycle_start}
end

used = redis.call('HINCRBY', key, 'used', cost)
return {1, used, limit, cycle_start}
"""

# Returns: {applied (1/0), used, limit, cycle_start}
REFUND_LUA = """
local key = KEYS[1]
local token_key = KEYS[2]
local cost = tonumber(ARGV[1])
local default_limit = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local token_ttl = tonumber(ARGV[4])

if redis.call('EXISTS', key) == 0 then
    redis.call('HSET', key, 'used', 0, 'limit', default_limit, 'cycle_start', now)
end

local used = tonumber(redis.call('HGET', key, 'used') or '0')
local limit = tonumber(redis.call('HGET', key, 'limit') or default_limit)
local cycle_start = tonumber(redis.call('HGET', key, 'cycle_start') or now)

if not redis.call('SET', token_key, '1', 'NX', 'EX', token_ttl) then
    return {0, used, limit, cycle_start}
end

local new_used = used - cost
if new_used < 0 then
    new_used = 0
end
redis.call('HSET', key, 'used', new_used)
return {1, new_used, limit, cycle_start}
"""

# Returns: {used, limit, cycle_start}
READ_LUA = """
local key = KEYS[1]
local default_limit = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local cycle_seconds = tonumber(ARGV[3])

if redis.call('EXISTS', key) == 0 then
    redis.call('HSET', key, 'used', 0, 'limit', default_limit, 'cycle_start', now)
end

local used = tonumber(redis.call('HGET', key, 'used') or '0')
local limit = tonumber(redis.call('HGET', key, 'limit') or default_limit)
local cycle_start = tonumber(redis.call('HGET', key, 'cycle_start') or now)

if now - cycle_start >= cycle_seconds then
    used = 0
    cycle_start = now
    redis.call('HSET', key, 'used', 0, 'cycle_start', now)
end

return {used, limit, cycle_start}
"""


class RedisQuotaStore:
    """
    Quota store shared across processes through Redis.

    Attributes:
        redis: Async Redis client (decode_responses=True)
        key_prefix: Prefix for account and refund-token keys
        default_limit: Limit given to newly created accounts
        cycle_seconds: Cycle length before usage resets
        refund_token_ttl: How long a refund token blocks replays (seconds)
    """

    def __init__(
        self,
        redis_client: AsyncRedis,
        key_prefix: str = "quota",
        default_limit: int = 100,
        cycle_seconds: int = 30 * 86400,
        refund_token_ttl: int = 86400,
        clock: Optional[Clock] = None,
    ):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.default_limit = default_limit
        self.cycle_seconds = cycle_seconds
        self.refund_token_ttl = refund_token_ttl
        self.clock: Clock = clock or SystemClock()

        self._reserve_script = self.redis.register_script(RESERVE_LUA)
        self._refund_script = self.redis.register_script(REFUND_LUA)
        self._read_script = self.redis.register_script(READ_LUA)

    @classmethod
    def from_settings(
        cls, redis_client: AsyncRedis, settings: Settings, clock: Optional[Clock] = None
    ) -> "RedisQuotaStore":
        return cls(
            redis_client,
            key_prefix=settings.QUOTA_KEY_PREFIX,
            default_limit=settings.DEFAULT_QUOTA_LIMIT,
            cycle_seconds=settings.quota_cycle_seconds,
            refund_token_ttl=settings.REFUND_TOKEN_TTL_SECONDS,
            clock=clock,
        )

    def account_key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    def refund_token_key(self, request_id: str) -> str:
        return f"{self.key_prefix}:refund:{request_id}"

    def _now(self) -> int:
        return int(self.clock.now())

    @staticmethod
    def _account(user_id: str, used, limit, cycle_start) -> QuotaAccount:
        return QuotaAccount(
            user_id=user_id,
            used=max(0, int(used)),
            limit=int(limit),
            cycle_start=to_datetime(float(cycle_start)),
        )

    async def reserve(self, user_id: str, cost: int) -> QuotaAccount:
        try:
            allowed, used, limit, cycle_start = await self._reserve_script(
                keys=[self.account_key(user_id)],
                args=[cost, self.default_limit, self._now(), self.cycle_seconds],
            )
        except RedisError as e:
            raise StoreUnavailableError(
                "Quota store unavailable during reserve",
                {"user_id": user_id, "error_type": type(e).__name__},
            ) from e

        if int(allowed) != 1:
            raise QuotaExceededError(
                "Quota limit exceeded",
                {"user_id": user_id, "cost": cost, "used": int(used), "limit": int(limit)},
            )
        return self._account(user_id, used, limit, cycle_start)

    async def refund(self, user_id: str, cost: int, request_id: str) -> QuotaAccount:
        try:
            applied, used, limit, cycle_start = await self._refund_script(
                keys=[self.account_key(user_id), self.refund_token_key(request_id)],
                args=[cost, self.default_limit, self._now(), self.refund_token_ttl],
            )
        except RedisError as e:
            raise StoreUnavailableError(
                "Quota store unavailable during refund",
                {"user_id": user_id, "request_id": request_id, "error_type": type(e).__name__},
            ) from e

        if int(applied) != 1:
            logger.info("Duplicate refund ignored", user_id=user_id, request_id=request_id)
        return self._account(user_id, used, limit, cycle_start)

    async def get_account(self, user_id: str) -> QuotaAccount:
        try:
            used, limit, cycle_start = await self._read_script(
                keys=[self.account_key(user_id)],
                args=[self.default_limit, self._now(), self.cycle_seconds],
            )
        except RedisError as e:
            raise StoreUnavailableError(
                "Quota store unavailable during read",
                {"user_id": user_id, "error_type": type(e).__name__},
            ) from e
        return self._account(user_id, used, limit, cycle_start)

    async def set_limit(self, user_id: str, limit: int) -> None:
        """Override a user's cycle limit (plan upgrades, admin tooling)."""
        await self.get_account(user_id)
        await self.redis.hset(self.account_key(user_id), "limit", limit)
        logger.info("Quota limit updated", user_id=user_id, limit=limit)
