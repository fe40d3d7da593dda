"""
Quota ledger: client, store protocol and store implementations.

- client.py: QuotaLedgerClient (reserve / refund / remaining)
- store.py: QuotaStore protocol, InMemoryQuotaStore
- redis_store.py: RedisQuotaStore (atomic Lua scripts)
- exceptions.py: QuotaExceededError, StoreUnavailableError, RefundFailedError
"""

from metered_retry.quota.client import QuotaLedgerClient, new_request_id
from metered_retry.quota.exceptions import (
    QuotaError,
    QuotaExceededError,
    RefundFailedError,
    StoreUnavailableError,
)
from metered_retry.quota.redis_store import RedisQuotaStore
from metered_retry.quota.store import InMemoryQuotaStore, QuotaStore

__all__ = [
    "QuotaLedgerClient",
    "new_request_id",
    "QuotaStore",
    "InMemoryQuotaStore",
    "RedisQuotaStore",
    "QuotaError",
    "QuotaExceededError",
    "StoreUnavailableError",
    "RefundFailedError",
]
