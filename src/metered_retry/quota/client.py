"""
Quota ledger client.

Thin wrapper over a QuotaStore that normalizes store failures into the
orchestrator's taxonomy:

    reserve  -> remaining units, or QuotaExceededError / StoreUnavailableError
    refund   -> remaining units, or RefundFailedError (best-effort, never retried)
    remaining / account -> advisory snapshot

Zero-cost operations never reach the store.
"""

import uuid

import structlog

from metered_retry.models.quota import QuotaAccount
from metered_retry.monitoring.metrics import quota_refunds_total, quota_reservations_total
from metered_retry.quota.exceptions import (
    QuotaExceededError,
    RefundFailedError,
    StoreUnavailableError,
)
from metered_retry.quota.store import QuotaStore

logger = structlog.get_logger(__name__)


def new_request_id() -> str:
    """Token correlating a reservation with its (at most one) refund."""
    return uuid.uuid4().hex


class QuotaLedgerClient:
    """
    Client-side accessor for the quota store.

    Attributes:
        store: Backing QuotaStore (in-memory or Redis)
        metrics_enabled: Record reservations and refunds in Prometheus
    """

    def __init__(self, store: QuotaStore, metrics_enabled: bool = True):
        self.store = store
        self.metrics_enabled = metrics_enabled

    def _count_reservation(self, result: str) -> None:
        if self.metrics_enabled:
            quota_reservations_total.labels(result=result).inc()

    def _count_refund(self, success: bool) -> None:
        if self.metrics_enabled:
            quota_refunds_total.labels(success=str(success).lower()).inc()

    async def reserve(self, user_id: str, cost: int) -> int:
        """
        Reserve `cost` units for user_id.

        Args:
            user_id: User to debit
            cost: Units to reserve (>= 0)

        Returns:
            Remaining units after the reservation

        Raises:
            QuotaExceededError: Reservation would exceed the cycle limit
            StoreUnavailableError: Any other store failure (state ambiguous)
        """
        if cost < 0:
            raise ValueError("cost must be >= 0")
        if cost == 0:
            return await self.remaining(user_id)

        try:
            account = await self.store.reserve(user_id, cost)
        except QuotaExceededError:
            self._count_reservation("quota_exceeded")
            logger.info("Reservation rejected: quota exceeded", user_id=user_id, cost=cost)
            raise
        except Exception as e:
            self._count_reservation("store_unavailable")
            logger.error(
                "Reservation failed: store unavailable",
                user_id=user_id,
                cost=cost,
                error_type=type(e).__name__,
            )
            if isinstance(e, StoreUnavailableError):
                raise
            raise StoreUnavailableError(
                "Quota store unavailable during reserve",
                {"user_id": user_id, "error_type": type(e).__name__},
            ) from e

        self._count_reservation("reserved")
        logger.debug("Reserved quota", user_id=user_id, cost=cost, remaining=account.remaining)
        return account.remaining

    async def refund(self, user_id: str, cost: int, request_id: str) -> int:
        """
        Give back `cost` units after a failed attempt.

        Args:
            user_id: User to credit
            cost: Units to refund
            request_id: Token of the reservation being refunded

        Returns:
            Remaining units after the refund

        Raises:
            RefundFailedError: The store could not apply the refund
        """
        if cost == 0:
            return await self.remaining(user_id)

        try:
            account = await self.store.refund(user_id, cost, request_id)
        except Exception as e:
            self._count_refund(False)
            logger.error(
                "Refund failed",
                user_id=user_id,
                cost=cost,
                request_id=request_id,
                error_type=type(e).__name__,
            )
            raise RefundFailedError(
                "Quota refund failed",
                {"user_id": user_id, "cost": cost, "request_id": request_id},
            ) from e

        self._count_refund(True)
        logger.debug("Refunded quota", user_id=user_id, cost=cost, remaining=account.remaining)
        return account.remaining

    async def account(self, user_id: str) -> QuotaAccount:
        """
        Advisory snapshot of the user's account.

        Raises:
            StoreUnavailableError: Store could not be read
        """
        try:
            return await self.store.get_account(user_id)
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise StoreUnavailableError(
                "Quota store unavailable during read",
                {"user_id": user_id, "error_type": type(e).__name__},
            ) from e

    async def remaining(self, user_id: str) -> int:
        """Units left for the user in the current cycle."""
        return (await self.account(user_id)).remaining
