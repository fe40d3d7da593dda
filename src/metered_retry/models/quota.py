"""
Quota account snapshot.

A QuotaAccount is the client's advisory view of a user's usage for the
current cycle. The quota store is the source of truth and enforces the
ceiling atomically; this model is what the store hands back after each
reservation, refund or read.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QuotaAccount(BaseModel):
    """
    Per-user usage counter for one quota cycle.

    Created lazily by the store on first access, mutated only via
    reserve/refund, reset by the store when the cycle rolls over.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, description="Opaque user identifier")
    used: int = Field(..., ge=0, description="Units debited in the current cycle")
    limit: int = Field(default=100, ge=0, description="Ceiling for the cycle")
    cycle_start: datetime = Field(..., description="When `used` last reset to 0 (UTC)")

    @property
    def remaining(self) -> int:
        """Units still available in this cycle, never negative."""
        return max(0, self.limit - self.used)

    @property
    def exceeded(self) -> bool:
        return self.remaining <= 0
