"""
Ephemeral per-run and per-key records.

OperationAttempt lives for exactly one orchestrator run and is never
persisted. RateLimitEntry is the value type stored by the rate-limit ledger.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class OperationAttempt:
    """
    Mutable bookkeeping for one orchestrator run.

    Attributes:
        key: Operation key (rate-limit bucket and refund correlation)
        cost: Units reserved before each attempt
        attempt_number: 1-based attempt counter, reset per run
        reserved: True while the current attempt holds a reservation
        request_id: Token identifying the current reservation
    """

    key: str
    cost: int
    attempt_number: int = 1
    reserved: bool = False
    request_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.cost < 0:
            raise ValueError("cost must be >= 0")
        if not self.key:
            raise ValueError("key must not be empty")


@dataclass(frozen=True)
class RateLimitEntry:
    """Cooldown for one operation key, active while now < cooldown_until."""

    key: str
    cooldown_until: float

    def is_active(self, now: float) -> bool:
        return now < self.cooldown_until


def operation_key(action: str, target: Optional[str] = None) -> str:
    """
    Build an operation key such as "generate" or "tune:linkedin".

    Args:
        action: Action type (generate, tune, analyze, ...)
        target: Optional scope, typically a platform name

    Returns:
        Lower-cased key, "action" or "action:target"
    """
    action = action.strip().lower()
    if not action:
        raise ValueError("action must not be empty")
    if target:
        return f"{action}:{target.strip().lower()}"
    return action
