"""
Client-side rate-limit ledger (per operation key cooldowns).
"""

from metered_retry.ratelimit.ledger import RateLimitLedger

__all__ = ["RateLimitLedger"]
