"""
Metered Retry Orchestrator.

Invokes costed, potentially flaky AI generation calls under a per-user
monthly quota:
- Reserve quota before each attempt, refund attempts that fail
- Retry transient upstream failures with exponential backoff
- Cool an operation key down after sustained rate limiting
- Report a single terminal Outcome per run to the caller and to listeners

Architecture: asyncio orchestrator + Redis (Lua) quota store + in-process cooldown ledger
"""

__version__ = "0.1.0"

from metered_retry.factory import create_orchestrator
from metered_retry.models import ErrorKind, Outcome, OutcomeError, QuotaAccount, operation_key
from metered_retry.retry import CallOrchestrator

__all__ = [
    "create_orchestrator",
    "CallOrchestrator",
    "Outcome",
    "OutcomeError",
    "ErrorKind",
    "QuotaAccount",
    "operation_key",
]
