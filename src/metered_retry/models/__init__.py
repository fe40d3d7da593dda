"""
Data models for the Metered Retry Orchestrator.

Includes:
- Enums (ErrorCategory, ErrorKind, RunState)
- QuotaAccount (pydantic snapshot of a user's usage)
- OperationAttempt, RateLimitEntry (ephemeral run/ledger records)
- Outcome, OutcomeError (terminal result of a run)
"""

from metered_retry.models.enums import ErrorCategory, ErrorKind, RunState
from metered_retry.models.quota import QuotaAccount
from metered_retry.models.attempt import OperationAttempt, RateLimitEntry, operation_key
from metered_retry.models.outcome import DEFAULT_MESSAGES, Outcome, OutcomeError

__all__ = [
    "ErrorCategory",
    "ErrorKind",
    "RunState",
    "QuotaAccount",
    "OperationAttempt",
    "RateLimitEntry",
    "operation_key",
    "Outcome",
    "OutcomeError",
    "DEFAULT_MESSAGES",
]
