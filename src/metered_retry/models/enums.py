"""
Enumerations for orchestrator data models.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """
    Retry disposition of a classified error.

    FATAL and UNKNOWN are never retried; RETRIABLE is retried up to MAX_RETRIES.
    """

    FATAL = "fatal"
    RETRIABLE = "retriable"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    """
    Error taxonomy surfaced on Outcome.error and Outcome.warnings.

    The first five are produced by the error classifier from upstream
    failures. QUOTA_EXCEEDED and STORE_UNAVAILABLE come from the quota
    store. REFUND_FAILED only ever appears as a warning.
    """

    AUTH_INVALID = "auth_invalid"
    BAD_INPUT = "bad_input"
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORE_UNAVAILABLE = "store_unavailable"
    REFUND_FAILED = "refund_failed"


class RunState(str, Enum):
    """States visited by a single orchestrator run."""

    INIT = "init"
    RATE_CHECK = "rate_check"
    RESERVING = "reserving"
    EXECUTING = "executing"
    BACKOFF_WAIT = "backoff_wait"
    REFUNDING = "refunding"
    SUCCESS = "success"
    RATE_OPEN = "rate_open"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCESS, RunState.RATE_OPEN, RunState.FAILED, RunState.CANCELLED)
