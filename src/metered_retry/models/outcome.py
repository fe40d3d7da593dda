"""
Terminal result of an orchestrator run.

An Outcome is the single source of truth handed to the caller and to every
outcome sink. UI layers render it (data, error toast, or a countdown to
retry_after); they never mutate quota state themselves.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Generic, Optional, TypeVar

from metered_retry.models.enums import ErrorCategory, ErrorKind

if TYPE_CHECKING:
    from metered_retry.retry.metadata import RunMetadata

T = TypeVar("T")


# User-facing text per error kind. Upstream messages are never echoed
# because they may carry credentials or request payloads.
DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH_INVALID: "The AI service rejected the credentials. Please update your API key.",
    ErrorKind.BAD_INPUT: "The AI service rejected the request as invalid.",
    ErrorKind.OVERLOADED: "The AI service is temporarily unavailable. Please try again later.",
    ErrorKind.RATE_LIMITED: "The AI service rate limit was reached. Please wait before retrying.",
    ErrorKind.INTERNAL_ERROR: "The operation failed unexpectedly.",
    ErrorKind.QUOTA_EXCEEDED: "You have reached your monthly usage limit.",
    ErrorKind.STORE_UNAVAILABLE: "Usage data could not be updated. Please try again.",
    ErrorKind.REFUND_FAILED: "A failed attempt could not be credited back to your usage.",
}


@dataclass(frozen=True)
class OutcomeError:
    """
    Classified failure attached to an Outcome.

    Attributes:
        kind: Error taxonomy entry
        category: Retry disposition (fatal, retriable, unknown)
        message: User-facing message, safe to display
        status: Upstream status (gRPC name or HTTP code) when one was detected
        exception_type: Class name of the originating exception, if any
    """

    kind: ErrorKind
    category: ErrorCategory
    message: str = ""
    status: Optional[str] = None
    exception_type: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", DEFAULT_MESSAGES[self.kind])


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Final state of one orchestrator run.

    Exactly one of `data` / `error` is meaningful: a successful run carries
    data and no error. `rate_limited` distinguishes cooldown failures from
    other failures so callers can show a countdown to `retry_after`.
    `warnings` carries secondary problems (REFUND_FAILED) that never change
    the primary result.
    """

    data: Optional[T] = None
    error: Optional[OutcomeError] = None
    rate_limited: bool = False
    retry_after: Optional[datetime] = None
    cancelled: bool = False
    warnings: list[OutcomeError] = field(default_factory=list)
    metadata: Optional["RunMetadata"] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.rate_limited and not self.cancelled

    def seconds_until_retry(self, now: datetime) -> float:
        """Seconds left before the action may be re-enabled (0 if not rate limited)."""
        if not self.rate_limited or self.retry_after is None:
            return 0.0
        return max(0.0, (self.retry_after - now).total_seconds())

    def raise_for_error(self) -> T:
        """Return data on success, raise OrchestratorError otherwise."""
        from metered_retry.retry.exceptions import OrchestratorError

        if self.ok:
            return self.data  # type: ignore[return-value]
        raise OrchestratorError(self)
