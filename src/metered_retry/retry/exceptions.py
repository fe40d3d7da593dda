"""
Orchestrator exceptions.

The orchestrator reports failures through Outcome rather than raising.
OrchestratorError exists for callers who prefer exceptions and call
Outcome.raise_for_error().
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from metered_retry.models.outcome import Outcome


class OrchestratorError(Exception):
    """
    Raised by Outcome.raise_for_error() for any non-successful outcome.

    Attributes:
        outcome: The failed Outcome (error, rate_limited, retry_after, metadata)
    """

    def __init__(self, outcome: "Outcome") -> None:
        self.outcome = outcome

        if outcome.cancelled:
            reason = "cancelled"
        elif outcome.error is not None:
            reason = outcome.error.kind.value
        else:
            reason = "rate_limited"

        detail = f"Operation failed: {reason}"
        if outcome.rate_limited and outcome.retry_after is not None:
            detail += f" (retry after {outcome.retry_after.isoformat()})"
        super().__init__(detail)

    @property
    def rate_limited(self) -> bool:
        return self.outcome.rate_limited
