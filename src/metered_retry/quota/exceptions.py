"""
Quota ledger exceptions.

Raised by quota stores and the quota ledger client so the orchestrator can
tell an authoritative "no" (quota exceeded) from an ambiguous store failure.
"""


class QuotaError(Exception):
    """
    Base exception for all quota errors.

    Attributes:
        message: Description of the failure
        details: Structured context (user_id, cost, ...)
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class QuotaExceededError(QuotaError):
    """
    Raised when a reservation would push usage past the cycle limit.

    The store performs no mutation in this case. Never retried within
    the same cycle: retrying cannot change the answer.
    """
    pass


class StoreUnavailableError(QuotaError):
    """
    Raised when the quota store fails for any other reason.

    The reservation state is ambiguous after this error, so the
    orchestrator never retries it (risk of a double debit).
    """
    pass


class RefundFailedError(QuotaError):
    """
    Raised when a refund could not be applied.

    Reported as a warning on the Outcome; never retried by the client.
    """
    pass
