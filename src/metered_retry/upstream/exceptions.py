"""
Typed exceptions for the upstream (AI generation) operation.

Callers wrapping their AI client raise these so the error classifier can
map failures without inspecting messages. Untyped errors are still
classified from status codes and message markers.
"""


class UpstreamError(Exception):
    """
    Base exception for all upstream operation errors.

    Attributes:
        message: Human-readable description (never shown to end users)
        status: Provider status, gRPC name or HTTP code, if known
        details: Extra structured context
    """
    def __init__(self, message: str, status: str | int | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}


class UpstreamAuthError(UpstreamError):
    """
    Raised when the upstream rejects the credential (missing, invalid, revoked).

    Never retried. Callers should prompt the user to refresh the API key.
    """
    pass


class UpstreamBadRequestError(UpstreamError):
    """
    Raised when the upstream rejects the request as malformed or invalid.

    Never retried: the same input will fail the same way.
    """
    pass


class UpstreamUnavailableError(UpstreamError):
    """
    Raised when the upstream is temporarily unavailable or overloaded.

    Includes 503 responses, "model is overloaded" signals and connection
    failures. Retried with exponential backoff.
    """
    pass


class UpstreamTimeoutError(UpstreamUnavailableError):
    """
    Raised when an attempt exceeds its timeout.

    Treated as transient unavailability.
    """
    pass


class UpstreamRateLimitError(UpstreamError):
    """
    Raised when the upstream rate-limits the request or its own quota is exhausted.

    Retried with backoff; exhaustion opens a cooldown for the operation key.
    """
    pass


class UpstreamEmptyResultError(UpstreamUnavailableError):
    """
    Raised when the upstream answered but the result is empty or unusable.

    Models occasionally return an empty completion under load; the same
    request usually succeeds on the next attempt, so this is retried like
    any other transient unavailability.
    """
    pass
