"""Upstream operation error types."""

from metered_retry.upstream.exceptions import (
    UpstreamAuthError,
    UpstreamBadRequestError,
    UpstreamEmptyResultError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

__all__ = [
    "UpstreamError",
    "UpstreamAuthError",
    "UpstreamBadRequestError",
    "UpstreamUnavailableError",
    "UpstreamTimeoutError",
    "UpstreamEmptyResultError",
    "UpstreamRateLimitError",
]
