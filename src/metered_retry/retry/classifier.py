"""
Error classifier for upstream operation failures.

Maps an arbitrary exception raised by the upstream operation into one of
five classes that drive the orchestrator's retry decision:

    FATAL / AUTH_INVALID      never retried, caller should refresh credentials
    FATAL / BAD_INPUT         never retried
    RETRIABLE / OVERLOADED    retried with backoff
    RETRIABLE / RATE_LIMITED  retried with backoff, cooldown on exhaustion
    UNKNOWN / INTERNAL_ERROR  never retried (fail closed)

Recognition order: typed upstream exceptions, httpx errors, timeouts,
status attributes (gRPC names or HTTP codes), then message markers.
classify() is pure and total: it never raises, whatever it is given.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from metered_retry.models.enums import ErrorCategory, ErrorKind
from metered_retry.upstream.exceptions import (
    UpstreamAuthError,
    UpstreamBadRequestError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ErrorClass:
    """Classification result: retry disposition plus taxonomy kind."""

    category: ErrorCategory
    kind: ErrorKind
    status: Optional[str] = None

    @property
    def is_retriable(self) -> bool:
        return self.category == ErrorCategory.RETRIABLE

    @property
    def is_fatal(self) -> bool:
        return self.category == ErrorCategory.FATAL


AUTH_INVALID = ErrorClass(ErrorCategory.FATAL, ErrorKind.AUTH_INVALID)
BAD_INPUT = ErrorClass(ErrorCategory.FATAL, ErrorKind.BAD_INPUT)
OVERLOADED = ErrorClass(ErrorCategory.RETRIABLE, ErrorKind.OVERLOADED)
RATE_LIMITED = ErrorClass(ErrorCategory.RETRIABLE, ErrorKind.RATE_LIMITED)
INTERNAL_ERROR = ErrorClass(ErrorCategory.UNKNOWN, ErrorKind.INTERNAL_ERROR)

# gRPC-style status names as reported by AI SDKs
STATUS_NAMES: dict[str, ErrorClass] = {
    "UNAUTHENTICATED": AUTH_INVALID,
    "PERMISSION_DENIED": AUTH_INVALID,
    "INVALID_ARGUMENT": BAD_INPUT,
    "FAILED_PRECONDITION": BAD_INPUT,
    "OUT_OF_RANGE": BAD_INPUT,
    "UNAVAILABLE": OVERLOADED,
    "ABORTED": OVERLOADED,
    "DEADLINE_EXCEEDED": OVERLOADED,
    "RESOURCE_EXHAUSTED": RATE_LIMITED,
}

HTTP_CODES: dict[int, ErrorClass] = {
    400: BAD_INPUT,
    401: AUTH_INVALID,
    403: AUTH_INVALID,
    413: BAD_INPUT,
    422: BAD_INPUT,
    429: RATE_LIMITED,
    500: OVERLOADED,
    502: OVERLOADED,
    503: OVERLOADED,
    504: OVERLOADED,
}

# Checked in order against the lower-cased message; first match wins.
# Status codes only match as whole numbers ("id 15030" is not a 503).
MESSAGE_MARKERS: list[tuple[re.Pattern[str], ErrorClass]] = [
    (re.compile(r"api key not valid"), AUTH_INVALID),
    (re.compile(r"invalid api key"), AUTH_INVALID),
    (re.compile(r"rate limit exceeded"), RATE_LIMITED),
    (re.compile(r"quota exceeded"), RATE_LIMITED),
    (re.compile(r"too many requests"), RATE_LIMITED),
    (re.compile(r"\b429\b"), RATE_LIMITED),
    (re.compile(r"service unavailable"), OVERLOADED),
    (re.compile(r"overloaded"), OVERLOADED),
    (re.compile(r"internal error"), OVERLOADED),
    (re.compile(r"returned an empty"), OVERLOADED),
    (re.compile(r"\b503\b"), OVERLOADED),
]


def _with_status(error_class: ErrorClass, status: object) -> ErrorClass:
    if status is None:
        return error_class
    return ErrorClass(error_class.category, error_class.kind, str(status))


def _from_status(status: object) -> Optional[ErrorClass]:
    """Match a status attribute value against gRPC names and HTTP codes."""
    if status is None or isinstance(status, bool):
        return None
    if isinstance(status, int):
        return HTTP_CODES.get(status)
    name = getattr(status, "name", None)
    text = str(name if isinstance(name, str) else status).strip().upper()
    if text.isdigit():
        return HTTP_CODES.get(int(text))
    return STATUS_NAMES.get(text)


def _from_typed(err: BaseException) -> Optional[ErrorClass]:
    if isinstance(err, UpstreamAuthError):
        return AUTH_INVALID
    if isinstance(err, UpstreamBadRequestError):
        return BAD_INPUT
    if isinstance(err, UpstreamRateLimitError):
        return RATE_LIMITED
    if isinstance(err, UpstreamUnavailableError):
        return OVERLOADED
    if isinstance(err, httpx.HTTPStatusError):
        return HTTP_CODES.get(err.response.status_code, INTERNAL_ERROR)
    if isinstance(err, (httpx.TimeoutException, httpx.TransportError)):
        return OVERLOADED
    if isinstance(err, (asyncio.TimeoutError, TimeoutError)):
        return OVERLOADED
    return None


def _status_of(err: BaseException) -> object:
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code
    for attr in ("status", "status_code", "code"):
        value = getattr(err, attr, None)
        if value is not None and not callable(value):
            return value
    return None


def _classify(err: BaseException) -> ErrorClass:
    status = _status_of(err)

    typed = _from_typed(err)
    if typed is not None:
        return _with_status(typed, status)

    by_status = _from_status(status)
    if by_status is not None:
        return _with_status(by_status, status)

    message = str(err).lower()
    for marker, error_class in MESSAGE_MARKERS:
        if marker.search(message):
            return _with_status(error_class, status)

    return _with_status(INTERNAL_ERROR, status)


def classify(err: BaseException) -> ErrorClass:
    """
    Classify an upstream failure.

    Args:
        err: Exception raised by the upstream operation

    Returns:
        ErrorClass with category, kind and detected status
    """
    try:
        result = _classify(err)
    except Exception:
        # Exotic exceptions can fail in __str__ or attribute access
        result = INTERNAL_ERROR

    logger.debug(
        "Classified upstream error",
        error_type=type(err).__name__,
        category=result.category.value,
        kind=result.kind.value,
        status=result.status,
    )
    return result
