"""
Backoff policy.

Pure functions of attempt number and error class: how long to wait before
the next attempt, whether another attempt is allowed, and how long to cool
an operation key down once retries are exhausted.
"""

from typing import Optional

from metered_retry.config import Settings
from metered_retry.retry.classifier import ErrorClass


class BackoffPolicy:
    """
    Exponential backoff with a terminal cooldown.

    next_delay(n) = initial_backoff * 2 ** (n - 1), optionally capped.
    With the defaults (1s, 3 attempts) the waits are 1s then 2s.

    Attributes:
        initial_backoff: Delay after the first failed attempt (seconds)
        max_backoff: Optional upper bound on a single delay (seconds)
        cooldown: Cooldown opened when retries are exhausted (seconds)
        max_retries: Attempts allowed per run, first attempt included
    """

    def __init__(
        self,
        initial_backoff: float = 1.0,
        cooldown: float = 60.0,
        max_retries: int = 3,
        max_backoff: Optional[float] = None,
    ):
        if initial_backoff < 0:
            raise ValueError("initial_backoff must be >= 0")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.initial_backoff = initial_backoff
        self.cooldown = cooldown
        self.max_retries = max_retries
        self.max_backoff = max_backoff

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackoffPolicy":
        return cls(
            initial_backoff=settings.INITIAL_BACKOFF_SECONDS,
            cooldown=settings.RATE_LIMIT_COOLDOWN_SECONDS,
            max_retries=settings.MAX_RETRIES,
            max_backoff=settings.MAX_BACKOFF_SECONDS,
        )

    def next_delay(self, attempt_number: int) -> float:
        """
        Delay to wait after attempt `attempt_number` failed.

        Args:
            attempt_number: 1-based number of the attempt that just failed

        Returns:
            Delay in seconds
        """
        if attempt_number < 1:
            raise ValueError("attempt_number must be >= 1")
        delay = self.initial_backoff * (2 ** (attempt_number - 1))
        if self.max_backoff is not None:
            delay = min(delay, self.max_backoff)
        return delay

    def should_retry(
        self,
        error_class: ErrorClass,
        attempt_number: int,
        max_retries: Optional[int] = None,
    ) -> bool:
        """
        True only for retriable classes with attempts left.

        On the final allowed attempt this is False even for retriable
        classes; the orchestrator then treats the run as exhausted.
        """
        limit = self.max_retries if max_retries is None else max_retries
        return error_class.is_retriable and attempt_number < limit

    def cooldown_until(self, now: float) -> float:
        """Epoch seconds at which an exhausted key may be attempted again."""
        return now + self.cooldown
