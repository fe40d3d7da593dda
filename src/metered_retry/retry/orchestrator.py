"""
Call orchestrator: metered execution with retry, refund and cooldown.

Runs one costed upstream operation through the reserve -> execute ->
(retry | refund | succeed) protocol:

    INIT -> RATE_CHECK -> RESERVING -> EXECUTING -> SUCCESS
                                                 -> BACKOFF_WAIT -> RESERVING ...
                                                 -> REFUNDING -> FAILED | RATE_OPEN

Billing Policy:
    Each attempt reserves `cost` afresh; a failed attempt is refunded
    before the next one reserves. A run that succeeds on attempt k is
    charged `cost` once; a run that fails is charged nothing (as long as
    the refunds succeed).

Usage:
    orchestrator = CallOrchestrator(user_id, quota_client, ledger, settings)
    outcome = await orchestrator.run(lambda: generate(prompt), cost=1, key="generate")
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, TypeVar, Union

import structlog

from metered_retry.clock import Clock, SystemClock, to_datetime
from metered_retry.config import Settings
from metered_retry.models.attempt import OperationAttempt
from metered_retry.models.enums import ErrorCategory, ErrorKind, RunState
from metered_retry.models.outcome import Outcome, OutcomeError
from metered_retry.monitoring.metrics import (
    operation_latency_seconds,
    orchestrator_attempts_total,
    orchestrator_retries_total,
    rate_limit_rejections_total,
)
from metered_retry.outcome.sinks import OutcomeBroadcaster, OutcomeSink
from metered_retry.quota.client import QuotaLedgerClient, new_request_id
from metered_retry.quota.exceptions import (
    QuotaExceededError,
    RefundFailedError,
    StoreUnavailableError,
)
from metered_retry.ratelimit.ledger import RateLimitLedger
from metered_retry.retry.backoff import BackoffPolicy
from metered_retry.retry.classifier import INTERNAL_ERROR, ErrorClass, classify
from metered_retry.retry.metadata import RunMetadata
from metered_retry.upstream.exceptions import UpstreamEmptyResultError, UpstreamTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]

CANCELLED_MESSAGE = "The operation was cancelled."


class _RunCancelled(Exception):
    """The caller's cancel_event was set while an attempt was in flight."""


class _RunTrace:
    """Mutable counters for one run, frozen into RunMetadata at the end."""

    def __init__(self, key: str, cost: int, started_at: float):
        self.key = key
        self.cost = cost
        self.started_at = started_at
        self.attempts = 0
        self.reservations = 0
        self.refunds = 0
        self.failed_refunds = 0
        self.states: list[RunState] = []
        self.error_history: list[ErrorKind] = []
        self.warnings: list[OutcomeError] = []

    def enter(self, state: RunState) -> None:
        self.states.append(state)
        logger.debug("Run state", state=state.value, key=self.key)

    def metadata(self, now: float) -> RunMetadata:
        return RunMetadata(
            key=self.key,
            cost=self.cost,
            total_attempts=self.attempts,
            reservations=self.reservations,
            refunds=self.refunds,
            failed_refunds=self.failed_refunds,
            states=list(self.states),
            error_history=list(self.error_history),
            total_latency_ms=max(0, int((now - self.started_at) * 1000)),
        )


class CallOrchestrator:
    """
    Metered retry orchestrator for one user session.

    Re-entrant: any number of run() calls may be in flight at once, for
    the same or different keys. The only shared in-process state is the
    rate-limit ledger, which carries its own lock.

    Attributes:
        user_id: User whose quota is debited
        quota: Quota ledger client
        rate_limits: Per-key cooldown ledger
        settings: Application settings
        backoff: Backoff policy (derived from settings by default)
        sinks: Broadcaster notified of every final Outcome
        clock: Time source for backoff sleeps and cooldowns
    """

    def __init__(
        self,
        user_id: str,
        quota: QuotaLedgerClient,
        rate_limits: RateLimitLedger,
        settings: Settings,
        backoff: Optional[BackoffPolicy] = None,
        sinks: Union[OutcomeBroadcaster, Iterable[OutcomeSink], None] = None,
        clock: Optional[Clock] = None,
    ):
        if not user_id:
            raise ValueError("user_id must not be empty")
        self.user_id = user_id
        self.quota = quota
        self.rate_limits = rate_limits
        self.settings = settings
        self.backoff = backoff or BackoffPolicy.from_settings(settings)
        if isinstance(sinks, OutcomeBroadcaster):
            self.sinks = sinks
        else:
            self.sinks = OutcomeBroadcaster(sinks or ())
        self.clock: Clock = clock or rate_limits.clock or SystemClock()
        self.metrics_enabled = settings.PROMETHEUS_ENABLED
        self.operation_timeout = settings.OPERATION_TIMEOUT_SECONDS

        logger.info(
            "CallOrchestrator initialized",
            extra={
                "max_retries": self.backoff.max_retries,
                "initial_backoff": self.backoff.initial_backoff,
                "rate_limit_cooldown": self.backoff.cooldown,
                "operation_timeout": self.operation_timeout,
                "sinks_count": len(self.sinks.sinks),
            },
        )

    async def run(
        self,
        operation: Operation[T],
        cost: int,
        key: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        validate: Optional[Callable[[T], bool]] = None,
    ) -> Outcome[T]:
        """
        Execute `operation` under quota, retry and cooldown policy.

        Args:
            operation: Zero-argument callable returning an awaitable result
            cost: Units to reserve per attempt (0 skips the quota store)
            key: Operation key, e.g. "generate" or "tune:linkedin"
            cancel_event: Optional event; setting it aborts the run
            validate: Optional check on the result; a falsy return makes the
                attempt fail as UpstreamEmptyResultError (retriable)

        Returns:
            The single final Outcome of the run (also delivered to sinks)

        Raises:
            asyncio.CancelledError: The task running this coroutine was
                cancelled. Any outstanding reservation is refunded first.
        """
        attempt = OperationAttempt(key=key, cost=cost)
        trace = _RunTrace(key, cost, self.clock.now())

        with structlog.contextvars.bound_contextvars(user_id=self.user_id, operation_key=key):
            trace.enter(RunState.INIT)
            trace.enter(RunState.RATE_CHECK)

            cooldown_until = self.rate_limits.cooldown_until(key)
            if cooldown_until is not None:
                if self.metrics_enabled:
                    rate_limit_rejections_total.labels(key=key).inc()
                logger.info(
                    f"Rejected locally: {key} is cooling down",
                    extra={"key": key, "cooldown_until": cooldown_until},
                )
                return await self._finish(
                    trace,
                    RunState.RATE_OPEN,
                    rate_limited=True,
                    retry_after=to_datetime(cooldown_until),
                )

            return await self._attempt_loop(operation, attempt, trace, cancel_event, validate)

    async def _attempt_loop(
        self,
        operation: Operation[T],
        attempt: OperationAttempt,
        trace: _RunTrace,
        cancel_event: Optional[asyncio.Event],
        validate: Optional[Callable[[T], bool]] = None,
    ) -> Outcome[T]:
        key = attempt.key
        max_retries = self.backoff.max_retries

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return await self._finish_cancelled(trace)

            # --- RESERVING ---
            trace.enter(RunState.RESERVING)
            if attempt.cost > 0:
                try:
                    remaining = await self._reserve(attempt, trace)
                except QuotaExceededError:
                    return await self._finish(
                        trace,
                        RunState.FAILED,
                        error=OutcomeError(ErrorKind.QUOTA_EXCEEDED, ErrorCategory.FATAL),
                    )
                except StoreUnavailableError:
                    return await self._finish(
                        trace,
                        RunState.FAILED,
                        error=OutcomeError(ErrorKind.STORE_UNAVAILABLE, ErrorCategory.FATAL),
                    )
                logger.debug(
                    "Reserved for attempt",
                    extra={"attempt": attempt.attempt_number, "cost": attempt.cost, "remaining": remaining},
                )

            # Cancelled while reserving: give the units back without invoking
            if cancel_event is not None and cancel_event.is_set():
                if attempt.reserved:
                    trace.enter(RunState.REFUNDING)
                    await self._refund(attempt, trace)
                return await self._finish_cancelled(trace)

            # --- EXECUTING ---
            trace.enter(RunState.EXECUTING)
            trace.attempts += 1
            if self.metrics_enabled:
                orchestrator_attempts_total.labels(key=key).inc()

            logger.info(
                f"Executing {key} (attempt {attempt.attempt_number}/{max_retries})",
                extra={"key": key, "attempt": attempt.attempt_number, "cost": attempt.cost},
            )

            try:
                data = await self._execute(operation, key, cancel_event)
                if validate is not None and not validate(data):
                    raise UpstreamEmptyResultError(f"{key} returned an empty or invalid result")
            except _RunCancelled:
                trace.error_history.append(ErrorKind.INTERNAL_ERROR)
                trace.enter(RunState.REFUNDING)
                await self._refund(attempt, trace)
                return await self._finish_cancelled(trace)
            except asyncio.CancelledError:
                logger.warning(
                    "Run cancelled during execution, refunding",
                    extra={"key": key, "attempt": attempt.attempt_number},
                )
                await self._refund(attempt, trace)
                raise
            except Exception as e:
                error_class = classify(e)
                trace.error_history.append(error_class.kind)
                outcome_error = OutcomeError(
                    kind=error_class.kind,
                    category=error_class.category,
                    status=error_class.status,
                    exception_type=type(e).__name__,
                )
            else:
                # --- SUCCESS ---
                attempt.reserved = False
                self.rate_limits.clear(key)
                logger.info(
                    "Operation succeeded",
                    extra={"key": key, "total_attempts": trace.attempts},
                )
                return await self._finish(trace, RunState.SUCCESS, data=data)

            logger.warning(
                f"Attempt {attempt.attempt_number} failed",
                extra={
                    "key": key,
                    "attempt": attempt.attempt_number,
                    "category": error_class.category.value,
                    "error_kind": error_class.kind.value,
                    "status": error_class.status,
                },
            )

            if not error_class.is_retriable:
                # Fatal or unknown: fail closed, no retry
                trace.enter(RunState.REFUNDING)
                await self._refund(attempt, trace)
                return await self._finish(trace, RunState.FAILED, error=outcome_error)

            if self.backoff.should_retry(error_class, attempt.attempt_number, max_retries):
                # Refund this attempt before the next one reserves again
                await self._refund(attempt, trace)

                delay = self.backoff.next_delay(attempt.attempt_number)
                if self.metrics_enabled:
                    orchestrator_retries_total.labels(key=key, error_kind=error_class.kind.value).inc()
                logger.info(
                    f"Retrying in {delay}s (attempt {attempt.attempt_number + 1}/{max_retries})",
                    extra={"key": key, "next_attempt": attempt.attempt_number + 1, "backoff_seconds": delay},
                )

                # --- BACKOFF_WAIT ---
                trace.enter(RunState.BACKOFF_WAIT)
                if await self._backoff_wait(delay, cancel_event):
                    return await self._finish_cancelled(trace)
                attempt.attempt_number += 1
                continue

            # Retriable but exhausted: refund, then cool the key down
            trace.enter(RunState.REFUNDING)
            await self._refund(attempt, trace)
            return await self._open_cooldown(trace, outcome_error, error_class)

    async def _execute(
        self,
        operation: Operation[T],
        key: str,
        cancel_event: Optional[asyncio.Event],
    ) -> T:
        """Invoke the operation once, honoring timeout and cancel_event."""
        started = self.clock.now()
        success = False
        try:
            if cancel_event is None and self.operation_timeout is None:
                result = await operation()
            else:
                result = await self._execute_guarded(operation, cancel_event)
            success = True
            return result
        finally:
            if self.metrics_enabled:
                operation_latency_seconds.labels(key=key, success=str(success).lower()).observe(
                    max(0.0, self.clock.now() - started)
                )

    async def _execute_guarded(
        self,
        operation: Operation[T],
        cancel_event: Optional[asyncio.Event],
    ) -> T:
        async def invoke() -> T:
            return await operation()

        task = asyncio.ensure_future(invoke())
        waiters: set[asyncio.Future] = {task}
        cancel_waiter: Optional[asyncio.Future] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.operation_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("Abandoned attempt raised while cancelling", error_type=type(e).__name__)

        if cancel_waiter is not None and cancel_waiter in done:
            raise _RunCancelled()
        raise UpstreamTimeoutError(
            f"Operation exceeded {self.operation_timeout}s",
            status="DEADLINE_EXCEEDED",
        )

    async def _backoff_wait(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for delay. Returns True if cancel_event fired first."""
        if cancel_event is None:
            await self.clock.sleep(delay)
            return False

        sleeper = asyncio.ensure_future(self.clock.sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                if not pending.done():
                    pending.cancel()

        if waiter in done:
            logger.info("Run cancelled during backoff")
            return True
        return False

    async def _reserve(self, attempt: OperationAttempt, trace: _RunTrace) -> int:
        """
        Reserve the attempt's cost. Returns the remaining units.

        The store call runs shielded: if the run is cancelled meanwhile, the
        reservation is allowed to land and is then refunded before the
        cancellation propagates.
        """
        reservation = asyncio.ensure_future(self.quota.reserve(self.user_id, attempt.cost))
        try:
            remaining = await asyncio.shield(reservation)
        except asyncio.CancelledError:
            await asyncio.wait({reservation})
            if not reservation.cancelled() and reservation.exception() is None:
                self._mark_reserved(attempt, trace)
                logger.warning(
                    "Run cancelled while reserving, refunding",
                    extra={"key": attempt.key, "attempt": attempt.attempt_number},
                )
                await self._refund(attempt, trace)
            raise
        self._mark_reserved(attempt, trace)
        return remaining

    @staticmethod
    def _mark_reserved(attempt: OperationAttempt, trace: _RunTrace) -> None:
        attempt.reserved = True
        attempt.request_id = new_request_id()
        trace.reservations += 1

    async def _refund(self, attempt: OperationAttempt, trace: _RunTrace) -> None:
        """
        Refund the current attempt's reservation, at most once, never retried.

        Runs shielded from cancellation; a cancelled caller waits for the
        refund to complete before the cancellation propagates.
        """
        if not attempt.reserved:
            return
        attempt.reserved = False
        refund = asyncio.ensure_future(self._apply_refund(attempt, trace))
        try:
            await asyncio.shield(refund)
        except asyncio.CancelledError:
            await asyncio.wait({refund})
            raise

    async def _apply_refund(self, attempt: OperationAttempt, trace: _RunTrace) -> None:
        try:
            await self.quota.refund(self.user_id, attempt.cost, attempt.request_id or new_request_id())
        except RefundFailedError:
            trace.failed_refunds += 1
            trace.warnings.append(OutcomeError(ErrorKind.REFUND_FAILED, ErrorCategory.UNKNOWN))
            logger.error(
                "Refund failed, user remains charged for a failed attempt",
                extra={"key": attempt.key, "attempt": attempt.attempt_number, "cost": attempt.cost},
            )
        else:
            trace.refunds += 1

    async def _open_cooldown(
        self,
        trace: _RunTrace,
        outcome_error: OutcomeError,
        error_class: ErrorClass,
    ) -> Outcome:
        until = self.backoff.cooldown_until(self.clock.now())
        self.rate_limits.open(trace.key, until)
        logger.error(
            f"Retries exhausted for {trace.key}, cooling down",
            extra={
                "key": trace.key,
                "total_attempts": trace.attempts,
                "error_kind": error_class.kind.value,
                "cooldown_seconds": self.backoff.cooldown,
            },
        )
        return await self._finish(
            trace,
            RunState.RATE_OPEN,
            error=outcome_error,
            rate_limited=True,
            retry_after=to_datetime(until),
        )

    async def _finish_cancelled(self, trace: _RunTrace) -> Outcome:
        return await self._finish(
            trace,
            RunState.CANCELLED,
            error=OutcomeError(ErrorKind.INTERNAL_ERROR, ErrorCategory.UNKNOWN, message=CANCELLED_MESSAGE),
            cancelled=True,
        )

    async def _finish(self, trace: _RunTrace, state: RunState, **fields) -> Outcome:
        """Enter the terminal state, build the Outcome and deliver it to every sink."""
        trace.enter(state)
        outcome: Outcome = Outcome(
            warnings=list(trace.warnings),
            metadata=trace.metadata(self.clock.now()),
            **fields,
        )
        await self.sinks.deliver(outcome)
        return outcome
