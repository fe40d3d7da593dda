"""
Outcome sinks.

Listeners notified of each run's final Outcome (UI state, toasts,
gamification rollback, logs, metrics). Each listener is independent: the
broadcaster delivers to all of them and a failing listener never blocks
the others or the caller.
"""

import inspect
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

import structlog

from metered_retry.models.outcome import Outcome
from metered_retry.monitoring.metrics import orchestrator_runs_total

logger = structlog.get_logger(__name__)


class OutcomeSink(Protocol):
    """Receives the final Outcome of a run, exactly once per run."""

    async def deliver(self, outcome: Outcome) -> None:
        ...


def outcome_result(outcome: Outcome) -> str:
    """Short label for an outcome: success, cancelled, rate_limited or the error kind."""
    if outcome.cancelled:
        return "cancelled"
    if outcome.rate_limited:
        return "rate_limited"
    if outcome.error is not None:
        return outcome.error.kind.value
    return "success"


class LoggingOutcomeSink:
    """Logs every outcome with its result label and run counters."""

    async def deliver(self, outcome: Outcome) -> None:
        metadata = outcome.metadata
        fields: dict[str, Any] = {
            "result": outcome_result(outcome),
            "rate_limited": outcome.rate_limited,
            "retry_after": outcome.retry_after.isoformat() if outcome.retry_after else None,
            "warnings": [w.kind.value for w in outcome.warnings],
        }
        if metadata is not None:
            fields.update(
                key=metadata.key,
                attempts=metadata.total_attempts,
                reservations=metadata.reservations,
                refunds=metadata.refunds,
                latency_ms=metadata.total_latency_ms,
            )

        if outcome.ok:
            logger.info("Run succeeded", **fields)
        else:
            logger.warning("Run failed", **fields)


class MetricsOutcomeSink:
    """Counts outcomes by operation key and result."""

    async def deliver(self, outcome: Outcome) -> None:
        key = outcome.metadata.key if outcome.metadata is not None else "unknown"
        orchestrator_runs_total.labels(key=key, result=outcome_result(outcome)).inc()


class CallbackOutcomeSink:
    """
    Adapts a plain callable (sync or async) into a sink.

    Usage:
        sink = CallbackOutcomeSink(lambda outcome: ui.render(outcome))
    """

    def __init__(self, callback: Callable[[Outcome], Union[None, Awaitable[None]]]):
        self.callback = callback

    async def deliver(self, outcome: Outcome) -> None:
        result = self.callback(outcome)
        if inspect.isawaitable(result):
            await result


class OutcomeBroadcaster:
    """
    Fans one Outcome out to every registered sink, in registration order.

    Listener failures are logged and swallowed.
    """

    def __init__(self, sinks: Iterable[OutcomeSink] = ()):
        self.sinks: list[OutcomeSink] = list(sinks)

    def subscribe(self, sink: OutcomeSink) -> None:
        self.sinks.append(sink)

    def unsubscribe(self, sink: OutcomeSink) -> None:
        self.sinks.remove(sink)

    async def deliver(self, outcome: Outcome) -> None:
        for sink in self.sinks:
            try:
                await sink.deliver(outcome)
            except Exception as e:
                logger.error(
                    "Outcome sink failed",
                    sink=type(sink).__name__,
                    error_type=type(e).__name__,
                    exc_info=True,
                )
