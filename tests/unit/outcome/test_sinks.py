"""
Unit tests for outcome sinks and the broadcaster.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from metered_retry.models.enums import ErrorCategory, ErrorKind, RunState
from metered_retry.models.outcome import Outcome, OutcomeError
from metered_retry.outcome.sinks import (
    CallbackOutcomeSink,
    LoggingOutcomeSink,
    MetricsOutcomeSink,
    OutcomeBroadcaster,
    outcome_result,
)
from metered_retry.retry.metadata import RunMetadata


@pytest.fixture
def failed_outcome() -> Outcome:
    metadata = RunMetadata(
        key="sink-test",
        cost=1,
        total_attempts=1,
        reservations=1,
        refunds=1,
        failed_refunds=0,
        states=[RunState.INIT, RunState.FAILED],
    )
    return Outcome(error=OutcomeError(ErrorKind.AUTH_INVALID, ErrorCategory.FATAL), metadata=metadata)


@pytest.mark.parametrize(
    "outcome,expected",
    [
        (Outcome(data="x"), "success"),
        (Outcome(cancelled=True, error=OutcomeError(ErrorKind.INTERNAL_ERROR, ErrorCategory.UNKNOWN)), "cancelled"),
        (Outcome(rate_limited=True, error=OutcomeError(ErrorKind.OVERLOADED, ErrorCategory.RETRIABLE)), "rate_limited"),
        (Outcome(error=OutcomeError(ErrorKind.QUOTA_EXCEEDED, ErrorCategory.FATAL)), "quota_exceeded"),
    ],
)
def test_outcome_result(outcome, expected):
    assert outcome_result(outcome) == expected


@pytest.mark.asyncio
async def test_broadcaster_delivers_in_order(failed_outcome):
    calls = []
    first = CallbackOutcomeSink(lambda o: calls.append("first"))
    second = CallbackOutcomeSink(lambda o: calls.append("second"))

    await OutcomeBroadcaster([first, second]).deliver(failed_outcome)

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_broadcaster_isolates_failing_sink(failed_outcome):
    broken = MagicMock()
    broken.deliver = AsyncMock(side_effect=RuntimeError("listener crashed"))
    healthy = MagicMock()
    healthy.deliver = AsyncMock()

    await OutcomeBroadcaster([broken, healthy]).deliver(failed_outcome)

    healthy.deliver.assert_awaited_once_with(failed_outcome)


@pytest.mark.asyncio
async def test_subscribe_and_unsubscribe(failed_outcome):
    sink = MagicMock()
    sink.deliver = AsyncMock()
    broadcaster = OutcomeBroadcaster()

    broadcaster.subscribe(sink)
    await broadcaster.deliver(failed_outcome)
    broadcaster.unsubscribe(sink)
    await broadcaster.deliver(failed_outcome)

    assert sink.deliver.await_count == 1


@pytest.mark.asyncio
async def test_callback_sink_accepts_async_callback(failed_outcome):
    received = []

    async def on_outcome(outcome):
        received.append(outcome)

    await CallbackOutcomeSink(on_outcome).deliver(failed_outcome)

    assert received == [failed_outcome]


@pytest.mark.asyncio
async def test_logging_sink_handles_missing_metadata():
    await LoggingOutcomeSink().deliver(Outcome(data="x"))
    await LoggingOutcomeSink().deliver(Outcome(rate_limited=True))


@pytest.mark.asyncio
async def test_metrics_sink_counts_by_key_and_result(failed_outcome):
    from metered_retry.monitoring.metrics import orchestrator_runs_total

    counter = orchestrator_runs_total.labels(key="sink-test", result="auth_invalid")
    before = counter._value.get()

    await MetricsOutcomeSink().deliver(failed_outcome)

    assert counter._value.get() == before + 1
