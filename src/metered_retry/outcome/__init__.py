"""Outcome sinks: independent listeners on each run's final Outcome."""

from metered_retry.outcome.sinks import (
    CallbackOutcomeSink,
    LoggingOutcomeSink,
    MetricsOutcomeSink,
    OutcomeBroadcaster,
    OutcomeSink,
    outcome_result,
)

__all__ = [
    "OutcomeSink",
    "OutcomeBroadcaster",
    "LoggingOutcomeSink",
    "MetricsOutcomeSink",
    "CallbackOutcomeSink",
    "outcome_result",
]
