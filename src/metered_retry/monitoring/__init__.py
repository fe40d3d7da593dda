"""Monitoring and metrics instrumentation for the Metered Retry Orchestrator.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from metered_retry.monitoring.metrics import (
    operation_latency_seconds,
    orchestrator_attempts_total,
    orchestrator_retries_total,
    orchestrator_runs_total,
    quota_refunds_total,
    quota_reservations_total,
    rate_limit_cooldowns_total,
    rate_limit_rejections_total,
)

__all__ = [
    "orchestrator_runs_total",
    "orchestrator_attempts_total",
    "orchestrator_retries_total",
    "quota_reservations_total",
    "quota_refunds_total",
    "rate_limit_cooldowns_total",
    "rate_limit_rejections_total",
    "operation_latency_seconds",
]
