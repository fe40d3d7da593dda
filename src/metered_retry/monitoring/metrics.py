"""Custom Prometheus metrics for the Metered Retry Orchestrator.

These metrics are exposed by whatever process hosts the orchestrator and
should be scraped by Prometheus. Alert rules should be configured for:
- orchestrator_runs_total{result="rate_limited"} (sustained upstream throttling)
- quota_refunds_total{success="false"} (users charged for failed attempts)
- orchestrator_retries_total (upstream instability)
"""

from prometheus_client import Counter, Histogram

# === Run Metrics ===

orchestrator_runs_total = Counter(
    "orchestrator_runs_total",
    "Total orchestrator runs by operation key and final result",
    ["key", "result"],
)
"""
Runs counter by operation key and terminal result.

Labels:
- key: Operation key (generate, tune:linkedin, ...)
- result: success, rate_limited, cancelled, or the ErrorKind value
  (auth_invalid, bad_input, quota_exceeded, store_unavailable, ...)
"""

orchestrator_attempts_total = Counter(
    "orchestrator_attempts_total",
    "Total upstream invocations by operation key",
    ["key"],
)

orchestrator_retries_total = Counter(
    "orchestrator_retries_total",
    "Total retries scheduled by operation key and error kind",
    ["key", "error_kind"],
)
"""
Retries counter.

Labels:
- key: Operation key
- error_kind: overloaded or rate_limited

Alert thresholds:
- WARN: retry rate > 10% of attempts
- CRITICAL: retry rate > 30% of attempts
"""

# === Quota Metrics ===

quota_reservations_total = Counter(
    "quota_reservations_total",
    "Quota reservations by result",
    ["result"],
)
"""
Labels:
- result: reserved, quota_exceeded, store_unavailable
"""

quota_refunds_total = Counter(
    "quota_refunds_total",
    "Quota refunds by success",
    ["success"],
)
"""
Labels:
- success: true, false

Alert thresholds:
- WARN: any success="false" (a user was charged for a failed attempt)
"""

# === Rate Limit Metrics ===

rate_limit_cooldowns_total = Counter(
    "rate_limit_cooldowns_total",
    "Cooldowns opened by operation key",
    ["key"],
)

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Runs rejected locally because the key was cooling down",
    ["key"],
)

# === Upstream Performance ===

operation_latency_seconds = Histogram(
    "operation_latency_seconds",
    "Upstream operation latency in seconds (per attempt)",
    ["key", "success"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
"""
Buckets sized for AI generation calls (0.5s to 120s).

Alert thresholds:
- WARN: p95 > 30s
"""
