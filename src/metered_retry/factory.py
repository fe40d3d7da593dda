"""
Wiring helpers.

Builds a CallOrchestrator for a user session from Settings: picks the quota
store backend, attaches the default outcome sinks, and shares one
rate-limit ledger per session.
"""

import asyncio
from typing import Iterable, Optional

import structlog

from metered_retry.clock import Clock, SystemClock
from metered_retry.config import Settings, settings as default_settings
from metered_retry.outcome.sinks import (
    LoggingOutcomeSink,
    MetricsOutcomeSink,
    OutcomeBroadcaster,
    OutcomeSink,
)
from metered_retry.persistence.redis_client import RedisClient
from metered_retry.quota.client import QuotaLedgerClient
from metered_retry.quota.redis_store import RedisQuotaStore
from metered_retry.quota.store import InMemoryQuotaStore, QuotaStore
from metered_retry.ratelimit.ledger import RateLimitLedger
from metered_retry.retry.orchestrator import CallOrchestrator

logger = structlog.get_logger(__name__)


def create_quota_store(settings: Settings, clock: Optional[Clock] = None) -> QuotaStore:
    """
    Build the quota store selected by QUOTA_BACKEND.

    Raises:
        ValueError: Unknown backend name
    """
    backend = settings.QUOTA_BACKEND.lower()
    if backend == "redis":
        return RedisQuotaStore.from_settings(RedisClient.get_async_client(settings), settings, clock=clock)
    if backend == "memory":
        return InMemoryQuotaStore(
            default_limit=settings.DEFAULT_QUOTA_LIMIT,
            cycle_seconds=settings.quota_cycle_seconds,
            clock=clock,
        )
    raise ValueError(f"Unknown QUOTA_BACKEND: {settings.QUOTA_BACKEND!r}")


def create_rate_limit_ledger(settings: Settings, clock: Optional[Clock] = None) -> RateLimitLedger:
    """Ledger to share between every orchestrator of one session."""
    return RateLimitLedger(clock=clock, metrics_enabled=settings.PROMETHEUS_ENABLED)


def start_cooldown_sweeper(
    rate_limits: RateLimitLedger, settings: Optional[Settings] = None
) -> "asyncio.Task[None]":
    """
    Start the background sweep of expired cooldowns on the running loop.

    Expired entries are also evicted lazily on access, so the sweeper only
    bounds memory for keys that are never checked again. Cancel the
    returned task on shutdown.

    Returns:
        The sweeper task (interval RATE_LIMIT_SWEEP_INTERVAL_SECONDS)
    """
    if settings is None:
        settings = default_settings
    interval = settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS
    logger.info("Starting cooldown sweeper", interval=interval)
    return asyncio.create_task(rate_limits.run_sweeper(interval))


def default_sinks(settings: Settings) -> list[OutcomeSink]:
    sinks: list[OutcomeSink] = [LoggingOutcomeSink()]
    if settings.PROMETHEUS_ENABLED:
        sinks.append(MetricsOutcomeSink())
    return sinks


def create_orchestrator(
    user_id: str,
    settings: Optional[Settings] = None,
    store: Optional[QuotaStore] = None,
    rate_limits: Optional[RateLimitLedger] = None,
    sinks: Iterable[OutcomeSink] = (),
    clock: Optional[Clock] = None,
) -> CallOrchestrator:
    """
    Build a CallOrchestrator for one user session.

    Args:
        user_id: User whose quota is debited
        settings: Settings (defaults to the module-level instance)
        store: Quota store override (defaults to QUOTA_BACKEND)
        rate_limits: Ledger to share between orchestrators of the same session
        sinks: Extra listeners (UI, gamification) after the default ones
        clock: Time source override

    Returns:
        Configured CallOrchestrator
    """
    # Explicit None checks: an empty ledger is falsy (it defines __len__)
    if settings is None:
        settings = default_settings
    if clock is None:
        clock = SystemClock()
    if store is None:
        store = create_quota_store(settings, clock=clock)
    if rate_limits is None:
        rate_limits = create_rate_limit_ledger(settings, clock=clock)

    broadcaster = OutcomeBroadcaster(default_sinks(settings))
    for sink in sinks:
        broadcaster.subscribe(sink)

    logger.info(
        "Orchestrator created",
        user_id=user_id,
        quota_backend=type(store).__name__,
        sinks=[type(s).__name__ for s in broadcaster.sinks],
    )
    return CallOrchestrator(
        user_id=user_id,
        quota=QuotaLedgerClient(store, metrics_enabled=settings.PROMETHEUS_ENABLED),
        rate_limits=rate_limits,
        settings=settings,
        sinks=broadcaster,
        clock=clock,
    )
