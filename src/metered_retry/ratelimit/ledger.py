"""
Rate-limit ledger.

Per-operation-key cooldown tracker. After a key exhausts its retries on
a rate-limited or overloaded upstream, the orchestrator opens a cooldown;
until it expires every run for that key is refused locally, without
touching the quota store or the upstream.

Storage Strategy:
- One RateLimitEntry per key in a dict; absence means "not limited"
- Expired entries are evicted lazily on access, or in bulk by sweep()
- A threading.Lock guards the dict, so one ledger can be shared by
  concurrent coroutines and by worker threads alike

This is a single-session, best-effort governor. State is not persisted
and not shared across processes.
"""

import asyncio
import threading
from typing import Optional

import structlog

from metered_retry.clock import Clock, SystemClock
from metered_retry.models.attempt import RateLimitEntry
from metered_retry.monitoring.metrics import rate_limit_cooldowns_total

logger = structlog.get_logger(__name__)


class RateLimitLedger:
    """
    Mutex-guarded map of operation key -> cooldown.

    Attributes:
        clock: Time source used for expiry checks
        metrics_enabled: Record cooldowns in Prometheus
    """

    def __init__(self, clock: Optional[Clock] = None, metrics_enabled: bool = True):
        self.clock: Clock = clock or SystemClock()
        self.metrics_enabled = metrics_enabled
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def _live_entry(self, key: str, now: float) -> Optional[RateLimitEntry]:
        """Return the active entry for key, evicting it if expired. Lock must be held."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_active(now):
            del self._entries[key]
            logger.debug("Cooldown expired", key=key, cooldown_until=entry.cooldown_until)
            return None
        return entry

    def is_open(self, key: str) -> bool:
        """True while a cooldown is active for key. Evicts expired entries."""
        return self.entry(key) is not None

    def entry(self, key: str) -> Optional[RateLimitEntry]:
        """Active entry for key, or None."""
        now = self.clock.now()
        with self._lock:
            return self._live_entry(key, now)

    def cooldown_until(self, key: str) -> Optional[float]:
        """Epoch seconds at which key's cooldown ends, or None if not limited."""
        entry = self.entry(key)
        return entry.cooldown_until if entry else None

    def open(self, key: str, until: float) -> RateLimitEntry:
        """
        Open (or overwrite) a cooldown for key.

        Args:
            key: Operation key
            until: Epoch seconds at which the cooldown ends

        Returns:
            The stored entry
        """
        entry = RateLimitEntry(key=key, cooldown_until=until)
        with self._lock:
            self._entries[key] = entry

        if self.metrics_enabled:
            rate_limit_cooldowns_total.labels(key=key).inc()

        logger.warning(
            "Cooldown opened",
            key=key,
            cooldown_until=until,
            cooldown_seconds=round(until - self.clock.now(), 3),
        )
        return entry

    def clear(self, key: str) -> bool:
        """
        Remove any cooldown for key.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.info("Cooldown cleared", key=key)
        return removed is not None

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        now = self.clock.now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_active(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept expired cooldowns", count=len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float) -> None:
        """
        Sweep expired entries every `interval` seconds until cancelled.

        Optional: lazy eviction in is_open() is enough for correctness.
        """
        logger.info("Cooldown sweeper started", interval=interval)
        try:
            while True:
                await self.clock.sleep(interval)
                self.sweep()
        except asyncio.CancelledError:
            logger.info("Cooldown sweeper stopped")
            raise

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.is_open(key)
