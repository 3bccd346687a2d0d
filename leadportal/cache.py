"""
In-process prediction cache.

Keeps three things in memory for the lifetime of the process:
    * scored prediction results, keyed by customer id (read-through cache in
      front of the predictions table, default TTL 5 minutes)
    * pending markers, keyed by customer id (10 minute TTL), so the same
      customer is never scored twice concurrently
    * the last auto-predict status line (no expiry)

Expiry is passive: an expired entry is invisible to ``get`` and is removed
by a sweep that runs at most once per check period, on the next access.
There is no size bound; keys are bounded by the number of active customers.

All operations are synchronous and run on the event loop thread, so no
locking is required.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Hashable, Optional

from leadportal import config

logger = logging.getLogger(__name__)


class TTLStore:
    """Key-value store with a per-entry TTL (seconds; 0 means never expire)."""

    def __init__(
        self,
        default_ttl: float = 0,
        check_period: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self._clock = clock
        self._data: dict[Hashable, tuple[Any, Optional[float]]] = {}
        self._last_sweep = clock()
        self.hits = 0
        self.misses = 0

    def _expired(self, expires_at: Optional[float], now: float) -> bool:
        return expires_at is not None and expires_at <= now

    def _maybe_sweep(self):
        if self.check_period and self._clock() - self._last_sweep >= self.check_period:
            self.purge_expired()

    def purge_expired(self) -> int:
        """Remove every expired entry, returning how many were dropped."""
        now = self._clock()
        self._last_sweep = now
        expired = [k for k, (_, exp) in self._data.items() if self._expired(exp, now)]
        for key in expired:
            del self._data[key]
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def get(self, key: Hashable) -> Any:
        self._maybe_sweep()
        entry = self._data.get(key)
        if entry is None or self._expired(entry[1], self._clock()):
            self.misses += 1
            return None
        self.hits += 1
        return entry[0]

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None):
        self._maybe_sweep()
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    def delete(self, key: Hashable) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self):
        self._data.clear()

    def keys(self) -> list:
        now = self._clock()
        return [k for k, (_, exp) in self._data.items() if not self._expired(exp, now)]

    def __len__(self) -> int:
        return len(self.keys())


def format_hit_rate(hits: int, misses: int) -> str:
    total = hits + misses
    if total == 0:
        return "0%"
    return f"{hits / total * 100:.2f}%"


class PredictionCache:
    """Typed facade over separate stores for predictions and pending markers."""

    def __init__(
        self,
        ttl: float = config.CACHE_TTL,
        pending_ttl: float = config.PENDING_TTL,
        check_period: float = config.CACHE_CHECK_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.pending_ttl = pending_ttl
        self._predictions = TTLStore(default_ttl=ttl, check_period=check_period, clock=clock)
        self._pending = TTLStore(default_ttl=pending_ttl, check_period=check_period, clock=clock)
        self._status: Optional[dict] = None

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def get_prediction(self, customer_id: int) -> Optional[dict]:
        return self._predictions.get(customer_id)

    def set_prediction(self, customer_id: int, result: dict, ttl: Optional[float] = None):
        self._predictions.set(customer_id, result, ttl)
        logger.debug("Cache SET prediction %s", customer_id)

    def delete_prediction(self, customer_id: int):
        if self._predictions.delete(customer_id):
            logger.debug("Cache DEL prediction %s", customer_id)

    def clear_predictions(self):
        self._predictions.clear()

    # ------------------------------------------------------------------
    # Pending markers
    # ------------------------------------------------------------------

    def mark_pending(self, customer_id: int):
        self._pending.set(customer_id, True, self.pending_ttl)

    def is_pending(self, customer_id: int) -> bool:
        return self._pending.get(customer_id) is True

    def clear_pending(self, customer_id: int):
        self._pending.delete(customer_id)

    # ------------------------------------------------------------------
    # Auto-predict status
    # ------------------------------------------------------------------

    def set_status(self, status: str):
        self._status = {"status": status, "last_run": datetime.now().isoformat()}

    def get_status(self) -> Optional[dict]:
        return self._status

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        hits = self._predictions.hits + self._pending.hits
        misses = self._predictions.misses + self._pending.misses
        prediction_keys = len(self._predictions)
        keys = prediction_keys + len(self._pending) + (1 if self._status else 0)
        return {
            "hits": hits,
            "misses": misses,
            "keys": keys,
            "prediction_keys": prediction_keys,
            "hit_rate": format_hit_rate(hits, misses),
        }
