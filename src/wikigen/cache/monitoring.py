"""In-process cache telemetry.

Counters reset when the process restarts. Events are also logged so they
show up alongside request logs.
"""

import logging
import time
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CacheEvent(str, Enum):
    HIT = "hit"
    MISS = "miss"
    REGENERATE = "regenerate"
    INVALIDATE = "invalidate"
    WARM = "warm"
    ERROR = "error"


class CacheMonitor:
    """Counts cache events and reports the hit rate."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._counts: Counter[CacheEvent] = Counter()
        self._started_at = datetime.now(timezone.utc)
        self._started = time.monotonic()

    def record(self, event: CacheEvent, slug: str, **details: Any) -> None:
        self._counts[event] += 1
        if not self.enabled:
            return
        suffix = f" {details}" if details else ""
        if event == CacheEvent.ERROR:
            logger.warning(f"Cache {event.value}: {slug}{suffix}")
        else:
            logger.info(f"Cache {event.value}: {slug}{suffix}")

    def hit(self, slug: str, **details: Any) -> None:
        self.record(CacheEvent.HIT, slug, **details)

    def miss(self, slug: str, **details: Any) -> None:
        self.record(CacheEvent.MISS, slug, **details)

    def regenerated(self, slug: str, **details: Any) -> None:
        self.record(CacheEvent.REGENERATE, slug, **details)

    def invalidated(self, slug: str, **details: Any) -> None:
        self.record(CacheEvent.INVALIDATE, slug, **details)

    def warmed(self, slug: str, **details: Any) -> None:
        self.record(CacheEvent.WARM, slug, **details)

    def error(self, slug: str, error: Exception | str, **details: Any) -> None:
        self.record(CacheEvent.ERROR, slug, error=str(error), **details)

    def count(self, event: CacheEvent) -> int:
        return self._counts[event]

    @property
    def hit_rate(self) -> float:
        total = self._counts[CacheEvent.HIT] + self._counts[CacheEvent.MISS]
        return self._counts[CacheEvent.HIT] / total if total else 0.0

    def statistics(self) -> dict[str, Any]:
        hits = self._counts[CacheEvent.HIT]
        misses = self._counts[CacheEvent.MISS]
        uptime_seconds = time.monotonic() - self._started
        return {
            "hits": hits,
            "misses": misses,
            "total_requests": hits + misses,
            "hit_rate": round(self.hit_rate, 4),
            "regenerations": self._counts[CacheEvent.REGENERATE],
            "invalidations": self._counts[CacheEvent.INVALIDATE],
            "warmings": self._counts[CacheEvent.WARM],
            "errors": self._counts[CacheEvent.ERROR],
            "uptime_seconds": round(uptime_seconds, 1),
            "started_at": self._started_at.isoformat(),
        }

    def reset(self) -> None:
        self._counts.clear()
        self._started_at = datetime.now(timezone.utc)
        self._started = time.monotonic()
