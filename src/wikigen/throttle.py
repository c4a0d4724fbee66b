"""Concurrency controls for page generation.

``GenerationController`` holds all per-process request state: in-flight
generations keyed by slug, sliding-window rate limits keyed by caller and
cooldowns keyed by slug. Batch work goes through ``RateLimitedScheduler``.
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from wikigen.config import ConfigError, load_settings
from wikigen.constants.throttle import (
    COOLDOWN_SECONDS,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    SCHEDULER_MAX_WORKERS,
)
from wikigen.errors import CooldownActiveError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_in: float  # seconds until the oldest request leaves the window


class SlidingWindowRateLimiter:
    """At most ``max_requests`` per key in any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Clock = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}

    def _recent(self, key: str) -> deque[float]:
        now = self._clock()
        timestamps = self._requests.setdefault(key, deque())
        while timestamps and now - timestamps[0] >= self.window_seconds:
            timestamps.popleft()
        return timestamps

    def reset_in(self, key: str) -> float:
        timestamps = self._recent(key)
        if not timestamps:
            return 0.0
        return max(0.0, timestamps[0] + self.window_seconds - self._clock())

    def remaining(self, key: str) -> int:
        return max(0, self.max_requests - len(self._recent(key)))

    def check(self, key: str) -> RateLimitStatus:
        """Record a request for key if it fits in the window."""
        timestamps = self._recent(key)
        allowed = len(timestamps) < self.max_requests
        if allowed:
            timestamps.append(self._clock())
        return RateLimitStatus(
            allowed=allowed, remaining=self.remaining(key), reset_in=self.reset_in(key)
        )

    def acquire(self, key: str) -> None:
        """Record a request or raise ``RateLimitedError``."""
        status = self.check(key)
        if not status.allowed:
            logger.warning(f"Rate limit exceeded for {key}; retry in {status.reset_in:.1f}s")
            raise RateLimitedError(
                retry_after=status.reset_in,
                limit=self.max_requests,
                window_seconds=self.window_seconds,
            )

    def headers(self, key: str, wall_clock: Clock = time.time) -> dict[str, str]:
        reset_at = wall_clock() + self.reset_in(key)
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(self.remaining(key)),
            "X-RateLimit-Reset": str(math.ceil(reset_at)),
        }

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)


class CooldownTracker:
    """Per-slug quiet period after a successful generation."""

    def __init__(self, cooldown_seconds: float = COOLDOWN_SECONDS, clock: Clock = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._started: dict[str, float] = {}

    def start(self, slug: str) -> None:
        self._started[slug] = self._clock()

    def remaining(self, slug: str) -> float:
        started = self._started.get(slug)
        if started is None:
            return 0.0
        left = self.cooldown_seconds - (self._clock() - started)
        if left <= 0:
            del self._started[slug]
            return 0.0
        return left

    def check(self, slug: str) -> None:
        """Raise ``CooldownActiveError`` while slug is cooling down."""
        left = self.remaining(slug)
        if left > 0:
            raise CooldownActiveError(slug=slug, remaining=left)

    def clear(self, slug: Optional[str] = None) -> None:
        if slug is None:
            self._started.clear()
        else:
            self._started.pop(slug, None)


def retrieve_task_exception(task: asyncio.Future) -> None:
    """Mark a finished task's exception as retrieved.

    Keeps asyncio from logging "Task exception was never retrieved" when every
    caller waiting on a shared task has gone away before it failed.
    """
    if not task.cancelled():
        task.exception()


class InFlightRegistry:
    """Shares one running task between concurrent requests for the same key."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    def keys(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def _discard(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        before_start: Optional[Callable[[], None]] = None,
    ) -> T:
        """Await the task for key, starting it with factory if none is running.

        ``before_start`` runs under the lock only when a new task is about to
        be started; an exception from it aborts the request.
        """
        async with self._lock:
            task = self._tasks.get(key)
            if task is None:
                if before_start is not None:
                    before_start()
                task = asyncio.ensure_future(factory())
                self._tasks[key] = task
                task.add_done_callback(lambda t, key=key: self._discard(key, t))
                task.add_done_callback(retrieve_task_exception)
            else:
                logger.info(f"Joining in-flight generation for '{key}'")
        # Shielded so one caller going away does not cancel the shared task
        return await asyncio.shield(task)

    def clear(self, key: str) -> bool:
        return self._tasks.pop(key, None) is not None


class TokenBucket:
    """Classic token bucket: ``capacity`` burst, refilled continuously."""

    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if capacity <= 0 or refill_per_second <= 0:
            raise ValueError("capacity and refill rate must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._tokens = capacity
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.refill_per_second)
        self._updated = now

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await self._sleep((1 - self._tokens) / self.refill_per_second)


class RateLimitedScheduler:
    """Runs coroutines at no more than N starts per window with bounded concurrency.

    ``max_workers=1`` gives a strictly sequential execution queue.
    """

    def __init__(
        self,
        requests_per_window: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        max_workers: int = SCHEDULER_MAX_WORKERS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.max_workers = max_workers
        self._bucket = TokenBucket(
            capacity=requests_per_window,
            refill_per_second=requests_per_window / window_seconds,
            clock=clock,
            sleep=sleep,
        )
        self._semaphore = asyncio.Semaphore(max_workers)

    @classmethod
    def with_interval(
        cls,
        interval_ms: int,
        max_workers: int = SCHEDULER_MAX_WORKERS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> "RateLimitedScheduler":
        """One start per ``interval_ms``, with no burst."""
        return cls(
            requests_per_window=1,
            window_seconds=interval_ms / 1000,
            max_workers=max_workers,
            clock=clock,
            sleep=sleep,
        )

    @classmethod
    def for_batch(cls, delay_ms: int, item_count: int) -> "RateLimitedScheduler":
        """Scheduler for a background batch with workers from the [throttle] settings.

        A positive ``delay_ms`` spaces out starts; zero admits every item at once.
        """
        try:
            max_workers = load_settings().throttle.scheduler_max_workers
        except (ValueError, OSError, ConfigError):
            # Settings not available (e.g., invalid WIKI_* variables in tests)
            max_workers = SCHEDULER_MAX_WORKERS
        if delay_ms > 0:
            return cls.with_interval(delay_ms, max_workers=max_workers)
        return cls(
            requests_per_window=max(1, item_count), window_seconds=1.0, max_workers=max_workers
        )

    async def submit(self, factory: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            await self._bucket.acquire()
            return await factory()

    async def run_all(
        self, factories: list[Callable[[], Awaitable[T]]]
    ) -> list[T | BaseException]:
        """Run every factory; exceptions are returned in place of results."""
        return list(
            await asyncio.gather(*(self.submit(f) for f in factories), return_exceptions=True)
        )


class GenerationController:
    """Dedup, rate limiting and cooldown around page generation."""

    def __init__(
        self,
        rate_limit_requests: int = RATE_LIMIT_MAX_REQUESTS,
        rate_limit_window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        clock: Clock = time.monotonic,
    ):
        self.rate_limiter = SlidingWindowRateLimiter(
            rate_limit_requests, rate_limit_window_seconds, clock=clock
        )
        self.cooldowns = CooldownTracker(cooldown_seconds, clock=clock)
        self.in_flight = InFlightRegistry()

    @classmethod
    def from_settings(cls) -> "GenerationController":
        try:
            throttle = load_settings().throttle
            return cls(
                rate_limit_requests=throttle.rate_limit_requests,
                rate_limit_window_seconds=throttle.rate_limit_window_seconds,
                cooldown_seconds=throttle.cooldown_seconds,
            )
        except (ValueError, OSError, ConfigError):
            # Settings not available (e.g., invalid WIKI_* variables in tests)
            return cls()

    async def run(
        self,
        slug: str,
        caller_id: str,
        factory: Callable[[], Awaitable[T]],
        check_cooldown: bool = True,
    ) -> T:
        """Run factory for slug unless an identical generation is in flight.

        A caller that joins an in-flight generation is neither rate limited
        nor subject to cooldown. Starting a new generation first checks the
        slug's cooldown, then counts against the caller's rate limit.

        Raises:
            RateLimitedError: The caller exceeded its window.
            CooldownActiveError: The slug was generated too recently.
        """

        def admit() -> None:
            if check_cooldown:
                self.cooldowns.check(slug)
            self.rate_limiter.acquire(caller_id)

        async def generate() -> T:
            result = await factory()
            self.cooldowns.start(slug)
            return result

        return await self.in_flight.run(slug, generate, before_start=admit)

    def queue_status(self) -> list[str]:
        return self.in_flight.keys()

    def clear_from_queue(self, slug: str) -> bool:
        return self.in_flight.clear(slug)

    def rate_limit_headers(self, caller_id: str) -> dict[str, str]:
        return self.rate_limiter.headers(caller_id)
