"""Rate limiting, cooldown, dedup and scheduling tests."""

import asyncio
import gc
from unittest.mock import MagicMock

import pytest

from wikigen.errors import CooldownActiveError, ErrorCode, RateLimitedError
from wikigen.throttle import (
    CooldownTracker,
    GenerationController,
    InFlightRegistry,
    RateLimitedScheduler,
    SlidingWindowRateLimiter,
    TokenBucket,
    retrieve_task_exception,
)


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def fake_sleep(clock, sleeps):
    async def sleep(delay):
        sleeps.append(delay)
        clock.now += delay

    return sleep


class TestSlidingWindow:
    def test_allows_up_to_limit(self):
        limiter = SlidingWindowRateLimiter(3, 60, clock=FakeClock())

        statuses = [limiter.check("client") for _ in range(4)]

        assert [s.allowed for s in statuses] == [True, True, True, False]
        assert statuses[2].remaining == 0

    def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
        limiter.acquire("client")
        clock.now += 30
        limiter.acquire("client")

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.acquire("client")
        assert exc_info.value.retry_after == pytest.approx(30)
        assert exc_info.value.code == ErrorCode.RATE_LIMITED

        clock.now += 30
        limiter.acquire("client")
        assert limiter.remaining("client") == 0

    def test_keys_are_independent(self):
        limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
        limiter.acquire("a")

        limiter.acquire("b")
        assert limiter.remaining("a") == 0

    def test_headers(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(10, 60, clock=clock)
        limiter.acquire("client")

        headers = limiter.headers("client", wall_clock=lambda: 1_700_000_000.5)

        assert headers == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "9",
            "X-RateLimit-Reset": "1700000061",
        }

    def test_clear(self):
        limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
        limiter.acquire("client")

        limiter.clear("client")

        assert limiter.remaining("client") == 1


class TestCooldown:
    def test_remaining_counts_down(self):
        clock = FakeClock()
        cooldowns = CooldownTracker(30, clock=clock)
        cooldowns.start("colic")
        clock.now += 10

        assert cooldowns.remaining("colic") == pytest.approx(20)
        with pytest.raises(CooldownActiveError) as exc_info:
            cooldowns.check("colic")
        assert exc_info.value.retry_after == pytest.approx(20)

        clock.now += 20
        assert cooldowns.remaining("colic") == 0.0
        cooldowns.check("colic")

    def test_unknown_slug_has_no_cooldown(self):
        assert CooldownTracker(30).remaining("colic") == 0.0


async def test_in_flight_requests_share_one_task():
    registry = InFlightRegistry()
    calls = 0
    release = asyncio.Event()

    async def work():
        nonlocal calls
        calls += 1
        await release.wait()
        return "page"

    first = asyncio.create_task(registry.run("colic", work))
    second = asyncio.create_task(registry.run("colic", work))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert "colic" in registry
    release.set()

    assert await asyncio.gather(first, second) == ["page", "page"]
    assert calls == 1
    assert registry.keys() == []


async def test_in_flight_failure_reaches_every_waiter():
    registry = InFlightRegistry()

    async def work():
        await asyncio.sleep(0)
        raise ValueError("boom")

    results = await asyncio.gather(
        registry.run("colic", work), registry.run("colic", work), return_exceptions=True
    )

    assert all(isinstance(r, ValueError) for r in results)
    assert "colic" not in registry


async def test_failure_after_every_caller_left_is_not_reported():
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda loop, context: reported.append(context))
    registry = InFlightRegistry()
    release = asyncio.Event()

    async def work():
        await release.wait()
        raise ValueError("boom")

    try:
        caller = asyncio.create_task(registry.run("colic", work))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        while "colic" in registry:
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert reported == []


def test_retrieve_task_exception_skips_cancelled_tasks():
    failed = MagicMock()
    failed.cancelled.return_value = False
    cancelled = MagicMock()
    cancelled.cancelled.return_value = True

    retrieve_task_exception(failed)
    retrieve_task_exception(cancelled)

    failed.exception.assert_called_once_with()
    cancelled.exception.assert_not_called()


class TestGenerationController:
    async def test_concurrent_requests_generate_once(self):
        controller = GenerationController(rate_limit_requests=1, clock=FakeClock())
        calls = 0

        async def generate():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "page"

        results = await asyncio.gather(
            *(controller.run("colic", f"client-{i}", generate) for i in range(5))
        )

        assert results == ["page"] * 5
        assert calls == 1

    async def test_cooldown_after_success(self):
        clock = FakeClock()
        controller = GenerationController(cooldown_seconds=30, clock=clock)

        async def generate():
            return "page"

        await controller.run("colic", "client", generate)
        clock.now += 5

        with pytest.raises(CooldownActiveError) as exc_info:
            await controller.run("colic", "client", generate)
        assert 0 < exc_info.value.remaining <= 30

        assert await controller.run("colic", "client", generate, check_cooldown=False) == "page"

    async def test_failed_generation_has_no_cooldown(self):
        controller = GenerationController(clock=FakeClock())

        async def fail():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await controller.run("colic", "client", fail)

        assert controller.cooldowns.remaining("colic") == 0.0

    async def test_rate_limit_per_caller(self):
        controller = GenerationController(rate_limit_requests=2, cooldown_seconds=0, clock=FakeClock())

        async def generate():
            return "page"

        await controller.run("a", "client", generate)
        await controller.run("b", "client", generate)
        with pytest.raises(RateLimitedError):
            await controller.run("c", "client", generate)
        assert await controller.run("c", "other-client", generate) == "page"

    async def test_cooldown_checked_before_rate_limit(self):
        controller = GenerationController(rate_limit_requests=1, cooldown_seconds=30, clock=FakeClock())

        async def generate():
            return "page"

        await controller.run("colic", "client", generate)

        with pytest.raises(CooldownActiveError):
            await controller.run("colic", "client", generate)

    def test_from_settings(self):
        controller = GenerationController.from_settings()

        assert controller.rate_limiter.max_requests == 10
        assert controller.cooldowns.cooldown_seconds == 30


async def test_token_bucket_waits_for_refill():
    clock = FakeClock()
    sleeps = []
    bucket = TokenBucket(capacity=2, refill_per_second=1, clock=clock, sleep=fake_sleep(clock, sleeps))

    for _ in range(3):
        await bucket.acquire()

    assert sleeps == [pytest.approx(1.0)]


def test_token_bucket_rejects_bad_parameters():
    with pytest.raises(ValueError):
        TokenBucket(capacity=0, refill_per_second=1)


async def test_scheduler_spaces_starts():
    clock = FakeClock()
    sleeps = []
    scheduler = RateLimitedScheduler.with_interval(
        500, clock=clock, sleep=fake_sleep(clock, sleeps)
    )
    started = []

    def job(name):
        async def run():
            started.append((name, clock.now))
            return name

        return run

    results = await scheduler.run_all([job("a"), job("b"), job("c")])

    assert results == ["a", "b", "c"]
    assert [t for _, t in started] == [pytest.approx(100.0), pytest.approx(100.5), pytest.approx(101.0)]
    assert sleeps == [pytest.approx(0.5), pytest.approx(0.5)]


async def test_scheduler_returns_exceptions_in_place():
    scheduler = RateLimitedScheduler(requests_per_window=5, window_seconds=1)

    async def ok():
        return 1

    async def bad():
        raise ValueError("nope")

    results = await scheduler.run_all([ok, bad, ok])

    assert results[0] == 1
    assert isinstance(results[1], ValueError)
    assert results[2] == 1


def test_batch_scheduler_uses_configured_workers(tmp_path):
    data_dir = tmp_path / "wikigen-data"
    data_dir.mkdir(exist_ok=True)
    (data_dir / "config.ini").write_text("[throttle]\nscheduler_max_workers = 3\n")

    spaced = RateLimitedScheduler.for_batch(500, item_count=4)
    burst = RateLimitedScheduler.for_batch(0, item_count=4)

    assert (spaced.max_workers, spaced.requests_per_window) == (3, 1)
    assert spaced.window_seconds == pytest.approx(0.5)
    assert (burst.max_workers, burst.requests_per_window) == (3, 4)


def test_batch_scheduler_defaults_to_one_worker():
    scheduler = RateLimitedScheduler.for_batch(0, item_count=0)

    assert scheduler.max_workers == 1
    assert scheduler.requests_per_window == 1
