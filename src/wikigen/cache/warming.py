"""Cache warming: pregenerate popular pages before readers ask for them."""

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from wikigen.cache.pages import Page, PageStore
from wikigen.constants.cache import (
    DEFAULT_REGEN_DELAY_MS,
    ESTIMATED_GENERATION_MS,
    MAX_WARMING_DELAY_MS,
    MIN_WARMING_DELAY_MS,
    POPULAR_TOPICS,
)
from wikigen.errors import PageNotFoundError, WikiGenerationError
from wikigen.generation.text import query_to_slug
from wikigen.llm.client import LLMError
from wikigen.throttle import RateLimitedScheduler

logger = logging.getLogger(__name__)

# Generates and persists the page for a topic
PageProducer = Callable[[str], Awaitable[Page]]

# Failures that skip one item without aborting a warming or regeneration run
WARMING_ERRORS = (WikiGenerationError, LLMError, PageNotFoundError, sqlite3.Error)


@dataclass
class WarmingResult:
    topic: str
    slug: str
    status: str  # success, skipped, error
    confidence_score: Optional[float] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "slug": self.slug,
            "status": self.status,
            "confidence_score": self.confidence_score,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class WarmingSummary:
    results: list[WarmingResult] = field(default_factory=list)
    total_duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def success(self) -> int:
        return self._count("success")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("error")

    @property
    def avg_duration_ms(self) -> int:
        generated = [r.duration_ms for r in self.results if r.status != "skipped"]
        return round(sum(generated) / len(generated)) if generated else 0

    @property
    def errors(self) -> list[dict[str, str]]:
        return [{"slug": r.slug, "error": r.error or ""} for r in self.results if r.status == "error"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "skipped": self.skipped,
            "failed": self.failed,
            "total_duration_ms": self.total_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
        }


async def warm_single_topic(
    topic: str, produce: PageProducer, pages: Optional[PageStore] = None
) -> WarmingResult:
    """Generate one topic, turning expected failures into an error result."""
    slug = query_to_slug(topic)
    start = time.perf_counter()
    try:
        page = await produce(topic)
    except WARMING_ERRORS as e:
        logger.error(f"Failed to warm '{slug}': {e}")
        if pages is not None:
            pages.monitor.error(slug, e)
        return WarmingResult(topic=topic, slug=slug, status="error", error=str(e))

    duration_ms = int((time.perf_counter() - start) * 1000)
    if pages is not None:
        pages.monitor.warmed(page.slug, duration_ms=duration_ms)
    logger.info(f"Warmed '{page.slug}' (confidence {page.confidence_score:.2f}, {duration_ms}ms)")
    return WarmingResult(
        topic=topic,
        slug=page.slug,
        status="success",
        confidence_score=page.confidence_score,
        duration_ms=duration_ms,
    )


class CacheWarmer:
    """Pregenerates a topic list through a rate-limited scheduler.

    Args:
        pages: Page store, used for skip-existing checks and telemetry.
        produce: Generates and stores the page for a topic.
        scheduler: Overrides the scheduler built from ``delay_ms``.
    """

    def __init__(
        self,
        pages: PageStore,
        produce: PageProducer,
        scheduler: Optional[RateLimitedScheduler] = None,
    ):
        self.pages = pages
        self.produce = produce
        self.scheduler = scheduler

    def _scheduler_for(self, delay_ms: int, topic_count: int) -> RateLimitedScheduler:
        if self.scheduler is not None:
            return self.scheduler
        return RateLimitedScheduler.for_batch(delay_ms, topic_count)

    async def warm(
        self,
        topics: Optional[list[str]] = None,
        skip_existing: bool = True,
        delay_ms: int = DEFAULT_REGEN_DELAY_MS,
        max_topics: Optional[int] = None,
    ) -> WarmingSummary:
        selected = list(topics if topics is not None else POPULAR_TOPICS)
        if max_topics is not None:
            selected = selected[:max_topics]

        logger.info(
            f"Warming {len(selected)} topics (skip_existing={skip_existing}, delay={delay_ms}ms)"
        )
        start = time.perf_counter()

        to_generate: list[str] = []
        skipped: dict[str, WarmingResult] = {}
        for topic in selected:
            slug = query_to_slug(topic)
            if skip_existing and self.pages.exists(slug):
                skipped[topic] = WarmingResult(topic=topic, slug=slug, status="skipped")
            else:
                to_generate.append(topic)

        scheduler = self._scheduler_for(delay_ms, len(to_generate))
        generated = await scheduler.run_all(
            [
                lambda topic=topic: warm_single_topic(topic, self.produce, self.pages)
                for topic in to_generate
            ]
        )
        by_topic: dict[str, WarmingResult] = dict(skipped)
        for topic, outcome in zip(to_generate, generated):
            if isinstance(outcome, BaseException):
                # Unexpected failures still propagate
                raise outcome
            by_topic[topic] = outcome

        summary = WarmingSummary(
            results=[by_topic[topic] for topic in selected],
            total_duration_ms=int((time.perf_counter() - start) * 1000),
        )
        logger.info(
            f"Cache warming complete: {summary.success} generated, {summary.skipped} skipped, "
            f"{summary.failed} failed in {summary.total_duration_ms}ms"
        )
        return summary


def estimate_warming_time(
    topic_count: int = len(POPULAR_TOPICS),
    avg_generation_ms: int = ESTIMATED_GENERATION_MS,
    delay_ms: int = DEFAULT_REGEN_DELAY_MS,
) -> dict[str, int]:
    per_page = avg_generation_ms + delay_ms
    total_ms = topic_count * per_page
    return {"total_ms": total_ms, "total_minutes": round(total_ms / 60000), "per_page_ms": per_page}


def validate_warming_config(
    topics: Optional[list[str]] = None, delay_ms: int = DEFAULT_REGEN_DELAY_MS
) -> tuple[bool, list[str]]:
    """Check a warming setup.

    Returns:
        (valid, issues) where issues lists every problem found.
    """
    issues = []
    if not (topics if topics is not None else POPULAR_TOPICS):
        issues.append("No topics defined for warming")
    if delay_ms < MIN_WARMING_DELAY_MS:
        issues.append("Regeneration delay too short, may cause rate limiting")
    if delay_ms > MAX_WARMING_DELAY_MS:
        issues.append("Regeneration delay very long, warming will take a long time")
    return not issues, issues


def format_warming_summary(summary: WarmingSummary) -> str:
    rate = (summary.success / summary.total * 100) if summary.total else 0.0
    lines = [
        "Cache Warming Summary",
        "=====================",
        f"Total Topics: {summary.total}",
        f"Success: {summary.success} ({rate:.1f}%)",
        f"Skipped: {summary.skipped}",
        f"Failed: {summary.failed}",
        f"Total Time: {summary.total_duration_ms / 1000:.1f}s",
        f"Average Per Page: {summary.avg_duration_ms / 1000:.1f}s",
        "",
    ]
    for r in summary.results:
        if r.status == "success":
            lines.append(f"OK   {r.slug} ({r.confidence_score:.2f}, {r.duration_ms / 1000:.1f}s)")
        elif r.status == "skipped":
            lines.append(f"SKIP {r.slug}")
        else:
            lines.append(f"FAIL {r.slug}: {r.error}")
    return "\n".join(lines)
