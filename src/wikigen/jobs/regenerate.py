"""Background regeneration of stale pages, most viewed first."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from wikigen.cache.pages import Page
from wikigen.cache.warming import WARMING_ERRORS
from wikigen.constants.cache import DEFAULT_REGEN_DELAY_MS, DEFAULT_REGEN_MAX_PAGES
from wikigen.db.clock import utc_now
from wikigen.service import WikiService
from wikigen.throttle import RateLimitedScheduler

logger = logging.getLogger(__name__)


@dataclass
class RegenerationResult:
    slug: str
    status: str  # success, dry_run, error
    previous_views: int = 0
    previous_confidence: float = 0.0
    confidence_score: Optional[float] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "status": self.status,
            "previous_views": self.previous_views,
            "previous_confidence": self.previous_confidence,
            "confidence_score": self.confidence_score,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class RegenerationSummary:
    dry_run: bool
    results: list[RegenerationResult] = field(default_factory=list)
    total_duration_ms: int = 0
    timestamp: str = ""

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.status == "success")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "error")

    @property
    def exit_code(self) -> int:
        """1 when a live run had any failure, else 0."""
        return 1 if self.failed and not self.dry_run else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": "dry_run" if self.dry_run else "live",
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "total_duration_ms": self.total_duration_ms,
            "timestamp": self.timestamp,
            "results": [r.to_dict() for r in self.results],
        }


async def _regenerate_one(service: WikiService, page: Page) -> RegenerationResult:
    start = time.perf_counter()
    try:
        refreshed = await service.regenerate_page(page.slug)
    except WARMING_ERRORS as e:
        logger.error(f"Failed to regenerate '{page.slug}': {e}")
        service.pages.monitor.error(page.slug, e)
        return RegenerationResult(
            slug=page.slug,
            status="error",
            previous_views=page.view_count,
            previous_confidence=page.confidence_score,
            error=str(e),
        )
    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"Regenerated '{page.slug}': confidence {page.confidence_score:.2f} -> "
        f"{refreshed.confidence_score:.2f} ({duration_ms}ms)"
    )
    return RegenerationResult(
        slug=page.slug,
        status="success",
        previous_views=page.view_count,
        previous_confidence=page.confidence_score,
        confidence_score=refreshed.confidence_score,
        duration_ms=duration_ms,
    )


async def regenerate_stale(
    service: WikiService,
    max_pages: int = DEFAULT_REGEN_MAX_PAGES,
    dry_run: bool = False,
    delay_ms: int = DEFAULT_REGEN_DELAY_MS,
    scheduler: Optional[RateLimitedScheduler] = None,
) -> RegenerationSummary:
    """Regenerate up to max_pages expired pages in order of popularity.

    Per-page failures are recorded and the run continues. A dry run only
    reports what would be regenerated.
    """
    start = time.perf_counter()
    stale = service.pages.get_stale_pages(max_pages)
    summary = RegenerationSummary(dry_run=dry_run, timestamp=utc_now().isoformat())
    logger.info(
        f"Found {len(stale)} stale pages (max {max_pages}, {'dry run' if dry_run else 'live'})"
    )

    if dry_run:
        for page in stale:
            logger.info(
                f"Would regenerate '{page.slug}' (views {page.view_count}, "
                f"expired {page.ttl_expires_at.isoformat()})"
            )
            summary.results.append(
                RegenerationResult(
                    slug=page.slug,
                    status="dry_run",
                    previous_views=page.view_count,
                    previous_confidence=page.confidence_score,
                )
            )
    elif stale:
        if scheduler is None:
            scheduler = RateLimitedScheduler.for_batch(delay_ms, len(stale))
        outcomes = await scheduler.run_all(
            [lambda page=page: _regenerate_one(service, page) for page in stale]
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            summary.results.append(outcome)

    summary.total_duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"Regeneration complete: {summary.success} regenerated, {summary.failed} failed "
        f"of {summary.total} in {summary.total_duration_ms}ms"
    )
    return summary
