"""SQLite page store with TTL-based staleness."""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from wikigen.cache.monitoring import CacheMonitor
from wikigen.config import ConfigError, load_settings
from wikigen.constants.cache import (
    DEFAULT_CACHE_TTL_HOURS,
    DEFAULT_LOW_CONFIDENCE_THRESHOLD,
    DEFAULT_MAX_CACHED_PAGES,
    DEFAULT_PAGE_CONFIDENCE,
    DEFAULT_POPULAR_THRESHOLD,
    DEFAULT_STALE_PAGE_LIMIT,
    MAX_CACHE_TTL_HOURS,
    MIN_CACHE_TTL_HOURS,
    POPULAR_WIKI_CACHE_CONTROL,
    STATS_TOP_PAGES,
    WIKI_CACHE_CONTROL,
)
from wikigen.db.clock import Clock, parse_timestamp, to_timestamp, utc_now
from wikigen.db.connection import Database

logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 20


def like_pattern(text: str) -> str:
    """Substring LIKE pattern for text, with LIKE wildcards matched literally."""
    escaped = text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class Page:
    """A cached wiki page."""

    slug: str
    title: str
    content: str
    excerpt: str
    confidence_score: float
    published: bool
    generated_at: datetime
    ttl_expires_at: datetime
    view_count: int = 0
    regeneration_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_stale(self, now: datetime) -> bool:
        return now > self.ttl_expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "title": self.title,
            "content": self.content,
            "excerpt": self.excerpt,
            "confidence_score": self.confidence_score,
            "published": self.published,
            "generated_at": self.generated_at.isoformat(),
            "ttl_expires_at": self.ttl_expires_at.isoformat(),
            "view_count": self.view_count,
            "regeneration_count": self.regeneration_count,
            "metadata": self.metadata,
        }


def validate_ttl_hours(ttl_hours: int) -> int:
    if not MIN_CACHE_TTL_HOURS <= ttl_hours <= MAX_CACHE_TTL_HOURS:
        raise ValueError(
            f"TTL must be between {MIN_CACHE_TTL_HOURS} and {MAX_CACHE_TTL_HOURS} hours, "
            f"got {ttl_hours}"
        )
    return ttl_hours


# Columns that update_page may change directly
UPDATABLE_COLUMNS = ("title", "content", "excerpt", "confidence_score", "published", "metadata")


class PageStore:
    """Page persistence, staleness queries and cache statistics.

    Args:
        db: Database with migrations applied.
        ttl_hours: Lifetime of a freshly generated page.
        low_confidence_threshold: Pages below this score are reported in stats.
        popular_threshold: Views at which a page counts as popular.
        monitor: Receives hit/miss events from ``get_page``.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        db: Database,
        ttl_hours: int = DEFAULT_CACHE_TTL_HOURS,
        low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
        popular_threshold: int = DEFAULT_POPULAR_THRESHOLD,
        monitor: Optional[CacheMonitor] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.ttl_hours = validate_ttl_hours(ttl_hours)
        self.low_confidence_threshold = low_confidence_threshold
        self.popular_threshold = popular_threshold
        self.monitor = monitor or CacheMonitor()
        self._clock = clock

    @classmethod
    def from_settings(
        cls, db: Database, monitor: Optional[CacheMonitor] = None, clock: Clock = utc_now
    ) -> "PageStore":
        try:
            settings = load_settings()
            return cls(
                db,
                ttl_hours=settings.cache.ttl_hours,
                low_confidence_threshold=settings.cache.low_confidence_threshold,
                popular_threshold=settings.cache.popular_threshold,
                monitor=monitor or CacheMonitor(enabled=settings.cache.enable_analytics),
                clock=clock,
            )
        except (ValueError, OSError, ConfigError):
            # Settings not available (e.g., invalid WIKI_* variables in tests)
            return cls(db, monitor=monitor, clock=clock)

    def now(self) -> datetime:
        return self._clock()

    def is_popular(self, page: Page) -> bool:
        return page.view_count >= self.popular_threshold

    def cache_control(self, page: Page) -> str:
        """Cache-Control header value for serving page."""
        return POPULAR_WIKI_CACHE_CONTROL if self.is_popular(page) else WIKI_CACHE_CONTROL

    def _row_to_record(self, row: sqlite3.Row) -> Page:
        generated_at = parse_timestamp(row["generated_at"])
        ttl_expires_at = parse_timestamp(row["ttl_expires_at"])
        assert generated_at is not None and ttl_expires_at is not None
        return Page(
            slug=row["slug"],
            title=row["title"],
            content=row["content"],
            excerpt=row["excerpt"],
            confidence_score=row["confidence_score"],
            published=bool(row["published"]),
            generated_at=generated_at,
            ttl_expires_at=ttl_expires_at,
            view_count=row["view_count"],
            regeneration_count=row["regeneration_count"],
            metadata=json.loads(row["metadata"] or "{}"),
        )

    def fetch(self, slug: str) -> Optional[Page]:
        """Read a page regardless of publish state, without telemetry."""
        row = self.db.fetchone("SELECT * FROM wiki_pages WHERE slug = ?", (slug,))
        return self._row_to_record(row) if row else None

    def get_page(self, slug: str, include_unpublished: bool = False) -> Optional[Page]:
        """Look up a page, recording a cache hit or miss.

        Unpublished pages (drafts and soft-invalidated pages) count as a miss
        unless ``include_unpublished`` is set.
        """
        page = self.fetch(slug)
        if page is None or (not page.published and not include_unpublished):
            self.monitor.miss(slug)
            return None
        self.monitor.hit(slug, view_count=page.view_count, confidence=page.confidence_score)
        return page

    def exists(self, slug: str) -> bool:
        return self.db.fetchone("SELECT 1 FROM wiki_pages WHERE slug = ?", (slug,)) is not None

    def upsert_page(
        self,
        slug: str,
        title: str,
        content: str,
        excerpt: str = "",
        confidence_score: float = DEFAULT_PAGE_CONFIDENCE,
        published: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Page:
        """Insert or overwrite the page for slug.

        Sets ``generated_at`` to now and ``ttl_expires_at`` to now + TTL.
        View and regeneration counts of an existing row are kept.
        """
        if not 0.0 <= confidence_score <= 1.0:
            raise ValueError(f"confidence_score must be in [0, 1], got {confidence_score}")

        now = self.now()
        expires = now + timedelta(hours=self.ttl_hours)
        self.db.execute(
            """
            INSERT INTO wiki_pages (
                slug, title, content, excerpt, confidence_score, published,
                generated_at, ttl_expires_at, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(slug) DO UPDATE SET
                title = excluded.title,
                content = excluded.content,
                excerpt = excluded.excerpt,
                confidence_score = excluded.confidence_score,
                published = excluded.published,
                generated_at = excluded.generated_at,
                ttl_expires_at = excluded.ttl_expires_at,
                metadata = excluded.metadata
            """,
            (
                slug,
                title,
                content,
                excerpt,
                confidence_score,
                int(published),
                to_timestamp(now),
                to_timestamp(expires),
                json.dumps(metadata or {}),
            ),
        )
        self.db.commit()
        logger.info(f"Cached page '{slug}' (expires {expires.isoformat()})")
        page = self.fetch(slug)
        assert page is not None
        return page

    def increment_view_count(self, slug: str) -> None:
        self.db.execute("UPDATE wiki_pages SET view_count = view_count + 1 WHERE slug = ?", (slug,))
        self.db.commit()

    def is_page_stale(self, page: Page) -> bool:
        return page.is_stale(self.now())

    def get_stale_pages(self, limit: int = DEFAULT_STALE_PAGE_LIMIT) -> list[Page]:
        """Expired pages, most viewed first."""
        rows = self.db.fetchall(
            """
            SELECT * FROM wiki_pages
            WHERE ttl_expires_at < ?
            ORDER BY view_count DESC, slug
            LIMIT ?
            """,
            (to_timestamp(self.now()), limit),
        )
        return [self._row_to_record(row) for row in rows]

    def delete_page(self, slug: str) -> bool:
        cursor = self.db.execute("DELETE FROM wiki_pages WHERE slug = ?", (slug,))
        self.db.commit()
        return cursor.rowcount > 0

    def list_pages(self, published_only: bool = False) -> list[Page]:
        where = "WHERE published = 1" if published_only else ""
        rows = self.db.fetchall(f"SELECT * FROM wiki_pages {where} ORDER BY slug")
        return [self._row_to_record(row) for row in rows]

    def list_published(self) -> list[Page]:
        return self.list_pages(published_only=True)

    def count(self) -> int:
        row = self.db.fetchone("SELECT COUNT(*) FROM wiki_pages")
        return row[0] if row else 0

    def update_page(self, slug: str, **fields: Any) -> Optional[Page]:
        """Change selected columns without regenerating the page.

        Raises:
            ValueError: If a field is not an updatable column.
        """
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update page fields: {sorted(unknown)}")
        if not fields:
            return self.fetch(slug)

        values: list[Any] = []
        for name, value in fields.items():
            if name == "metadata":
                value = json.dumps(value or {})
            elif name == "published":
                value = int(value)
            values.append(value)
        assignments = ", ".join(f"{name} = ?" for name in fields)
        self.db.execute(
            f"UPDATE wiki_pages SET {assignments} WHERE slug = ?",
            (*values, slug),
        )
        self.db.commit()
        return self.fetch(slug)

    def mark_regenerated(self, slug: str) -> Optional[Page]:
        self.db.execute(
            "UPDATE wiki_pages SET regeneration_count = regeneration_count + 1 WHERE slug = ?",
            (slug,),
        )
        self.db.commit()
        self.monitor.regenerated(slug)
        return self.fetch(slug)

    def get_pages_by_view_range(self, min_views: int, max_views: Optional[int] = None) -> list[Page]:
        if max_views is None:
            rows = self.db.fetchall(
                "SELECT * FROM wiki_pages WHERE view_count >= ? ORDER BY view_count DESC, slug",
                (min_views,),
            )
        else:
            rows = self.db.fetchall(
                """
                SELECT * FROM wiki_pages
                WHERE view_count BETWEEN ? AND ?
                ORDER BY view_count DESC, slug
                """,
                (min_views, max_views),
            )
        return [self._row_to_record(row) for row in rows]

    def search_pages(self, text: str, limit: Optional[int] = SEARCH_RESULT_LIMIT) -> list[Page]:
        """Case-insensitive substring search over title and content.

        ``%`` and ``_`` in the text match literally. A limit of None returns
        every match.
        """
        pattern = like_pattern(text)
        rows = self.db.fetchall(
            """
            SELECT * FROM wiki_pages
            WHERE lower(title) LIKE ? ESCAPE '\\' OR lower(content) LIKE ? ESCAPE '\\'
            ORDER BY view_count DESC, slug
            LIMIT ?
            """,
            (pattern, pattern, -1 if limit is None else limit),
        )
        return [self._row_to_record(row) for row in rows]

    def prune_to_capacity(self, max_pages: int = DEFAULT_MAX_CACHED_PAGES) -> list[str]:
        """Delete the least viewed, oldest pages beyond max_pages.

        Returns:
            Slugs that were removed.
        """
        excess = self.count() - max_pages
        if excess <= 0:
            return []
        rows = self.db.fetchall(
            "SELECT slug FROM wiki_pages ORDER BY view_count ASC, generated_at ASC LIMIT ?",
            (excess,),
        )
        slugs = [row["slug"] for row in rows]
        with self.db.transaction():
            self.db.executemany("DELETE FROM wiki_pages WHERE slug = ?", [(s,) for s in slugs])
        logger.info(f"Pruned {len(slugs)} pages to stay within {max_pages}")
        return slugs

    def get_cache_stats(self, top: int = STATS_TOP_PAGES) -> dict[str, Any]:
        now = to_timestamp(self.now())
        row = self.db.fetchone(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(ttl_expires_at < ?), 0) AS stale,
                COALESCE(SUM(published), 0) AS published,
                COALESCE(AVG(confidence_score), 0) AS avg_confidence,
                COALESCE(SUM(view_count), 0) AS total_views
            FROM wiki_pages
            """,
            (now,),
        )
        assert row is not None
        popular = self.db.fetchall(
            """
            SELECT slug, title, view_count, confidence_score FROM wiki_pages
            ORDER BY view_count DESC, slug LIMIT ?
            """,
            (top,),
        )
        low_confidence = self.db.fetchall(
            """
            SELECT slug, title, confidence_score FROM wiki_pages
            WHERE confidence_score < ?
            ORDER BY confidence_score ASC, slug LIMIT ?
            """,
            (self.low_confidence_threshold, top),
        )
        return {
            "total_pages": row["total"],
            "stale_pages": row["stale"],
            "published_pages": row["published"],
            "avg_confidence": round(row["avg_confidence"], 4),
            "total_views": row["total_views"],
            "popular_pages": [
                {
                    "slug": r["slug"],
                    "title": r["title"],
                    "views": r["view_count"],
                    "confidence": r["confidence_score"],
                }
                for r in popular
            ],
            "low_confidence_pages": [
                {"slug": r["slug"], "title": r["title"], "confidence": r["confidence_score"]}
                for r in low_confidence
            ],
        }
