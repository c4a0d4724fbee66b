"""Cache invalidation strategies.

Hard invalidation deletes the page row together with its graph edges and
clears the page's ``page_exists`` flag on link candidates. Soft invalidation
only unpublishes the page so it can be restored later.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from wikigen.cache.pages import PageStore
from wikigen.constants.cache import DEFAULT_MIN_PUBLISH_CONFIDENCE
from wikigen.db.clock import to_timestamp
from wikigen.links.candidates import LinkCandidateStore
from wikigen.links.graph import PageGraph

logger = logging.getLogger(__name__)


@dataclass
class InvalidationSummary:
    success: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.success) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": len(self.success),
            "failed": len(self.failed),
            "slugs": list(self.success),
            "errors": list(self.failed),
        }


def create_invalidation_summary(
    success: list[str], failed: list[dict[str, str]]
) -> InvalidationSummary:
    return InvalidationSummary(success=list(success), failed=list(failed))


class CacheInvalidator:
    """Removes or unpublishes cached pages."""

    def __init__(
        self,
        pages: PageStore,
        graph: PageGraph,
        candidates: Optional[LinkCandidateStore] = None,
    ):
        self.pages = pages
        self.graph = graph
        self.candidates = candidates

    def _remove(self, slugs: list[str]) -> None:
        """Delete rows plus edges for slugs in one transaction."""
        if not slugs:
            return
        params = [(slug,) for slug in slugs]
        db = self.pages.db
        with db.transaction():
            db.executemany("DELETE FROM wiki_pages WHERE slug = ?", params)
            db.executemany(
                "DELETE FROM page_connections WHERE from_slug = ? OR to_slug = ?",
                [(slug, slug) for slug in slugs],
            )
            if self.candidates is not None:
                db.executemany(
                    "UPDATE link_candidates SET page_exists = 0 WHERE normalized_slug = ?",
                    params,
                )
        for slug in slugs:
            self.pages.monitor.invalidated(slug)

    def _matching_slugs(self, where: str, params: tuple[Any, ...] = ()) -> list[str]:
        rows = self.pages.db.fetchall(f"SELECT slug FROM wiki_pages {where} ORDER BY slug", params)
        return [row["slug"] for row in rows]

    def invalidate(self, slug: str) -> bool:
        """Hard-delete one page. Returns False if it was not cached."""
        if not self.pages.exists(slug):
            return False
        self._remove([slug])
        logger.info(f"Invalidated page '{slug}'")
        return True

    def invalidate_many(self, slugs: list[str]) -> InvalidationSummary:
        """Hard-delete several pages, reporting per-slug outcomes."""
        summary = InvalidationSummary()
        for slug in slugs:
            try:
                removed = self.invalidate(slug)
            except sqlite3.Error as e:
                logger.error(f"Failed to invalidate '{slug}': {e}")
                summary.failed.append({"slug": slug, "error": str(e)})
                continue
            if removed:
                summary.success.append(slug)
            else:
                summary.failed.append({"slug": slug, "error": "Page not found"})
        return summary

    def invalidate_all(self) -> int:
        slugs = self._matching_slugs("")
        self._remove(slugs)
        logger.warning(f"Invalidated all {len(slugs)} cached pages")
        return len(slugs)

    def invalidate_by_document(self, document_id: str) -> list[str]:
        """Delete pages generated from the given source document."""
        slugs = self._matching_slugs(
            """
            WHERE EXISTS (
                SELECT 1 FROM json_each(wiki_pages.metadata, '$.document_ids')
                WHERE json_each.value = ?
            )
            """,
            (document_id,),
        )
        self._remove(slugs)
        logger.info(f"Invalidated {len(slugs)} pages using document {document_id}")
        return slugs

    def invalidate_by_search(self, text: str) -> list[str]:
        slugs = [page.slug for page in self.pages.search_pages(text, limit=None)]
        self._remove(slugs)
        logger.info(f"Invalidated {len(slugs)} pages matching '{text}'")
        return slugs

    def invalidate_stale(self) -> int:
        slugs = self._matching_slugs(
            "WHERE ttl_expires_at < ?", (to_timestamp(self.pages.now()),)
        )
        self._remove(slugs)
        logger.info(f"Invalidated {len(slugs)} stale pages")
        return len(slugs)

    def invalidate_low_confidence(self, threshold: float = DEFAULT_MIN_PUBLISH_CONFIDENCE) -> int:
        slugs = self._matching_slugs("WHERE confidence_score < ?", (threshold,))
        self._remove(slugs)
        logger.info(f"Invalidated {len(slugs)} pages below confidence {threshold}")
        return len(slugs)

    def soft_invalidate(self, slug: str) -> bool:
        """Unpublish a page without deleting it."""
        page = self.pages.update_page(slug, published=False)
        if page is None:
            return False
        self.pages.monitor.invalidated(slug, soft=True)
        logger.info(f"Unpublished page '{slug}'")
        return True

    def restore(self, slug: str) -> bool:
        page = self.pages.update_page(slug, published=True)
        if page is None:
            return False
        logger.info(f"Restored page '{slug}'")
        return True
