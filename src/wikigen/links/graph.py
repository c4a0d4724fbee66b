"""Directed link graph between wiki pages.

Edges live in the ``page_connections`` table. The target of an edge may not
have a page yet; queries that surface pages to readers only return targets
that exist.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional

import networkx as nx

from wikigen.constants.links import (
    DEFAULT_BACKLINK_LIMIT,
    DEFAULT_RELATED_LIMIT,
    REINFORCEMENT_FACTOR,
    TIER_STRENGTH,
    TOP_CONNECTED_LIMIT,
)
from wikigen.db.clock import Clock, to_timestamp, utc_now
from wikigen.db.connection import Database
from wikigen.links.entities import EntityLink

logger = logging.getLogger(__name__)


@dataclass
class PageConnection:
    from_slug: str
    to_slug: str
    link_text: str
    strength: float


@dataclass
class RelatedPage:
    slug: str
    title: str
    strength: float

    def to_dict(self) -> dict[str, Any]:
        return {"slug": self.slug, "title": self.title, "strength": round(self.strength, 4)}


@dataclass
class LinkedPage:
    """One end of an edge, as seen from a page's backlink or outgoing list."""

    slug: str
    title: str
    link_text: str
    strength: float
    page_exists: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "title": self.title,
            "link_text": self.link_text,
            "strength": round(self.strength, 4),
            "page_exists": self.page_exists,
        }


def strength_for_tier(tier: str) -> float:
    return TIER_STRENGTH.get(tier, TIER_STRENGTH["ghost"])


def reinforce(existing: float, new: float) -> float:
    """Strength after a repeated or reciprocal mention, capped at 1.0."""
    return min(1.0, existing + new * REINFORCEMENT_FACTOR)


class PageGraph:
    """Page-to-page connection store and graph queries."""

    def __init__(self, db: Database, clock: Clock = utc_now):
        self.db = db
        self._clock = clock

    def _row_to_record(self, row: sqlite3.Row) -> PageConnection:
        return PageConnection(
            from_slug=row["from_slug"],
            to_slug=row["to_slug"],
            link_text=row["link_text"],
            strength=row["strength"],
        )

    def get_connection(self, from_slug: str, to_slug: str) -> Optional[PageConnection]:
        row = self.db.fetchone(
            "SELECT * FROM page_connections WHERE from_slug = ? AND to_slug = ?",
            (from_slug, to_slug),
        )
        return self._row_to_record(row) if row else None

    def _upsert_edge(self, from_slug: str, to_slug: str, link_text: str, strength: float) -> None:
        now = to_timestamp(self._clock())
        existing = self.get_connection(from_slug, to_slug)
        if existing is None:
            self.db.execute(
                """
                INSERT INTO page_connections
                    (from_slug, to_slug, link_text, strength, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (from_slug, to_slug, link_text, min(1.0, strength), now, now),
            )
        else:
            self.db.execute(
                """
                UPDATE page_connections
                SET link_text = ?, strength = ?, updated_at = ?
                WHERE from_slug = ? AND to_slug = ?
                """,
                (link_text, reinforce(existing.strength, strength), now, from_slug, to_slug),
            )

    def upsert_connection(
        self, from_slug: str, to_slug: str, link_text: str, tier: str
    ) -> Optional[PageConnection]:
        """Create or reinforce the edge from_slug -> to_slug.

        Returns:
            The stored edge, or None for a self-link (which is never stored).
        """
        if from_slug == to_slug:
            return None
        with self.db.transaction():
            self._upsert_edge(from_slug, to_slug, link_text, strength_for_tier(tier))
        return self.get_connection(from_slug, to_slug)

    def record_entity_links(self, from_slug: str, entities: list[EntityLink]) -> int:
        """Replace the outgoing edges of from_slug with one edge per entity.

        The entities describe the page's current content, so edges left over
        from an earlier version of the page are dropped rather than
        reinforced.

        Returns:
            Number of edges written (self-links excluded).
        """
        written = 0
        with self.db.transaction():
            self.db.execute("DELETE FROM page_connections WHERE from_slug = ?", (from_slug,))
            for entity in entities:
                if entity.slug == from_slug:
                    continue
                self._upsert_edge(
                    from_slug, entity.slug, entity.text, strength_for_tier(entity.confidence)
                )
                written += 1
        logger.debug(f"Recorded {written} connections from '{from_slug}'")
        return written

    def related_pages(self, slug: str, limit: int = DEFAULT_RELATED_LIMIT) -> list[RelatedPage]:
        """Existing pages connected to slug in either direction.

        An incoming edge from a page that is already an outgoing target
        boosts that page's strength by half the incoming strength.
        """
        outgoing = self.db.fetchall(
            """
            SELECT c.to_slug AS slug, c.strength, p.title
            FROM page_connections c
            JOIN wiki_pages p ON p.slug = c.to_slug
            WHERE c.from_slug = ?
            LIMIT ?
            """,
            (slug, limit),
        )
        incoming = self.db.fetchall(
            """
            SELECT c.from_slug AS slug, c.strength, p.title
            FROM page_connections c
            JOIN wiki_pages p ON p.slug = c.from_slug
            WHERE c.to_slug = ?
            LIMIT ?
            """,
            (slug, limit),
        )

        related: dict[str, RelatedPage] = {}
        for row in outgoing:
            related[row["slug"]] = RelatedPage(row["slug"], row["title"], row["strength"])
        for row in incoming:
            existing = related.get(row["slug"])
            if existing:
                existing.strength = reinforce(existing.strength, row["strength"])
            else:
                related[row["slug"]] = RelatedPage(row["slug"], row["title"], row["strength"])

        ranked = sorted(related.values(), key=lambda r: (-r.strength, r.slug))
        return ranked[:limit]

    def backlinks(self, slug: str, limit: int = DEFAULT_BACKLINK_LIMIT) -> list[LinkedPage]:
        rows = self.db.fetchall(
            """
            SELECT c.from_slug AS slug, c.link_text, c.strength, p.title
            FROM page_connections c
            JOIN wiki_pages p ON p.slug = c.from_slug
            WHERE c.to_slug = ?
            ORDER BY c.strength DESC, c.from_slug
            LIMIT ?
            """,
            (slug, limit),
        )
        return [
            LinkedPage(row["slug"], row["title"], row["link_text"], row["strength"])
            for row in rows
        ]

    def outgoing_links(self, slug: str) -> list[LinkedPage]:
        """All targets of slug, including ones without a page yet."""
        rows = self.db.fetchall(
            """
            SELECT c.to_slug AS slug, c.link_text, c.strength, p.title
            FROM page_connections c
            LEFT JOIN wiki_pages p ON p.slug = c.to_slug
            WHERE c.from_slug = ?
            ORDER BY c.strength DESC, c.to_slug
            """,
            (slug,),
        )
        return [
            LinkedPage(
                slug=row["slug"],
                title=row["title"] or row["link_text"],
                link_text=row["link_text"],
                strength=row["strength"],
                page_exists=row["title"] is not None,
            )
            for row in rows
        ]

    def to_networkx(self) -> nx.DiGraph:
        """Build a DiGraph of all pages and connections.

        Page nodes carry ``title`` and ``exists=True``; edge targets without a
        page are added with ``exists=False``.
        """
        graph = nx.DiGraph()
        for row in self.db.fetchall("SELECT slug, title FROM wiki_pages"):
            graph.add_node(row["slug"], title=row["title"], exists=True)
        for row in self.db.fetchall("SELECT * FROM page_connections"):
            for node in (row["from_slug"], row["to_slug"]):
                if not graph.has_node(node):
                    graph.add_node(node, title=node, exists=False)
            graph.add_edge(
                row["from_slug"],
                row["to_slug"],
                link_text=row["link_text"],
                strength=row["strength"],
            )
        return graph

    def orphans(self) -> list[dict[str, str]]:
        """Pages with no connection in either direction."""
        graph = self.to_networkx()
        return [
            {"slug": node, "title": attrs["title"]}
            for node, attrs in sorted(graph.nodes(data=True))
            if attrs["exists"] and graph.degree(node) == 0
        ]

    def get_stats(self) -> dict[str, Any]:
        graph = self.to_networkx()
        total_pages = sum(1 for _, exists in graph.nodes(data="exists") if exists)
        total_connections = graph.number_of_edges()

        in_degrees = [(node, degree) for node, degree in graph.in_degree() if degree > 0]
        in_degrees.sort(key=lambda item: (-item[1], item[0]))
        most_connected = [
            {
                "slug": node,
                "title": graph.nodes[node]["title"],
                "connection_count": degree,
            }
            for node, degree in in_degrees[:TOP_CONNECTED_LIMIT]
        ]

        return {
            "total_pages": total_pages,
            "total_connections": total_connections,
            "avg_connections_per_page": (
                total_connections / total_pages if total_pages else 0.0
            ),
            "most_connected_pages": most_connected,
        }

    def delete_page_connections(self, slug: str) -> int:
        """Remove every edge into or out of slug."""
        cursor = self.db.execute(
            "DELETE FROM page_connections WHERE from_slug = ? OR to_slug = ?", (slug, slug)
        )
        self.db.commit()
        return cursor.rowcount
