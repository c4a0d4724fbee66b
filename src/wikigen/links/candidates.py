"""Link candidate registry.

A link candidate is a topic that generated pages mention, whether or not it
has a page of its own yet. Mention counts drive page suggestions.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from wikigen.constants.links import (
    CANDIDATE_TIER_FOR_ENTITY,
    DEFAULT_SUGGESTION_LIMIT,
    TIER_ORDER,
)
from wikigen.db.clock import Clock, parse_timestamp, to_timestamp, utc_now
from wikigen.db.connection import Database

logger = logging.getLogger(__name__)


@dataclass
class LinkCandidate:
    """A topic mentioned by one or more pages."""

    normalized_slug: str
    entity: str
    tier: str  # ghost, weak, strong
    mention_count: int
    mentioned_in: list[str] = field(default_factory=list)
    page_exists: bool = False
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalized_slug": self.normalized_slug,
            "entity": self.entity,
            "tier": self.tier,
            "mention_count": self.mention_count,
            "mentioned_in": list(self.mentioned_in),
            "page_exists": self.page_exists,
            "first_seen_at": self.first_seen_at.isoformat() if self.first_seen_at else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }


def candidate_tier(confidence: str) -> str:
    """Map an entity confidence label onto the three candidate tiers."""
    return CANDIDATE_TIER_FOR_ENTITY.get(confidence, "ghost")


def upgrade_tier(current: str, new: str) -> str:
    """The higher of two tiers; tiers never go down."""
    return new if TIER_ORDER.get(new, 0) > TIER_ORDER.get(current, 0) else current


class LinkCandidateStore:
    """SQLite-backed link candidate registry."""

    def __init__(self, db: Database, clock: Clock = utc_now):
        self.db = db
        self._clock = clock

    def _row_to_record(self, row: sqlite3.Row) -> LinkCandidate:
        return LinkCandidate(
            normalized_slug=row["normalized_slug"],
            entity=row["entity"],
            tier=row["tier"],
            mention_count=row["mention_count"],
            mentioned_in=json.loads(row["mentioned_in"] or "[]"),
            page_exists=bool(row["page_exists"]),
            first_seen_at=parse_timestamp(row["first_seen_at"]),
            last_seen_at=parse_timestamp(row["last_seen_at"]),
        )

    def get(self, slug: str) -> Optional[LinkCandidate]:
        row = self.db.fetchone("SELECT * FROM link_candidates WHERE normalized_slug = ?", (slug,))
        return self._row_to_record(row) if row else None

    def _page_exists(self, slug: str) -> bool:
        row = self.db.fetchone("SELECT 1 FROM wiki_pages WHERE slug = ?", (slug,))
        return row is not None

    def _upsert_row(self, entity: str, slug: str, tier: str, source_slug: Optional[str]) -> None:
        now = to_timestamp(self._clock())
        existing = self.get(slug)
        if existing is None:
            mentioned_in = [source_slug] if source_slug else []
            self.db.execute(
                """
                INSERT INTO link_candidates (
                    normalized_slug, entity, tier, mention_count, mentioned_in,
                    page_exists, first_seen_at, last_seen_at
                ) VALUES (?, ?, ?, 1, ?, ?, ?, ?)
                """,
                (
                    slug,
                    entity,
                    tier,
                    json.dumps(mentioned_in),
                    int(self._page_exists(slug)),
                    now,
                    now,
                ),
            )
            return

        mentioned_in = list(existing.mentioned_in)
        if source_slug and source_slug not in mentioned_in:
            mentioned_in.append(source_slug)
        self.db.execute(
            """
            UPDATE link_candidates
            SET mention_count = mention_count + 1,
                tier = ?,
                mentioned_in = ?,
                last_seen_at = ?
            WHERE normalized_slug = ?
            """,
            (upgrade_tier(existing.tier, tier), json.dumps(mentioned_in), now, slug),
        )

    def upsert(
        self,
        entity: str,
        slug: str,
        tier: str,
        source_slug: Optional[str] = None,
    ) -> LinkCandidate:
        """Record one mention of a topic.

        Creates the candidate on first mention. Later mentions increment the
        count, add the mentioning page and upgrade (never downgrade) the tier.
        """
        if tier not in TIER_ORDER:
            raise ValueError(f"Unknown link tier: {tier!r}")
        with self.db.transaction():
            self._upsert_row(entity, slug, tier, source_slug)
        record = self.get(slug)
        assert record is not None
        return record

    def upsert_many(self, mentions: list[tuple[str, str, str]], source_slug: Optional[str] = None) -> int:
        """Record several (entity, slug, tier) mentions in one transaction."""
        for _, _, tier in mentions:
            if tier not in TIER_ORDER:
                raise ValueError(f"Unknown link tier: {tier!r}")
        with self.db.transaction():
            for entity, slug, tier in mentions:
                self._upsert_row(entity, slug, tier, source_slug)
        return len(mentions)

    def record_page_mentions(self, source_slug: str, mentions: list[tuple[str, str, str]]) -> int:
        """Sync the (entity, slug, tier) topics that one page currently mentions.

        Only topics the page did not mention before count as new mentions.
        Topics it already mentioned just have their tier upgraded, and topics
        its content no longer mentions lose the page from ``mentioned_in``.

        Returns:
            Number of new mentions recorded.
        """
        for _, _, tier in mentions:
            if tier not in TIER_ORDER:
                raise ValueError(f"Unknown link tier: {tier!r}")

        previous = {
            row["normalized_slug"]: row
            for row in self.db.fetchall(
                """
                SELECT * FROM link_candidates
                WHERE EXISTS (
                    SELECT 1 FROM json_each(link_candidates.mentioned_in)
                    WHERE json_each.value = ?
                )
                """,
                (source_slug,),
            )
        }
        now = to_timestamp(self._clock())
        current: set[str] = set()
        added = 0
        with self.db.transaction():
            for entity, slug, tier in mentions:
                if slug in current:
                    continue
                current.add(slug)
                if slug in previous:
                    self.db.execute(
                        """
                        UPDATE link_candidates SET tier = ?, last_seen_at = ?
                        WHERE normalized_slug = ?
                        """,
                        (upgrade_tier(previous[slug]["tier"], tier), now, slug),
                    )
                else:
                    self._upsert_row(entity, slug, tier, source_slug)
                    added += 1

            for slug, row in previous.items():
                if slug in current:
                    continue
                remaining = [s for s in json.loads(row["mentioned_in"]) if s != source_slug]
                self.db.execute(
                    """
                    UPDATE link_candidates
                    SET mention_count = MAX(mention_count - 1, 0), mentioned_in = ?
                    WHERE normalized_slug = ?
                    """,
                    (json.dumps(remaining), slug),
                )
        return added

    def mark_page_exists(self, slug: str, exists: bool = True) -> None:
        self.db.execute(
            "UPDATE link_candidates SET page_exists = ? WHERE normalized_slug = ?",
            (int(exists), slug),
        )
        self.db.commit()

    def get_suggested(self, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[LinkCandidate]:
        """Most mentioned topics that have no page yet."""
        rows = self.db.fetchall(
            """
            SELECT * FROM link_candidates
            WHERE page_exists = 0
            ORDER BY mention_count DESC, normalized_slug
            LIMIT ?
            """,
            (limit,),
        )
        return [self._row_to_record(row) for row in rows]

    def list(
        self,
        page_exists: Optional[bool] = None,
        min_mentions: Optional[int] = None,
        tier: Optional[str] = None,
    ) -> list[LinkCandidate]:
        clauses = []
        params: list[Any] = []
        if page_exists is not None:
            clauses.append("page_exists = ?")
            params.append(int(page_exists))
        if min_mentions:
            clauses.append("mention_count >= ?")
            params.append(min_mentions)
        if tier:
            clauses.append("tier = ?")
            params.append(tier)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.db.fetchall(
            f"SELECT * FROM link_candidates {where} ORDER BY mention_count DESC, normalized_slug",
            tuple(params),
        )
        return [self._row_to_record(row) for row in rows]

    def get_stats(self) -> dict[str, int]:
        row = self.db.fetchone(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(page_exists), 0) AS with_pages,
                COALESCE(SUM(tier = 'strong'), 0) AS strong,
                COALESCE(SUM(tier = 'weak'), 0) AS weak,
                COALESCE(SUM(tier = 'ghost'), 0) AS ghost
            FROM link_candidates
            """
        )
        assert row is not None
        return {
            "total": row["total"],
            "with_pages": row["with_pages"],
            "without_pages": row["total"] - row["with_pages"],
            "strong": row["strong"],
            "weak": row["weak"],
            "ghost": row["ghost"],
        }

    def delete(self, slug: str) -> bool:
        cursor = self.db.execute("DELETE FROM link_candidates WHERE normalized_slug = ?", (slug,))
        self.db.commit()
        return cursor.rowcount > 0
