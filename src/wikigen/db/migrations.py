"""Database migrations and schema management for wikigen."""

import logging
import sqlite3

from wikigen.db.connection import Database

logger = logging.getLogger(__name__)

# Schema version for tracking migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Generated wiki pages
-- One row per slug; regenerating a page overwrites it in place
CREATE TABLE IF NOT EXISTS wiki_pages (
    slug TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    excerpt TEXT NOT NULL DEFAULT '',
    confidence_score REAL NOT NULL DEFAULT 0.5,
    published INTEGER NOT NULL DEFAULT 1,  -- Boolean; soft invalidation clears it
    generated_at TEXT NOT NULL,  -- UTC ISO-8601
    ttl_expires_at TEXT NOT NULL,  -- UTC ISO-8601, always after generated_at
    view_count INTEGER NOT NULL DEFAULT 0,
    regeneration_count INTEGER NOT NULL DEFAULT 0,
    metadata TEXT NOT NULL DEFAULT '{}'  -- JSON: query, sources, generation mode, ...
);

CREATE INDEX IF NOT EXISTS idx_wiki_pages_ttl ON wiki_pages(ttl_expires_at);
CREATE INDEX IF NOT EXISTS idx_wiki_pages_views ON wiki_pages(view_count DESC);

-- Topics mentioned by pages that may not have a page of their own yet
CREATE TABLE IF NOT EXISTS link_candidates (
    normalized_slug TEXT PRIMARY KEY,
    entity TEXT NOT NULL,  -- Display text as first seen
    tier TEXT NOT NULL DEFAULT 'ghost',  -- 'ghost', 'weak', 'strong'; never downgraded
    mention_count INTEGER NOT NULL DEFAULT 0,
    mentioned_in TEXT NOT NULL DEFAULT '[]',  -- JSON list of page slugs
    page_exists INTEGER NOT NULL DEFAULT 0,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_link_candidates_mentions
    ON link_candidates(page_exists, mention_count DESC);

-- Directed links between pages (to_slug may not exist yet)
CREATE TABLE IF NOT EXISTS page_connections (
    from_slug TEXT NOT NULL,
    to_slug TEXT NOT NULL,
    link_text TEXT NOT NULL,
    strength REAL NOT NULL DEFAULT 0.5,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (from_slug, to_slug)
);

CREATE INDEX IF NOT EXISTS idx_page_connections_to ON page_connections(to_slug);
"""


def _current_version(db: Database) -> int:
    try:
        result = db.execute(
            "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
        ).fetchone()
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return 0
    return result[0] if result else 0


def run_migrations(db: Database) -> None:
    """Run database migrations to set up or upgrade schema.

    Args:
        db: Database connection to run migrations on.
    """
    current_version = _current_version(db)

    if current_version >= SCHEMA_VERSION:
        return

    # executescript auto-commits, so the version insert is handled separately
    db.executescript(SCHEMA_SQL)
    logger.info(f"Applied schema version {SCHEMA_VERSION} (was {current_version})")

    db.execute(
        "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    db.commit()
