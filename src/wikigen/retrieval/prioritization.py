"""Official source detection and prioritization.

Chunks written by recognised health organisations are preferred over other
sources when they are nearly as relevant. Three steps run in order:

1. ``is_official_source`` classifies each chunk.
2. ``apply_official_boost`` multiplies the similarity of official chunks that
   are within ``MAX_SIMILARITY_GAP`` of the best non-official chunk.
3. ``enforce_diversity`` caps the official share of the final set.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

from wikigen.constants.retrieval import (
    HEALTH_KEYWORDS,
    MAX_OFFICIAL_RATIO,
    MAX_SIMILARITY_GAP,
    MIN_OFFICIAL_SIMILARITY,
    NON_OFFICIAL_SOURCE_TYPES,
    OFFICIAL_BOOST_FACTOR,
    OFFICIAL_ORG_NAMES,
    OFFICIAL_ORGS,
    PATTERN_MATCH_SOURCE_TYPES,
)
from wikigen.retrieval.models import Chunk

logger = logging.getLogger(__name__)


@dataclass
class PrioritizationStats:
    """Official/non-official composition of a result set."""

    total: int
    official: int
    non_official: int
    official_ratio: float
    boosted_count: int
    avg_official_similarity: float
    avg_non_official_similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "official": self.official,
            "non_official": self.non_official,
            "official_ratio": round(self.official_ratio, 4),
            "boosted_count": self.boosted_count,
            "avg_official_similarity": round(self.avg_official_similarity, 4),
            "avg_non_official_similarity": round(self.avg_non_official_similarity, 4),
        }


def _matches_pattern(author: str, title: str) -> bool:
    return (
        "NATIONAL HEALTH" in author
        or "NHS CHOICES" in title
        or "WORLD HEALTH" in author
        or "WORLD HEALTH" in title
    )


def is_official_source(chunk: Chunk) -> bool:
    """Whether the chunk comes from a recognised health organisation.

    Books are never official. Otherwise the author or title must name one of
    ``OFFICIAL_ORGS``; articles and websites may also match by pattern.
    """
    source_type = (chunk.source_type or "").lower()
    if source_type in NON_OFFICIAL_SOURCE_TYPES:
        return False

    author = (chunk.document_author or "").upper()
    title = (chunk.document_title or "").upper()

    if any(org in author or org in title for org in OFFICIAL_ORGS):
        return True

    if source_type in PATTERN_MATCH_SOURCE_TYPES:
        return _matches_pattern(author, title)

    return False


def get_official_org_name(chunk: Chunk) -> str | None:
    """Full name of the organisation behind an official chunk."""
    if not is_official_source(chunk):
        return None
    author = (chunk.document_author or "").upper()
    title = (chunk.document_title or "").upper()
    for org in OFFICIAL_ORGS:
        if org in author or org in title:
            return OFFICIAL_ORG_NAMES[org]
    if "WORLD HEALTH" in author or "WORLD HEALTH" in title:
        return OFFICIAL_ORG_NAMES["WHO"]
    return OFFICIAL_ORG_NAMES["NHS"]


def apply_official_boost(
    chunks: list[Chunk],
    boost_factor: float = OFFICIAL_BOOST_FACTOR,
    min_similarity: float = MIN_OFFICIAL_SIMILARITY,
    max_gap: float = MAX_SIMILARITY_GAP,
) -> list[Chunk]:
    """Mark official chunks and boost the ones close to the best non-official.

    Every returned chunk has ``is_official`` and ``original_similarity`` set.
    The result is re-sorted by (possibly boosted) similarity.
    """
    flagged = [
        chunk.with_similarity(
            chunk.similarity,
            is_official=is_official_source(chunk),
            original_similarity=chunk.similarity,
            boosted=False,
        )
        for chunk in chunks
    ]

    non_official = [c.similarity for c in flagged if not c.is_official]
    best_non_official = max(non_official) if non_official else 0.0

    result = []
    for chunk in flagged:
        if chunk.is_official and chunk.similarity >= min_similarity:
            gap = best_non_official - chunk.similarity
            if gap <= max_gap:
                chunk = chunk.with_similarity(
                    min(chunk.similarity * boost_factor, 1.0), boosted=True
                )
        result.append(chunk)

    result.sort(key=lambda c: c.similarity, reverse=True)
    return result


def get_prioritization_stats(chunks: list[Chunk]) -> PrioritizationStats:
    official = [c for c in chunks if c.is_official]
    non_official = [c for c in chunks if not c.is_official]
    official_sims = [
        c.original_similarity if c.original_similarity is not None else c.similarity
        for c in official
    ]
    non_official_sims = [c.similarity for c in non_official]
    total = len(chunks)
    return PrioritizationStats(
        total=total,
        official=len(official),
        non_official=len(non_official),
        official_ratio=len(official) / total if total else 0.0,
        boosted_count=sum(1 for c in chunks if c.boosted),
        avg_official_similarity=sum(official_sims) / len(official_sims) if official_sims else 0.0,
        avg_non_official_similarity=(
            sum(non_official_sims) / len(non_official_sims) if non_official_sims else 0.0
        ),
    )


def enforce_diversity(
    chunks: list[Chunk],
    max_official_ratio: float = MAX_OFFICIAL_RATIO,
    max_results: int = 30,
) -> list[Chunk]:
    """Cap the official share of the result set.

    If the official fraction exceeds ``max_official_ratio``, official chunks
    are truncated to ``floor(max_results * ratio)`` and the best non-official
    chunks fill the rest.
    """
    stats = get_prioritization_stats(chunks)
    if stats.official_ratio <= max_official_ratio:
        return chunks[:max_results]

    max_official = math.floor(max_results * max_official_ratio)
    target_non_official = max_results - max_official

    official = [c for c in chunks if c.is_official][:max_official]
    non_official = [c for c in chunks if not c.is_official][:target_non_official]

    combined = official + non_official
    combined.sort(key=lambda c: c.similarity, reverse=True)
    logger.debug(
        f"Official ratio {stats.official_ratio:.2f} above {max_official_ratio}; "
        f"kept {len(official)} official and {len(non_official)} other chunks"
    )
    return combined[:max_results]


def prioritize_sources(
    chunks: list[Chunk],
    boost_factor: float = OFFICIAL_BOOST_FACTOR,
    min_similarity: float = MIN_OFFICIAL_SIMILARITY,
    max_gap: float = MAX_SIMILARITY_GAP,
    max_official_ratio: float = MAX_OFFICIAL_RATIO,
    max_results: int = 30,
) -> tuple[list[Chunk], PrioritizationStats]:
    """Boost and cap official sources in one pass."""
    boosted = apply_official_boost(chunks, boost_factor, min_similarity, max_gap)
    diverse = enforce_diversity(boosted, max_official_ratio, max_results)
    return diverse, get_prioritization_stats(diverse)


def contains_health_keyword(query: str) -> bool:
    words = query.lower()
    return any(keyword in words for keyword in HEALTH_KEYWORDS)


def should_use_web_augmentation(chunks: list[Chunk], query: str) -> bool:
    """Fetch authoritative web sources only for health topics lacking any."""
    if any(c.is_official for c in chunks):
        return False
    return contains_health_keyword(query)


def build_authoritative_search_query(query: str) -> str:
    """Search phrasing that steers a web search toward official guidance."""
    return f"{query.strip()} official health guidance NHS CDC WHO"
