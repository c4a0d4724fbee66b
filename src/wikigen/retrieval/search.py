"""Chunk search against the vector store, with threshold retry."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from wikigen.constants.retrieval import (
    DEFAULT_MAX_PER_SOURCE,
    DEFAULT_MAX_RESULTS,
    FALLBACK_SIMILARITY_THRESHOLD,
    INITIAL_SIMILARITY_THRESHOLD,
    MAX_OFFICIAL_RATIO,
    MAX_SIMILARITY_GAP,
    MIN_OFFICIAL_SIMILARITY,
    OFFICIAL_BOOST_FACTOR,
    SEARCH_LIMIT,
)
from wikigen.retrieval.diversify import select_diverse_sources, unique_document_count
from wikigen.retrieval.models import Chunk, SearchStats
from wikigen.retrieval.prioritization import (
    PrioritizationStats,
    get_prioritization_stats,
    prioritize_sources,
)
from wikigen.vectorstore.store import VectorStore

logger = logging.getLogger(__name__)


class Searcher(Protocol):
    """Anything that can return chunks ranked by similarity."""

    async def search(
        self,
        query: str,
        threshold: float,
        limit: int,
        document_ids: list[str] | None = None,
        source_types: list[str] | None = None,
    ) -> list[Chunk]: ...


def _where_filter(
    document_ids: list[str] | None, source_types: list[str] | None
) -> dict[str, Any] | None:
    clauses: list[dict[str, Any]] = []
    if document_ids:
        clauses.append({"document_id": {"$in": list(document_ids)}})
    if source_types:
        clauses.append({"source_type": {"$in": list(source_types)}})
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChunkSearcher:
    """Searcher backed by the ChromaDB vector store."""

    def __init__(self, store: VectorStore):
        self.store = store

    def _search_sync(
        self,
        query: str,
        threshold: float,
        limit: int,
        document_ids: list[str] | None,
        source_types: list[str] | None,
    ) -> list[Chunk]:
        if self.store.count() == 0:
            return []
        results = self.store.query(
            query,
            n_results=limit,
            where=_where_filter(document_ids, source_types),
        )

        ids = results.get("ids", [[]])[0]
        documents = results.get("documents", [[]])[0]
        metadatas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        chunks = []
        for chunk_id, text, meta, distance in zip(ids, documents, metadatas, distances):
            similarity = max(0.0, min(1.0, 1.0 - float(distance)))
            if similarity < threshold:
                continue
            meta = meta or {}
            chunks.append(
                Chunk(
                    chunk_id=chunk_id,
                    document_id=str(meta.get("document_id", chunk_id)),
                    content=text or "",
                    similarity=similarity,
                    document_title=str(meta.get("document_title", "")),
                    document_author=meta.get("document_author") or None,
                    source_type=meta.get("source_type") or None,
                    metadata=dict(meta),
                )
            )
        chunks.sort(key=lambda c: c.similarity, reverse=True)
        return chunks

    async def search(
        self,
        query: str,
        threshold: float,
        limit: int,
        document_ids: list[str] | None = None,
        source_types: list[str] | None = None,
    ) -> list[Chunk]:
        """Return chunks with similarity >= threshold, best first."""
        return await asyncio.to_thread(
            self._search_sync, query, threshold, limit, document_ids, source_types
        )

    async def batch_search(
        self, queries: list[str], threshold: float = INITIAL_SIMILARITY_THRESHOLD, limit: int = 10
    ) -> dict[str, list[Chunk]]:
        """Run several searches concurrently, keyed by query."""
        results = await asyncio.gather(*(self.search(q, threshold, limit) for q in queries))
        return dict(zip(queries, results))

    async def can_generate_page(self, query: str, threshold: float = 0.5) -> bool:
        """Quick check: is there at least one strong match for the query?"""
        return bool(await self.search(query, threshold, 1))


@dataclass
class RetrievalResult:
    """Diversified chunks plus the statistics gathered along the way."""

    chunks: list[Chunk] = field(default_factory=list)
    search_stats: SearchStats = field(default_factory=SearchStats)
    prioritization: PrioritizationStats | None = None

    @property
    def official_count(self) -> int:
        return self.prioritization.official if self.prioritization else 0


class Retriever:
    """Search, prioritize official sources, then diversify.

    Retrieval never fails the generation: an empty result simply leads to
    knowledge-only generation downstream.
    """

    def __init__(
        self,
        searcher: Searcher,
        initial_threshold: float = INITIAL_SIMILARITY_THRESHOLD,
        fallback_threshold: float = FALLBACK_SIMILARITY_THRESHOLD,
        search_limit: int = SEARCH_LIMIT,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_per_source: int = DEFAULT_MAX_PER_SOURCE,
        boost_factor: float = OFFICIAL_BOOST_FACTOR,
        min_official_similarity: float = MIN_OFFICIAL_SIMILARITY,
        max_similarity_gap: float = MAX_SIMILARITY_GAP,
        max_official_ratio: float = MAX_OFFICIAL_RATIO,
    ):
        self.searcher = searcher
        self.initial_threshold = initial_threshold
        self.fallback_threshold = fallback_threshold
        self.search_limit = search_limit
        self.max_results = max_results
        self.max_per_source = max_per_source
        self.boost_factor = boost_factor
        self.min_official_similarity = min_official_similarity
        self.max_similarity_gap = max_similarity_gap
        self.max_official_ratio = max_official_ratio

    @classmethod
    def from_settings(cls, searcher: Searcher, settings) -> "Retriever":
        r = settings.retrieval
        return cls(
            searcher,
            initial_threshold=r.initial_threshold,
            fallback_threshold=r.fallback_threshold,
            search_limit=r.search_limit,
            max_results=r.max_results,
            max_per_source=r.max_per_source,
            boost_factor=r.official_boost_factor,
            min_official_similarity=r.min_official_similarity,
            max_similarity_gap=r.max_similarity_gap,
            max_official_ratio=r.max_official_ratio,
        )

    async def search_with_fallback(self, query: str) -> tuple[list[Chunk], SearchStats]:
        """Search at the initial threshold, retrying once lower if nothing matched."""
        stats = SearchStats(threshold_used=self.initial_threshold)
        chunks = await self.searcher.search(query, self.initial_threshold, self.search_limit)

        if not chunks:
            logger.info(
                f"No chunks above {self.initial_threshold} for '{query}', "
                f"retrying at {self.fallback_threshold}"
            )
            chunks = await self.searcher.search(query, self.fallback_threshold, self.search_limit)
            stats.threshold_used = self.fallback_threshold
            stats.retried = True

        stats.raw_count = len(chunks)
        return chunks, stats

    async def retrieve(self, query: str) -> RetrievalResult:
        chunks, stats = await self.search_with_fallback(query)
        if not chunks:
            return RetrievalResult(chunks=[], search_stats=stats, prioritization=None)

        prioritized, _ = prioritize_sources(
            chunks,
            boost_factor=self.boost_factor,
            min_similarity=self.min_official_similarity,
            max_gap=self.max_similarity_gap,
            max_official_ratio=self.max_official_ratio,
            max_results=self.search_limit,
        )
        diverse = select_diverse_sources(
            prioritized, max_per_source=self.max_per_source, max_total=self.max_results
        )

        stats.diversified_count = len(diverse)
        stats.unique_documents = unique_document_count(diverse)

        final_stats = get_prioritization_stats(diverse)
        logger.info(
            f"Retrieved {stats.raw_count} chunks for '{query}', kept {len(diverse)} "
            f"from {stats.unique_documents} documents ({final_stats.official} official)"
        )
        return RetrievalResult(chunks=diverse, search_stats=stats, prioritization=final_stats)
