"""Context assembly for generation prompts.

Takes the diversified chunk set, removes duplicates, optionally re-ranks,
and fits what remains into a token budget. The result is the text block
handed to the generation prompt plus the list of cited sources.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from wikigen.constants.generation import (
    CONTEXT_SEPARATOR,
    DEDUP_JACCARD_THRESHOLD,
    DEFAULT_ASSEMBLY_TOKENS,
    HIGH_QUALITY_SIMILARITY,
    MIN_QUERY_TERM_LENGTH,
    MIN_TRUNCATION_TOKENS,
    QUERY_TERM_BONUS,
    SAME_DOCUMENT_PENALTY,
)
from wikigen.retrieval.diversify import group_chunks_by_document, select_diverse_sources
from wikigen.retrieval.models import Chunk
from wikigen.retrieval.tokens import fit_chunks_to_token_budget

logger = logging.getLogger(__name__)


@dataclass
class AssembledContext:
    """Context text ready for a prompt.

    Attributes:
        context: Chunk texts joined by a horizontal-rule separator.
        sources: Unique citation labels, in first-use order.
        tokens_used: Estimated tokens of the included chunk texts.
        chunks_used: Number of chunks included (a truncated tail counts).
        truncated: True when whole chunks had to be dropped or cut.
        document_ids: Unique documents behind the included chunks.
    """

    context: str = ""
    sources: list[str] = field(default_factory=list)
    tokens_used: int = 0
    chunks_used: int = 0
    truncated: bool = False
    document_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context.strip()


def _token_set(text: str) -> set[str]:
    return set(text.lower().split())


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the whitespace token sets of two strings."""
    set_a, set_b = _token_set(a), _token_set(b)
    if not set_a and not set_b:
        return 1.0
    union = set_a | set_b
    return len(set_a & set_b) / len(union)


def deduplicate_chunks(
    chunks: list[Chunk], threshold: float = DEDUP_JACCARD_THRESHOLD
) -> list[Chunk]:
    """Drop exact and near-duplicate chunks, keeping the first occurrence.

    Exact duplicates compare stripped, lower-cased content. Near duplicates
    have a token-set Jaccard similarity above ``threshold`` with an already
    accepted chunk.
    """
    seen_exact: set[str] = set()
    accepted: list[Chunk] = []

    for chunk in chunks:
        normalized = chunk.content.strip().lower()
        if normalized in seen_exact:
            continue
        if any(jaccard_similarity(chunk.content, kept.content) > threshold for kept in accepted):
            continue
        seen_exact.add(normalized)
        accepted.append(chunk)

    removed = len(chunks) - len(accepted)
    if removed:
        logger.debug(f"Removed {removed} duplicate chunks")
    return accepted


def rank_chunks(chunks: list[Chunk], query: str) -> list[Chunk]:
    """Re-rank chunks for variety and query-term coverage.

    Score is the similarity, less a penalty for every earlier chunk from the
    same document, plus a bonus for each query term (longer than three
    characters) found in the chunk.
    """
    terms = [t for t in query.lower().split() if len(t) > MIN_QUERY_TERM_LENGTH]
    doc_counts: dict[str, int] = {}
    scored: list[tuple[float, int, Chunk]] = []

    for index, chunk in enumerate(chunks):
        seen = doc_counts.get(chunk.document_id, 0)
        doc_counts[chunk.document_id] = seen + 1
        content = chunk.content.lower()
        matches = sum(1 for term in terms if term in content)
        score = chunk.similarity - seen * SAME_DOCUMENT_PENALTY + matches * QUERY_TERM_BONUS
        scored.append((score, index, chunk))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [chunk for _, _, chunk in scored]


def assemble_context(
    chunks: list[Chunk],
    max_tokens: int = DEFAULT_ASSEMBLY_TOKENS,
    query: str | None = None,
    dedup_threshold: float = DEDUP_JACCARD_THRESHOLD,
    min_truncation_tokens: int = MIN_TRUNCATION_TOKENS,
) -> AssembledContext:
    """Deduplicate, optionally rank, and budget chunks into one context block.

    Args:
        chunks: Candidate chunks, best first.
        max_tokens: Token budget for the chunk texts.
        query: When given, chunks are re-ranked with ``rank_chunks``.
        dedup_threshold: Jaccard similarity treated as a duplicate.
        min_truncation_tokens: Remaining budget needed to add a cut-down chunk.
    """
    if not chunks:
        return AssembledContext()

    unique = deduplicate_chunks(chunks, dedup_threshold)
    ordered = rank_chunks(unique, query) if query else unique

    texts, tokens_used, truncated = fit_chunks_to_token_budget(
        [c.content for c in ordered], max_tokens, min_truncation_tokens
    )
    included = ordered[: len(texts)]

    sources: list[str] = []
    document_ids: list[str] = []
    for chunk in included:
        label = chunk.source_label
        if label and label not in sources:
            sources.append(label)
        if chunk.document_id not in document_ids:
            document_ids.append(chunk.document_id)

    return AssembledContext(
        context=CONTEXT_SEPARATOR.join(texts),
        sources=sources,
        tokens_used=tokens_used,
        chunks_used=len(texts),
        truncated=truncated,
        document_ids=document_ids,
    )


def format_context_for_prompt(assembled: AssembledContext) -> str:
    """Wrap context in tags and append a numbered source list."""
    if assembled.is_empty:
        return ""
    parts = [f"<context>\n{assembled.context}\n</context>"]
    if assembled.sources:
        numbered = "\n".join(f"{i}. {source}" for i, source in enumerate(assembled.sources, 1))
        parts.append(f"Sources:\n{numbered}")
    return "\n\n".join(parts)


def select_diverse_chunks(
    chunks: list[Chunk], max_chunks: int = 10, max_per_document: int = 2
) -> list[Chunk]:
    """Smaller diversified selection for tight prompts."""
    return select_diverse_sources(chunks, max_per_source=max_per_document, max_total=max_chunks)


def analyze_context_quality(chunks: list[Chunk]) -> dict[str, Any]:
    """Summary numbers describing how good a chunk set is."""
    if not chunks:
        return {
            "chunk_count": 0,
            "avg_similarity": 0.0,
            "min_similarity": 0.0,
            "max_similarity": 0.0,
            "unique_documents": 0,
            "high_quality_count": 0,
            "avg_chunks_per_document": 0.0,
        }
    sims = [c.similarity for c in chunks]
    groups = group_chunks_by_document(chunks)
    return {
        "chunk_count": len(chunks),
        "avg_similarity": sum(sims) / len(sims),
        "min_similarity": min(sims),
        "max_similarity": max(sims),
        "unique_documents": len(groups),
        "high_quality_count": sum(1 for s in sims if s > HIGH_QUALITY_SIMILARITY),
        "avg_chunks_per_document": len(chunks) / len(groups),
    }
