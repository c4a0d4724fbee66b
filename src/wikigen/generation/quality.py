"""Retrieval quality assessment and generation-mode selection."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from wikigen.constants.generation import (
    HIGH_QUALITY_SIMILARITY,
    HYBRID_MIN_AVG_SIMILARITY,
    HYBRID_MIN_HIGH_QUALITY,
    HYBRID_MIN_SOURCES,
    LOW_QUALITY_MIN_AVG_SIMILARITY,
    LOW_QUALITY_MIN_COUNT,
    PURE_RETRIEVAL_MIN_AVG_SIMILARITY,
    PURE_RETRIEVAL_MIN_HIGH_QUALITY,
    PURE_RETRIEVAL_MIN_SOURCES,
)
from wikigen.retrieval.models import Chunk


class GenerationMode(str, Enum):
    """How strongly a page is grounded in retrieved sources."""

    PURE_RETRIEVAL = "pure_retrieval"
    HYBRID = "hybrid"
    KNOWLEDGE_ONLY = "knowledge_only"


@dataclass(frozen=True)
class QualityThresholds:
    """Decision table for ``assess_quality``. First matching row wins."""

    high_quality_similarity: float = HIGH_QUALITY_SIMILARITY
    pure_min_avg_similarity: float = PURE_RETRIEVAL_MIN_AVG_SIMILARITY
    pure_min_high_quality: int = PURE_RETRIEVAL_MIN_HIGH_QUALITY
    pure_min_sources: int = PURE_RETRIEVAL_MIN_SOURCES
    hybrid_min_avg_similarity: float = HYBRID_MIN_AVG_SIMILARITY
    hybrid_min_high_quality: int = HYBRID_MIN_HIGH_QUALITY
    hybrid_min_sources: int = HYBRID_MIN_SOURCES
    low_quality_min_count: int = LOW_QUALITY_MIN_COUNT
    low_quality_min_avg_similarity: float = LOW_QUALITY_MIN_AVG_SIMILARITY

    @classmethod
    def from_settings(cls, settings) -> "QualityThresholds":
        q = settings.quality
        return cls(
            high_quality_similarity=q.high_quality_similarity,
            pure_min_avg_similarity=q.pure_min_avg_similarity,
            pure_min_high_quality=q.pure_min_high_quality,
            pure_min_sources=q.pure_min_sources,
            hybrid_min_avg_similarity=q.hybrid_min_avg_similarity,
            hybrid_min_high_quality=q.hybrid_min_high_quality,
            hybrid_min_sources=q.hybrid_min_sources,
            low_quality_min_count=q.low_quality_min_count,
            low_quality_min_avg_similarity=q.low_quality_min_avg_similarity,
        )


@dataclass
class QualityAssessment:
    mode: GenerationMode
    avg_similarity: float
    unique_source_count: int
    high_quality_count: int
    chunk_count: int
    quality_score: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "avg_similarity": round(self.avg_similarity, 4),
            "unique_source_count": self.unique_source_count,
            "high_quality_count": self.high_quality_count,
            "chunk_count": self.chunk_count,
            "quality_score": round(self.quality_score, 4),
            "reason": self.reason,
        }


def calculate_quality_score(
    avg_similarity: float, unique_sources: int, high_quality_count: int, count: int
) -> float:
    """Blend similarity, source variety and high-quality share into [0, 1]."""
    if count == 0:
        return 0.0
    return (
        avg_similarity * 0.5
        + min(unique_sources / 3, 1.0) * 0.3
        + (high_quality_count / count) * 0.2
    )


def assess_quality(
    chunks: list[Chunk], thresholds: QualityThresholds | None = None
) -> QualityAssessment:
    """Pick the generation mode for a diversified chunk set."""
    t = thresholds or QualityThresholds()
    count = len(chunks)

    if count == 0:
        return QualityAssessment(
            mode=GenerationMode.KNOWLEDGE_ONLY,
            avg_similarity=0.0,
            unique_source_count=0,
            high_quality_count=0,
            chunk_count=0,
            quality_score=0.0,
            reason="No relevant sources found; generating from general knowledge",
        )

    avg = sum(c.similarity for c in chunks) / count
    unique = len({c.document_id for c in chunks})
    high_quality = sum(1 for c in chunks if c.similarity > t.high_quality_similarity)
    score = calculate_quality_score(avg, unique, high_quality, count)

    if (
        avg >= t.pure_min_avg_similarity
        and high_quality >= t.pure_min_high_quality
        and unique >= t.pure_min_sources
    ):
        mode = GenerationMode.PURE_RETRIEVAL
        reason = (
            f"High-quality sources: {high_quality} strong matches across {unique} "
            f"documents (avg similarity {avg:.2f})"
        )
    elif (
        avg >= t.hybrid_min_avg_similarity
        and high_quality >= t.hybrid_min_high_quality
        and unique >= t.hybrid_min_sources
    ):
        mode = GenerationMode.HYBRID
        reason = (
            f"Moderate sources: {high_quality} strong matches (avg similarity {avg:.2f}); "
            "supplementing with general knowledge"
        )
    elif count >= t.low_quality_min_count and avg >= t.low_quality_min_avg_similarity:
        mode = GenerationMode.HYBRID
        reason = (
            f"Low-quality sources: {count} weak matches (avg similarity {avg:.2f}); "
            "relying mostly on general knowledge"
        )
    else:
        mode = GenerationMode.KNOWLEDGE_ONLY
        reason = f"Insufficient sources: {count} matches (avg similarity {avg:.2f})"

    return QualityAssessment(
        mode=mode,
        avg_similarity=avg,
        unique_source_count=unique,
        high_quality_count=high_quality,
        chunk_count=count,
        quality_score=score,
        reason=reason,
    )
