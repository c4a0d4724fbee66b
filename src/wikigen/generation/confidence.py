"""Confidence scoring for generated pages.

``calculate_confidence`` produces the score stored with every page and used
for the publish gate. The factor model and recommendations below it are
diagnostic views for the API and admin tooling.
"""

from dataclasses import dataclass
from typing import Any

from wikigen.constants.confidence import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    FACTOR_CITATION_SATURATION,
    FACTOR_LENGTH_SATURATION,
    FACTOR_SOURCE_SATURATION,
    FACTOR_WEIGHTS,
    HYBRID_BASE_CONFIDENCE,
    HYBRID_QUALITY_WEIGHT,
    KNOWLEDGE_ONLY_CONFIDENCE,
    OFFICIAL_BONUS_CAP,
    OFFICIAL_BONUS_RATE,
    PUBLISH_THRESHOLD,
    PURE_LENGTH_SATURATION,
    PURE_LENGTH_WEIGHT,
    PURE_SIMILARITY_WEIGHT,
    PURE_SOURCE_SATURATION,
    PURE_SOURCE_WEIGHT,
    STOP_WORDS,
)
from wikigen.generation.quality import GenerationMode


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def official_bonus(official_ratio: float) -> float:
    return min(official_ratio * OFFICIAL_BONUS_RATE, OFFICIAL_BONUS_CAP)


def calculate_confidence(
    mode: GenerationMode,
    avg_similarity: float = 0.0,
    source_count: int = 0,
    content_length: int = 0,
    quality_score: float = 0.0,
    official_ratio: float = 0.0,
) -> float:
    """Score a generated page in [0, 1].

    knowledge_only pages start at a fixed baseline, hybrid pages scale with
    the retrieval quality score, and pure_retrieval pages blend similarity,
    source count and content length. A small bonus for official sources is
    added last.
    """
    if mode == GenerationMode.KNOWLEDGE_ONLY:
        base = KNOWLEDGE_ONLY_CONFIDENCE
    elif mode == GenerationMode.HYBRID:
        base = HYBRID_BASE_CONFIDENCE + quality_score * HYBRID_QUALITY_WEIGHT
    else:
        base = (
            avg_similarity * PURE_SIMILARITY_WEIGHT
            + min(source_count / PURE_SOURCE_SATURATION, 1.0) * PURE_SOURCE_WEIGHT
            + min(content_length / PURE_LENGTH_SATURATION, 1.0) * PURE_LENGTH_WEIGHT
        )

    return _clamp(_clamp(base) + official_bonus(official_ratio))


def is_publishable(score: float, threshold: float = PUBLISH_THRESHOLD) -> bool:
    return score >= threshold


@dataclass
class ConfidenceBadge:
    label: str
    color: str
    description: str


def get_confidence_badge(score: float) -> ConfidenceBadge:
    if score >= CONFIDENCE_HIGH:
        return ConfidenceBadge(
            "High Confidence",
            "green",
            "This information is well-supported by multiple reliable sources.",
        )
    if score >= CONFIDENCE_MEDIUM:
        return ConfidenceBadge(
            "Medium Confidence",
            "blue",
            "This information is supported by sources but may have some gaps.",
        )
    if score >= CONFIDENCE_LOW:
        return ConfidenceBadge(
            "Low Confidence",
            "yellow",
            "This information has limited source support. Use with caution.",
        )
    return ConfidenceBadge(
        "Very Low Confidence",
        "red",
        "This information is speculative or has minimal source support.",
    )


def get_quality_tier(score: float) -> str:
    if score >= CONFIDENCE_HIGH:
        return "excellent"
    if score >= CONFIDENCE_MEDIUM:
        return "good"
    if score >= CONFIDENCE_LOW:
        return "fair"
    return "poor"


def calculate_topic_coverage(query: str, content: str) -> float:
    """Share of meaningful query terms that appear in the content."""
    terms = [t for t in query.lower().split() if len(t) > 2 and t not in STOP_WORDS]
    if not terms:
        return 1.0
    lower = content.lower()
    return sum(1 for t in terms if t in lower) / len(terms)


# =============================================================================
# Factor Model
# =============================================================================


@dataclass
class ConfidenceFactors:
    source_count: int
    avg_similarity: float
    content_length: int
    citation_count: int
    topic_coverage: float

    def normalized(self) -> dict[str, float]:
        return {
            "source_count": min(self.source_count / FACTOR_SOURCE_SATURATION, 1.0),
            "avg_similarity": _clamp(self.avg_similarity),
            "content_length": min(self.content_length / FACTOR_LENGTH_SATURATION, 1.0),
            "citation_count": min(self.citation_count / FACTOR_CITATION_SATURATION, 1.0),
            "topic_coverage": _clamp(self.topic_coverage),
        }


def calculate_factor_confidence(factors: ConfidenceFactors) -> float:
    """Weighted sum of normalized factors, clamped to [0, 1]."""
    scores = factors.normalized()
    return _clamp(sum(scores[name] * weight for name, weight in FACTOR_WEIGHTS.items()))


def analyze_confidence_breakdown(factors: ConfidenceFactors) -> dict[str, Any]:
    """Per-factor scores, weights and contributions with short explanations."""
    scores = factors.normalized()
    explanations = {
        "source_count": f"{factors.source_count} sources found (ideal: 10+)",
        "avg_similarity": f"{factors.avg_similarity * 100:.1f}% average similarity",
        "content_length": f"{factors.content_length} characters (ideal: 3000+)",
        "citation_count": f"{factors.citation_count} citations used (ideal: 5+)",
        "topic_coverage": f"{factors.topic_coverage * 100:.1f}% of query terms covered",
    }
    breakdown = [
        {
            "factor": name,
            "score": scores[name],
            "weight": weight,
            "contribution": scores[name] * weight,
            "explanation": explanations[name],
        }
        for name, weight in FACTOR_WEIGHTS.items()
    ]
    return {
        "overall": _clamp(sum(item["contribution"] for item in breakdown)),
        "breakdown": breakdown,
    }


def get_improvement_recommendations(factors: ConfidenceFactors) -> list[str]:
    recommendations = []
    if factors.source_count < 5:
        recommendations.append("Add more source documents to the knowledge base")
    if factors.avg_similarity < 0.7:
        recommendations.append(
            "Improve search query or add more relevant content to knowledge base"
        )
    if factors.content_length < 1500:
        recommendations.append("Generated content is too brief; adjust prompt or context")
    if factors.citation_count < 3:
        recommendations.append("Encourage more source citations in the prompt")
    if factors.topic_coverage < 0.8:
        recommendations.append("Content may be off-topic; refine search query or context")
    return recommendations
