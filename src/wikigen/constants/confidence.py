"""Confidence scoring and content evaluation defaults."""

# =============================================================================
# Mode Baselines
# =============================================================================
# knowledge_only pages have no grounding to measure, so they start from a fixed
# baseline. Hybrid pages scale with retrieval quality; pure_retrieval pages are
# scored from similarity, source count and length.

KNOWLEDGE_ONLY_CONFIDENCE = 0.70
HYBRID_BASE_CONFIDENCE = 0.65
HYBRID_QUALITY_WEIGHT = 0.15

PURE_SIMILARITY_WEIGHT = 0.50
PURE_SOURCE_WEIGHT = 0.25
PURE_LENGTH_WEIGHT = 0.25
PURE_SOURCE_SATURATION = 10
PURE_LENGTH_SATURATION = 3000

# =============================================================================
# Official Source Bonus
# =============================================================================

OFFICIAL_BONUS_RATE = 0.07
OFFICIAL_BONUS_CAP = 0.05

# =============================================================================
# Publishing
# =============================================================================

PUBLISH_THRESHOLD = 0.6

# Badge thresholds: >= HIGH is "high", >= MEDIUM "medium", >= LOW "low".
CONFIDENCE_HIGH = 0.8
CONFIDENCE_MEDIUM = 0.6
CONFIDENCE_LOW = 0.4

# =============================================================================
# Factor Model
# =============================================================================
# Weighted factors for the detailed breakdown view. Weights sum to 1.0.

FACTOR_WEIGHTS = {
    "source_count": 0.30,
    "avg_similarity": 0.30,
    "content_length": 0.15,
    "citation_count": 0.15,
    "topic_coverage": 0.10,
}
FACTOR_SOURCE_SATURATION = 10
FACTOR_LENGTH_SATURATION = 3000
FACTOR_CITATION_SATURATION = 5

STOP_WORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "from",
        "is",
        "are",
        "was",
        "were",
        "be",
        "how",
        "what",
        "when",
        "where",
        "why",
        "do",
        "does",
        "can",
        "my",
        "your",
    }
)

# =============================================================================
# LLM Content Evaluation
# =============================================================================

EVALUATION_CRITERIA = ["completeness", "accuracy", "structure", "actionable", "conciseness"]
EVALUATION_MIN_CRITERION = 1
EVALUATION_MAX_CRITERION = 20
EVALUATION_DEFAULT_CRITERION = 14
EVALUATION_TEMPERATURE = 0.0
EVALUATION_MAX_TOKENS = 1000
EVALUATION_PUBLISH_SCORE = 60
