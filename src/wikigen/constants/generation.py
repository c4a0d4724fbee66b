"""Context assembly and page generation defaults."""

# =============================================================================
# Token Estimation
# =============================================================================
# A character-ratio estimate is good enough for budgeting. English prose
# averages a little under four characters per token; 3.5 errs on the side of
# overestimating so assembled context never overruns the model window.

CHARS_PER_TOKEN = 3.5

# =============================================================================
# Context Assembly
# =============================================================================
# MAX_CONTEXT_TOKENS is the budget used by the generator. Chunks whose token
# sets overlap more than DEDUP_JACCARD_THRESHOLD with an accepted chunk are
# treated as duplicates. A truncated tail chunk is only worth appending when
# at least MIN_TRUNCATION_TOKENS of budget remain.

MAX_CONTEXT_TOKENS = 8000
DEFAULT_ASSEMBLY_TOKENS = 6000
DEDUP_JACCARD_THRESHOLD = 0.95
MIN_TRUNCATION_TOKENS = 100
SENTENCE_CUT_MIN_RATIO = 0.8
CONTEXT_SEPARATOR = "\n\n---\n\n"

# Re-ranking adjustments
SAME_DOCUMENT_PENALTY = 0.05
QUERY_TERM_BONUS = 0.02
MIN_QUERY_TERM_LENGTH = 3

# =============================================================================
# Quality Assessment
# =============================================================================
# Default decision table for choosing a generation mode. These mirror the
# [quality] config section and are used when settings are unavailable.

HIGH_QUALITY_SIMILARITY = 0.5
PURE_RETRIEVAL_MIN_AVG_SIMILARITY = 0.60
PURE_RETRIEVAL_MIN_HIGH_QUALITY = 5
PURE_RETRIEVAL_MIN_SOURCES = 2
HYBRID_MIN_AVG_SIMILARITY = 0.45
HYBRID_MIN_HIGH_QUALITY = 3
HYBRID_MIN_SOURCES = 1
LOW_QUALITY_MIN_COUNT = 3
LOW_QUALITY_MIN_AVG_SIMILARITY = 0.35

# =============================================================================
# Generation
# =============================================================================

GENERATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 4096
MIN_CONTENT_LENGTH = 100
EXCERPT_LENGTH = 200

# Query validation
MIN_QUERY_LENGTH = 3
MAX_QUERY_LENGTH = 200
QUERY_PATTERN = r"^[\w\s\-.,!?()'\"]+$"

# Rough per-million-token prices used for cost estimates (USD).
INPUT_PRICE_PER_MILLION = 3.0
OUTPUT_PRICE_PER_MILLION = 15.0
ESTIMATED_OUTPUT_TOKENS = 2000
