"""Entity extraction and link graph defaults."""

# =============================================================================
# Confidence Tiers
# =============================================================================
# Extraction labels entities strong/medium/weak. Link candidates only keep
# three tiers (ghost < weak < strong) and never downgrade. Edge strength in the
# page graph is derived from the extraction tier.

TIER_ORDER = {"ghost": 0, "weak": 1, "strong": 2}
ENTITY_CONFIDENCE_RANK = {"strong": 3, "medium": 2, "weak": 1, "ghost": 0}
CANDIDATE_TIER_FOR_ENTITY = {"strong": "strong", "medium": "weak", "weak": "weak", "ghost": "ghost"}
TIER_STRENGTH = {"strong": 1.0, "medium": 0.6, "weak": 0.3, "ghost": 0.1}

# Reciprocal and repeated links reinforce an edge by half the new strength.
REINFORCEMENT_FACTOR = 0.5

# =============================================================================
# Extraction
# =============================================================================

MIN_ENTITY_LENGTH = 3
MIN_ENTITY_SLUG_LENGTH = 2
MAX_ENTITY_CONTEXT = 200
ENTITY_EXTRACTION_TEMPERATURE = 0.0
ENTITY_EXTRACTION_MAX_TOKENS = 2000
ENTITY_CONTENT_LIMIT = 8000

GENERIC_TERMS = frozenset({"baby", "child", "parent", "mom", "dad", "help", "care", "need"})

WIKI_LINK_PREFIX = "/wiki/"

# =============================================================================
# Graph Queries
# =============================================================================

DEFAULT_RELATED_LIMIT = 10
DEFAULT_BACKLINK_LIMIT = 20
DEFAULT_SUGGESTION_LIMIT = 20
TOP_CONNECTED_LIMIT = 10
