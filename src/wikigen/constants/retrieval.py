"""Retrieval, diversification and source prioritization defaults.

Search runs against the vector store at a deliberately low similarity
threshold; weak matches are filtered later by the quality assessor rather
than discarded up front.
"""

# =============================================================================
# Search Thresholds
# =============================================================================
# The first search uses INITIAL_SIMILARITY_THRESHOLD. When it returns nothing
# at all a single retry is made at FALLBACK_SIMILARITY_THRESHOLD before the
# generator gives up on retrieval and writes from general knowledge.

INITIAL_SIMILARITY_THRESHOLD = 0.35
FALLBACK_SIMILARITY_THRESHOLD = 0.25
SEARCH_LIMIT = 30

# =============================================================================
# Diversification
# =============================================================================
# A single long document can dominate the top results. Capping chunks per
# document keeps several sources represented in the final set.

DEFAULT_MAX_RESULTS = 15
DEFAULT_MAX_PER_SOURCE = 3

# =============================================================================
# Official Source Prioritization
# =============================================================================
# Chunks from recognised health organisations get a multiplicative boost when
# they are close enough to the best non-official match. The official share of
# the final set is capped so books and other references still appear.

OFFICIAL_BOOST_FACTOR = 1.25
MIN_OFFICIAL_SIMILARITY = 0.30
MAX_SIMILARITY_GAP = 0.15
MAX_OFFICIAL_RATIO = 0.7

OFFICIAL_ORGS = [
    "NHS",
    "NICE",
    "RCPCH",
    "RCOG",
    "PHE",
    "UKHSA",
    "CDC",
    "AAP",
    "ACOG",
    "WHO",
    "UNICEF",
]

# Source types that can never count as official, whatever the author says.
NON_OFFICIAL_SOURCE_TYPES = frozenset({"book"})

# Pattern fallbacks only apply to web-style sources.
PATTERN_MATCH_SOURCE_TYPES = frozenset({"article", "website"})

OFFICIAL_ORG_NAMES = {
    "NHS": "National Health Service (UK)",
    "NICE": "National Institute for Health and Care Excellence",
    "RCPCH": "Royal College of Paediatrics and Child Health",
    "RCOG": "Royal College of Obstetricians and Gynaecologists",
    "PHE": "Public Health England",
    "UKHSA": "UK Health Security Agency",
    "CDC": "Centers for Disease Control and Prevention",
    "AAP": "American Academy of Pediatrics",
    "ACOG": "American College of Obstetricians and Gynecologists",
    "WHO": "World Health Organization",
    "UNICEF": "UNICEF",
}

# =============================================================================
# Web Augmentation
# =============================================================================
# Queries touching these topics are safety-relevant. When retrieval found no
# official source for them, authoritative sites are fetched as a supplement.

HEALTH_KEYWORDS = [
    "fever",
    "temperature",
    "sick",
    "ill",
    "vaccine",
    "vaccination",
    "immunisation",
    "safe",
    "safety",
    "danger",
    "risk",
    "emergency",
    "hospital",
    "doctor",
    "weight",
    "growth",
    "development",
    "milestone",
    "feeding",
    "breastfeeding",
    "sleep",
    "sids",
    "cry",
    "rash",
    "allergy",
    "medicine",
    "medication",
]

AUTHORITATIVE_DOMAINS = ["nhs.uk", "cdc.gov", "who.int"]
WEB_FETCH_TIMEOUT_SECONDS = 5.0
WEB_MAX_CHARS_PER_SOURCE = 2000
WEB_CACHE_TTL_HOURS = 24
WEB_USER_AGENT = "Mozilla/5.0 (compatible; wikigen/0.1)"
