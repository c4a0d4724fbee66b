"""Page cache lifecycle defaults.

Each value here has a matching key in the [cache] config section and a
WIKI_* environment override.
"""

# =============================================================================
# Time To Live
# =============================================================================

DEFAULT_CACHE_TTL_HOURS = 48
MIN_CACHE_TTL_HOURS = 1
MAX_CACHE_TTL_HOURS = 168

# =============================================================================
# Capacity and Regeneration
# =============================================================================

DEFAULT_MAX_CACHED_PAGES = 1000
DEFAULT_REGEN_BATCH_SIZE = 10
DEFAULT_REGEN_MAX_PAGES = 20
DEFAULT_REGEN_DELAY_MS = 1000
DEFAULT_STALE_PAGE_LIMIT = 20

# =============================================================================
# Analytics
# =============================================================================

DEFAULT_POPULAR_THRESHOLD = 10
DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.4
DEFAULT_MIN_PUBLISH_CONFIDENCE = 0.3
DEFAULT_PAGE_CONFIDENCE = 0.5
STATS_TOP_PAGES = 10

# =============================================================================
# HTTP Caching
# =============================================================================
# Pages at or above the popular threshold are cached downstream for longer.

WIKI_CACHE_CONTROL = "public, s-maxage=3600, stale-while-revalidate=86400"
POPULAR_WIKI_CACHE_CONTROL = "public, s-maxage=21600, stale-while-revalidate=604800"

# =============================================================================
# Warming
# =============================================================================
# Warming requests are spaced out so a cold start does not trip provider rate
# limits. The delay must stay within these bounds.

MIN_WARMING_DELAY_MS = 100
MAX_WARMING_DELAY_MS = 10000
ESTIMATED_GENERATION_MS = 5000

POPULAR_TOPICS = [
    "pregnancy nutrition",
    "morning sickness",
    "prenatal vitamins",
    "exercise during pregnancy",
    "pregnancy warning signs",
    "labour signs",
    "birth plan",
    "pain relief in labour",
    "caesarean recovery",
    "postnatal depression",
    "breastfeeding basics",
    "breastfeeding positions",
    "bottle feeding",
    "formula feeding",
    "expressing breast milk",
    "newborn sleep",
    "safe sleep",
    "swaddling techniques",
    "sids prevention",
    "baby sleep schedule",
    "colic",
    "teething",
    "nappy rash",
    "baby fever",
    "baby vaccinations",
    "tummy time",
    "baby development milestones",
    "starting solid foods",
    "baby led weaning",
    "food allergies in babies",
    "baby growth spurts",
    "baby weight gain",
    "crying baby",
    "burping a baby",
    "baby bath time",
    "umbilical cord care",
    "baby constipation",
    "baby rashes",
]
