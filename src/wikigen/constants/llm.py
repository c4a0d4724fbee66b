"""LLM client configuration.

Default parameters for LLM API calls. These can be overridden per-call
but provide sensible defaults for most use cases.
"""

# =============================================================================
# Generation Defaults
# =============================================================================
# JSON_TEMPERATURE is lower for structured output where consistency matters.

MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
JSON_TEMPERATURE = 0.3

# =============================================================================
# Retries
# =============================================================================
# Transient provider failures (rate limits, timeouts, 5xx) are retried with
# exponential backoff: RETRY_BASE_DELAY * 2**attempt, capped at RETRY_MAX_DELAY.

MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0
