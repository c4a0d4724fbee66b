"""Request throttling defaults."""

# =============================================================================
# Rate Limiting
# =============================================================================
# Sliding window per caller: at most RATE_LIMIT_MAX_REQUESTS generations in
# any RATE_LIMIT_WINDOW_SECONDS span.

RATE_LIMIT_WINDOW_SECONDS = 60.0
RATE_LIMIT_MAX_REQUESTS = 10

# =============================================================================
# Cooldown
# =============================================================================
# After a successful generation the same slug cannot be regenerated again
# until the cooldown elapses.

COOLDOWN_SECONDS = 30.0

# =============================================================================
# Scheduler
# =============================================================================

SCHEDULER_MAX_WORKERS = 1
