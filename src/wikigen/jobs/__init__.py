"""Background jobs: stale page regeneration and cache warming."""
