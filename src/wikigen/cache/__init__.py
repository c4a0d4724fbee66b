"""Page cache: storage, invalidation, warming and telemetry."""

from wikigen.cache.invalidation import CacheInvalidator, InvalidationSummary
from wikigen.cache.monitoring import CacheEvent, CacheMonitor
from wikigen.cache.pages import Page, PageStore
from wikigen.cache.warming import CacheWarmer, WarmingSummary

__all__ = [
    "CacheEvent",
    "CacheInvalidator",
    "CacheMonitor",
    "CacheWarmer",
    "InvalidationSummary",
    "Page",
    "PageStore",
    "WarmingSummary",
]
