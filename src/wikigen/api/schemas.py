"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from wikigen.cache.pages import Page


class ErrorDetail(BaseModel):
    """Body of every error response."""

    code: str
    message: str


class WikiPageResponse(BaseModel):
    """A cached or freshly generated wiki page."""

    slug: str
    title: str
    content: str
    excerpt: str
    confidence_score: float
    published: bool
    generated_at: datetime
    ttl_expires_at: datetime
    view_count: int = 0
    regeneration_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    cached: bool = False
    stale: bool = False

    @classmethod
    def from_page(cls, page: Page, cached: bool = False, stale: bool = False) -> "WikiPageResponse":
        return cls(
            slug=page.slug,
            title=page.title,
            content=page.content,
            excerpt=page.excerpt,
            confidence_score=page.confidence_score,
            published=page.published,
            generated_at=page.generated_at,
            ttl_expires_at=page.ttl_expires_at,
            view_count=page.view_count,
            regeneration_count=page.regeneration_count,
            metadata=page.metadata,
            cached=cached,
            stale=stale,
        )


class GenerateRequest(BaseModel):
    """Request to generate a page for a free-text topic."""

    query: str = Field(..., description="Topic to write about, 3 to 200 characters")
    force: bool = Field(False, description="Regenerate even if a published page exists")


class RegenerateRequest(BaseModel):
    """Optional body for a regeneration request."""

    query: str | None = Field(None, description="Topic text; defaults to the page's original query")


class RelatedPageItem(BaseModel):
    slug: str
    title: str
    strength: float


class LinkedPageItem(BaseModel):
    slug: str
    title: str
    link_text: str
    strength: float
    page_exists: bool = True


class StalePageItem(BaseModel):
    slug: str
    title: str
    view_count: int
    ttl_expires_at: datetime
    confidence_score: float


class CacheStatsResponse(BaseModel):
    """Cache totals plus in-process event counters."""

    pages: dict[str, Any]
    events: dict[str, Any]


InvalidationMode = Literal["slugs", "document", "search", "stale", "low_confidence", "all"]


class InvalidateRequest(BaseModel):
    """Bulk invalidation request. Fields used depend on ``mode``."""

    mode: InvalidationMode = Field(..., description="Which pages to invalidate")
    slugs: list[str] = Field(default_factory=list, description="Slugs for mode 'slugs'")
    document_id: str | None = Field(None, description="Source document for mode 'document'")
    search: str | None = Field(None, description="Title or content text for mode 'search'")
    threshold: float | None = Field(
        None, ge=0.0, le=1.0, description="Confidence cut for mode 'low_confidence'"
    )


class InvalidateResponse(BaseModel):
    mode: str
    count: int
    slugs: list[str] = Field(default_factory=list)
    failed: list[dict[str, str]] = Field(default_factory=list)


class WarmRequest(BaseModel):
    """Cache warming request."""

    topics: list[str] | None = Field(None, description="Topics to warm; defaults to popular topics")
    skip_existing: bool = True
    delay_ms: int = Field(1000, ge=0, le=60_000)
    max_topics: int | None = Field(None, ge=1)


class CandidateItem(BaseModel):
    normalized_slug: str
    entity: str
    tier: str
    mention_count: int
    mentioned_in: list[str]
    page_exists: bool
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
