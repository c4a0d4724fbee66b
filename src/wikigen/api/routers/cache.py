"""Cache management endpoints: statistics, invalidation and warming."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from wikigen.api.deps import get_service, get_settings
from wikigen.api.errors import page_not_found
from wikigen.api.schemas import (
    CacheStatsResponse,
    InvalidateRequest,
    InvalidateResponse,
    StalePageItem,
    WarmRequest,
)
from wikigen.config import Config
from wikigen.jobs.warm import warm_cache
from wikigen.service import WikiService

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(
    service: WikiService = Depends(get_service),
) -> CacheStatsResponse:
    """Page totals from the store plus hit/miss counters for this process."""
    return CacheStatsResponse(
        pages=service.pages.get_cache_stats(),
        events=service.pages.monitor.statistics(),
    )


@router.get("/stale", response_model=list[StalePageItem])
async def get_stale_pages(
    limit: int = Query(20, ge=1, le=500),
    service: WikiService = Depends(get_service),
) -> list[StalePageItem]:
    """Expired pages, most viewed first."""
    return [
        StalePageItem(
            slug=page.slug,
            title=page.title,
            view_count=page.view_count,
            ttl_expires_at=page.ttl_expires_at,
            confidence_score=page.confidence_score,
        )
        for page in service.pages.get_stale_pages(limit)
    ]


@router.delete("/pages/{slug}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_page(
    slug: str,
    service: WikiService = Depends(get_service),
) -> None:
    """Hard-delete a cached page and its graph edges."""
    if not service.invalidator.invalidate(slug):
        raise page_not_found(slug)


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_pages(
    request: InvalidateRequest,
    service: WikiService = Depends(get_service),
    settings: Config = Depends(get_settings),
) -> InvalidateResponse:
    """Bulk invalidation by slug list, document, text search, staleness,
    low confidence, or everything."""
    invalidator = service.invalidator

    if request.mode == "slugs":
        if not request.slugs:
            raise HTTPException(status_code=400, detail="mode 'slugs' requires a slug list")
        summary = invalidator.invalidate_many(request.slugs)
        return InvalidateResponse(
            mode=request.mode, count=len(summary.success), slugs=summary.success,
            failed=summary.failed,
        )
    if request.mode == "document":
        if not request.document_id:
            raise HTTPException(status_code=400, detail="mode 'document' requires document_id")
        slugs = invalidator.invalidate_by_document(request.document_id)
        return InvalidateResponse(mode=request.mode, count=len(slugs), slugs=slugs)
    if request.mode == "search":
        if not request.search:
            raise HTTPException(status_code=400, detail="mode 'search' requires search text")
        slugs = invalidator.invalidate_by_search(request.search)
        return InvalidateResponse(mode=request.mode, count=len(slugs), slugs=slugs)
    if request.mode == "stale":
        return InvalidateResponse(mode=request.mode, count=invalidator.invalidate_stale())
    if request.mode == "low_confidence":
        threshold = (
            request.threshold
            if request.threshold is not None
            else settings.cache.min_publish_confidence
        )
        count = invalidator.invalidate_low_confidence(threshold)
        return InvalidateResponse(mode=request.mode, count=count)
    return InvalidateResponse(mode=request.mode, count=invalidator.invalidate_all())


@router.post("/pages/{slug}/unpublish")
async def unpublish_page(
    slug: str,
    service: WikiService = Depends(get_service),
) -> dict[str, str]:
    """Hide a page from readers without deleting it."""
    if not service.invalidator.soft_invalidate(slug):
        raise page_not_found(slug)
    return {"slug": slug, "status": "unpublished"}


@router.post("/pages/{slug}/restore")
async def restore_page(
    slug: str,
    service: WikiService = Depends(get_service),
) -> dict[str, str]:
    """Republish a previously unpublished page."""
    if not service.invalidator.restore(slug):
        raise page_not_found(slug)
    return {"slug": slug, "status": "published"}


@router.post("/warm")
async def warm_topics(
    request: WarmRequest,
    service: WikiService = Depends(get_service),
) -> dict:
    """Pregenerate topics. Runs to completion before responding."""
    if request.topics is not None and not request.topics:
        raise HTTPException(status_code=400, detail="No topics defined for warming")

    summary = await warm_cache(
        service,
        topics=request.topics,
        skip_existing=request.skip_existing,
        delay_ms=request.delay_ms,
        max_topics=request.max_topics,
    )
    return summary.to_dict()
