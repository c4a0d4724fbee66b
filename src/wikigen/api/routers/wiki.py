"""Wiki page endpoints: read, generate, regenerate and navigate."""

import logging

from fastapi import APIRouter, Body, Depends, Query, Response

from wikigen.api.deps import get_caller_id, get_service, get_settings
from wikigen.api.errors import generation_http_error, page_not_found
from wikigen.api.schemas import (
    GenerateRequest,
    LinkedPageItem,
    RegenerateRequest,
    RelatedPageItem,
    WikiPageResponse,
)
from wikigen.config import Config
from wikigen.errors import PageNotFoundError, WikiGenerationError
from wikigen.service import WikiService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wiki", tags=["wiki"])


def _apply_rate_limit_headers(response: Response, service: WikiService, caller_id: str) -> None:
    for name, value in service.controller.rate_limit_headers(caller_id).items():
        response.headers[name] = value


@router.post("/generate", response_model=WikiPageResponse)
async def generate_page(
    request: GenerateRequest,
    response: Response,
    service: WikiService = Depends(get_service),
    caller_id: str = Depends(get_caller_id),
) -> WikiPageResponse:
    """Generate the page for a free-text topic.

    Returns the cached page when one is published, unless ``force`` is set.
    """
    try:
        result = await service.generate(request.query, caller_id=caller_id, force=request.force)
    except WikiGenerationError as e:
        raise generation_http_error(e, service.controller.rate_limit_headers(caller_id))
    _apply_rate_limit_headers(response, service, caller_id)
    return WikiPageResponse.from_page(result.page, cached=result.cached, stale=result.stale)


@router.get("/{slug}", response_model=WikiPageResponse)
async def get_page(
    slug: str,
    response: Response,
    query: str | None = Query(None, description="Topic text to use instead of the slug"),
    service: WikiService = Depends(get_service),
    caller_id: str = Depends(get_caller_id),
) -> WikiPageResponse:
    """Get a page, generating it on a cache miss."""
    try:
        result = await service.get_or_generate(slug, query=query, caller_id=caller_id)
    except WikiGenerationError as e:
        raise generation_http_error(e, service.controller.rate_limit_headers(caller_id))
    if not result.cached:
        _apply_rate_limit_headers(response, service, caller_id)
    response.headers["Cache-Control"] = service.pages.cache_control(result.page)
    return WikiPageResponse.from_page(result.page, cached=result.cached, stale=result.stale)


@router.post("/{slug}/regenerate", response_model=WikiPageResponse)
async def regenerate_page(
    slug: str,
    response: Response,
    request: RegenerateRequest | None = Body(None),
    service: WikiService = Depends(get_service),
    caller_id: str = Depends(get_caller_id),
) -> WikiPageResponse:
    """Regenerate a page. Subject to the per-page cooldown."""
    query = request.query if request is not None else None
    try:
        page = await service.regenerate(slug, caller_id=caller_id, query=query)
    except PageNotFoundError:
        raise page_not_found(slug)
    except WikiGenerationError as e:
        raise generation_http_error(e, service.controller.rate_limit_headers(caller_id))
    _apply_rate_limit_headers(response, service, caller_id)
    return WikiPageResponse.from_page(page)


@router.get("/{slug}/related", response_model=list[RelatedPageItem])
async def get_related(
    slug: str,
    limit: int | None = Query(None, ge=1, le=100),
    service: WikiService = Depends(get_service),
    settings: Config = Depends(get_settings),
) -> list[RelatedPageItem]:
    """Pages connected to slug in either direction, strongest first."""
    related = service.graph.related_pages(slug, limit=limit or settings.links.related_limit)
    return [RelatedPageItem(**r.to_dict()) for r in related]


@router.get("/{slug}/backlinks", response_model=list[LinkedPageItem])
async def get_backlinks(
    slug: str,
    limit: int | None = Query(None, ge=1, le=200),
    service: WikiService = Depends(get_service),
    settings: Config = Depends(get_settings),
) -> list[LinkedPageItem]:
    """Pages that link to slug."""
    links = service.graph.backlinks(slug, limit=limit or settings.links.backlink_limit)
    return [LinkedPageItem(**link.to_dict()) for link in links]


@router.get("/{slug}/links", response_model=list[LinkedPageItem])
async def get_outgoing_links(
    slug: str,
    service: WikiService = Depends(get_service),
) -> list[LinkedPageItem]:
    """Links from slug, including targets that have no page yet."""
    if not service.pages.exists(slug):
        raise page_not_found(slug)
    return [LinkedPageItem(**link.to_dict()) for link in service.graph.outgoing_links(slug)]
