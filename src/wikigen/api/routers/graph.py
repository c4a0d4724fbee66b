"""Link graph endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from wikigen.api.deps import get_service
from wikigen.api.schemas import CandidateItem
from wikigen.constants.links import TIER_ORDER
from wikigen.service import WikiService

router = APIRouter(prefix="/api/graph", tags=["graph"])


@router.get("/stats")
async def get_graph_stats(
    service: WikiService = Depends(get_service),
) -> dict[str, Any]:
    """Connection totals, most linked pages and link candidate counts."""
    stats = service.graph.get_stats()
    stats["candidates"] = service.candidates.get_stats()
    return stats


@router.get("/orphans")
async def get_orphans(
    service: WikiService = Depends(get_service),
) -> list[dict[str, str]]:
    """Pages that neither link nor are linked to."""
    return service.graph.orphans()


@router.get("/candidates", response_model=list[CandidateItem])
async def list_candidates(
    page_exists: bool | None = Query(None),
    min_mentions: int | None = Query(None, ge=1),
    tier: str | None = Query(None),
    service: WikiService = Depends(get_service),
) -> list[CandidateItem]:
    if tier is not None and tier not in TIER_ORDER:
        raise HTTPException(status_code=400, detail=f"Unknown tier: {tier}")
    candidates = service.candidates.list(
        page_exists=page_exists, min_mentions=min_mentions, tier=tier
    )
    return [CandidateItem(**c.to_dict()) for c in candidates]


@router.get("/candidates/suggested", response_model=list[CandidateItem])
async def get_suggested_candidates(
    limit: int = Query(20, ge=1, le=200),
    service: WikiService = Depends(get_service),
) -> list[CandidateItem]:
    """Most mentioned topics that do not have a page yet."""
    return [CandidateItem(**c.to_dict()) for c in service.candidates.get_suggested(limit)]
