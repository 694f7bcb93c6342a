"""
Providers API Router
Matches extracted facilities to CMS registry providers and serves provider data
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from apps.api.dependencies import get_provider_matcher, get_registry_cache
from apps.api.tasks import queue_facility_resolution
from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.domain.entity_resolution.schemas import ExtractedFacility, MatchResult
from dealcore.integrations.cms.registry_cache import RegistryCache
from dealcore.integrations.cms.schemas import CanonicalProvider, ProviderProfile

logger = structlog.get_logger()
router = APIRouter()

MAX_BATCH_SIZE = 200


class QueuedResolution(BaseModel):
    task_id: str
    facilities: int = Field(..., description="Number of facilities queued")
    status: str = "queued"


def _check_batch(facilities: List[ExtractedFacility]):
    if not facilities:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one facility is required",
        )
    if len(facilities) > MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Batch too large: {len(facilities)} facilities (max {MAX_BATCH_SIZE})",
        )


@router.post("/match", response_model=MatchResult)
async def match_facility(
    facility: ExtractedFacility,
    matcher: ProviderMatcher = Depends(get_provider_matcher),
):
    """
    Match one extracted facility against the CMS registry

    Returns the decision (matched / possible / no_match), the accepted
    provider when matched, and up to five ranked candidates for review.
    """
    return await matcher.match_facility(facility)


@router.post("/match/batch", response_model=List[MatchResult])
async def match_facilities(
    facilities: List[ExtractedFacility],
    matcher: ProviderMatcher = Depends(get_provider_matcher),
):
    """Match a batch concurrently; a failing facility does not fail the batch"""
    _check_batch(facilities)
    return await matcher.match_facilities(facilities)


@router.post("/match/async", response_model=QueuedResolution, status_code=status.HTTP_202_ACCEPTED)
async def match_facilities_async(facilities: List[ExtractedFacility]):
    """Queue a batch for the worker; poll the task id for results"""
    _check_batch(facilities)
    task_id = queue_facility_resolution([f.model_dump() for f in facilities])

    logger.info("facility_resolution_queued",
               task_id=task_id,
               facilities=len(facilities))
    return QueuedResolution(task_id=task_id, facilities=len(facilities))


@router.get("/search", response_model=List[CanonicalProvider])
async def search_providers(
    name: str = Query(..., min_length=2, description="Facility name or keyword"),
    state: Optional[str] = Query(None, min_length=2, max_length=2, description="Two-letter state code"),
    limit: int = Query(20, ge=1, le=100),
    cache: RegistryCache = Depends(get_registry_cache),
):
    """Search the registry by name (cached for the registry TTL)"""
    return await cache.search_providers(name, state=state, limit=limit)


@router.get("/{ccn}", response_model=CanonicalProvider)
async def get_provider(
    ccn: str,
    cache: RegistryCache = Depends(get_registry_cache),
):
    """Get one provider by certification number"""
    provider = await cache.get_provider(ccn)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {ccn} not found",
        )
    return provider


@router.get("/{ccn}/profile", response_model=ProviderProfile)
async def get_provider_profile(
    ccn: str,
    matcher: ProviderMatcher = Depends(get_provider_matcher),
):
    """Provider with penalties and health deficiencies"""
    profile = await matcher.get_provider_profile(ccn)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider {ccn} not found",
        )
    return profile
