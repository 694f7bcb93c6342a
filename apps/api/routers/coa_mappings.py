"""
COA Mappings API Router
Classifies extracted line items, accepts human confirmations, and manages
learned mappings
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.dependencies import get_learned_store, get_match_orchestrator
from dealcore.common.database import get_db_session
from dealcore.domain.coa.chart_of_accounts import SNF_CHART_OF_ACCOUNTS, COAAccount
from dealcore.domain.coa.learned_mappings import LearnedMappingStore
from dealcore.domain.coa.match_orchestrator import MatchOrchestrator
from dealcore.domain.coa.schemas import (
    COAMappingBatch,
    DealMappingStats,
    ExtractedFinancialData,
    LearnedMappingExport,
    LearnedSuggestion,
    LearnOutcome,
    MappingConfirmation,
    MappingResult,
    UnmappedCategorySummary,
    UnmappedLabelCount,
    UnmappedLineItem,
)

logger = structlog.get_logger()
router = APIRouter()


class PurgeResponse(BaseModel):
    removed: int


@router.get("/accounts", response_model=List[COAAccount])
async def list_accounts(include_headers: bool = Query(False)):
    """Chart of accounts, for picking a code during review"""
    return [a for a in SNF_CHART_OF_ACCOUNTS if include_headers or not a.is_header]


@router.post("/deals/{deal_id}/map", response_model=COAMappingBatch)
async def map_financial_data(
    deal_id: str,
    data: ExtractedFinancialData,
    orchestrator: MatchOrchestrator = Depends(get_match_orchestrator),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Classify a document's line items for a deal

    Learned mappings for this deal are consulted first, then the static
    taxonomy. Unmapped items carry ranked guesses.
    """
    return await orchestrator.map_extracted_data(data, deal_id=deal_id, db=db)


@router.post("/proforma")
async def convert_to_proforma(
    mappings: List[MappingResult],
    orchestrator: MatchOrchestrator = Depends(get_match_orchestrator),
) -> dict[str, dict[str, float]]:
    """COA code -> month -> value, summing sources mapped to the same code"""
    return orchestrator.convert_mappings_to_proforma(mappings)


@router.post("/unmapped-summary", response_model=List[UnmappedCategorySummary])
async def summarize_unmapped(
    unmapped: List[UnmappedLineItem],
    orchestrator: MatchOrchestrator = Depends(get_match_orchestrator),
):
    return orchestrator.get_unmapped_summary(unmapped)


@router.post("/confirmations", response_model=LearnOutcome, status_code=status.HTTP_201_CREATED)
async def confirm_mapping(
    confirmation: MappingConfirmation,
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Record a human-confirmed label -> COA mapping

    - Deal tier (when deal_id given): upserted, method manual
    - Global tier: created if new, reinforced if it agrees, otherwise
      handled by the configured conflict policy
    """
    try:
        return await store.learn_from_mapping(confirmation, db)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/confirmations/batch", response_model=List[LearnOutcome], status_code=status.HTTP_201_CREATED)
async def confirm_mappings(
    confirmations: List[MappingConfirmation],
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Record several confirmations in order. An invalid entry rejects the whole batch before any write."""
    try:
        return await store.learn_from_mappings(confirmations, db)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/suggestions", response_model=List[LearnedSuggestion])
async def get_suggestions(
    label: str = Query(..., min_length=1),
    deal_id: Optional[str] = Query(None, description="Include this deal's mappings"),
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Ranked learned suggestions for a label (top 5)"""
    return await store.get_learned_suggestions(label, db, deal_id=deal_id)


@router.get("/deals/{deal_id}/stats", response_model=DealMappingStats)
async def get_deal_stats(
    deal_id: str,
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    return await store.get_deal_mapping_stats(deal_id, db)


@router.delete("/deals/{deal_id}/mappings", response_model=PurgeResponse)
async def purge_deal_mappings(
    deal_id: str,
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    removed = await store.purge_deal_mappings(deal_id, db)
    return PurgeResponse(removed=removed)


@router.get("/unmapped-labels", response_model=List[UnmappedLabelCount])
async def get_unmapped_labels(
    limit: int = Query(20, ge=1, le=200),
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Labels most often left unmapped across deals"""
    return await store.get_common_unmapped_labels(db, limit=limit)


@router.get("/export", response_model=LearnedMappingExport)
async def export_mappings(
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    return await store.export_learned_mappings(db)


@router.delete("/global/{normalized_label}", response_model=PurgeResponse)
async def purge_global_mapping(
    normalized_label: str,
    store: LearnedMappingStore = Depends(get_learned_store),
    db: AsyncSession = Depends(get_db_session),
):
    """Manually purge one global mapping"""
    removed = await store.purge_global_mapping(normalized_label, db)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No global mapping for {normalized_label}",
        )
    return PurgeResponse(removed=1)
