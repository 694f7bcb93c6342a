"""
Match Orchestrator - one COA classification decision per line item

Flow:
1. Learned mappings (only with a deal id and a session): accept at >= 0.75,
   method "learned"
2. Static taxonomy: accept at >= 0.70, method "exact" (>= 0.90) or "fuzzy"
   (flagged for review)
3. Otherwise unmapped, carrying top-5 guesses for human disposition

Example:
- Input: "MCAID RM&B", deal D1, extraction confidence 0.92
- Learned: deal D1 exact (0.95), corroborated by the global tier -> 0.98
- Output: 4110 Medicaid Room & Board, confidence 0.98 x 0.92 = 0.902, method "learned"

Upstream uncertainty propagates: accepted confidence is the method
confidence times the item's extraction confidence. In a document batch the
item's confidence is first scaled by the document's extraction confidence.
"""
from collections import defaultdict
from typing import Iterable, Optional, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dealcore.common.config import MatchThresholds, get_settings
from dealcore.common.metrics import COA_LINE_ITEM_MAPPINGS
from dealcore.domain.coa.chart_of_accounts import find_account
from dealcore.domain.coa.learned_mappings import LearnedMappingStore, learned_mapping_store
from dealcore.domain.coa.schemas import (
    COAGuess,
    COAMappingBatch,
    ExtractedFinancialData,
    ExtractedLineItem,
    LearnedSuggestion,
    MappingMethod,
    MappingResult,
    TaxonomyMatch,
    UnmappedCategorySummary,
    UnmappedLineItem,
)
from dealcore.domain.coa.taxonomy_matcher import TaxonomyMatcher, taxonomy_matcher
from dealcore.matching.text_normalizer import normalize_text

logger = structlog.get_logger()

# Coarse buckets for the unmapped summary, checked in order
UNMAPPED_CATEGORY_WORDS = [
    ("Revenue", {"revenue", "income"}),
    ("Nursing", {"nursing", "rn", "lpn", "cna"}),
    ("Therapy", {"therapy", "pt", "ot", "slp"}),
    ("Dietary", {"dietary", "food"}),
    ("Administration", {"admin", "administration", "administrative"}),
]


def monthly_values_of(item: ExtractedLineItem) -> dict[str, float]:
    values: dict[str, float] = {}
    for mv in item.values:
        values[mv.month] = values.get(mv.month, 0.0) + mv.value
    return values


class MatchOrchestrator:
    """
    Combines learned, static and fallback matching.

    Usage:
        result = await match_orchestrator.map_line_item(item, deal_id="D1", db=db)
        if isinstance(result, MappingResult):
            print(result.coa_code, result.mapping_method)
    """

    def __init__(
        self,
        taxonomy: Optional[TaxonomyMatcher] = None,
        learned: Optional[LearnedMappingStore] = None,
        thresholds: Optional[MatchThresholds] = None,
    ):
        self.taxonomy = taxonomy or taxonomy_matcher
        self.learned = learned or learned_mapping_store
        self._thresholds = thresholds

    @property
    def thresholds(self) -> MatchThresholds:
        return self._thresholds or get_settings().matching

    async def map_line_item(
        self,
        item: ExtractedLineItem,
        deal_id: Optional[str] = None,
        db: Optional[AsyncSession] = None,
        facility_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> Union[MappingResult, UnmappedLineItem]:
        """
        Classify one line item.

        Args:
            item: Extracted line item
            deal_id: Enables the deal tier of learned mappings
            db: Session for learned lookups and outcome tracking

        Returns:
            MappingResult when accepted, UnmappedLineItem otherwise
        """
        t = self.thresholds

        learned = None
        if deal_id and db is not None:
            learned = await self._find_learned(item, deal_id, db)

        if learned:
            result = self._from_learned(item, learned)
        else:
            static = self.taxonomy.match(item.label, item.category)
            if static and static.confidence >= t.static_accept_threshold:
                result = self._from_static(item, static)
            else:
                result = self._unmapped(item, static)

        if isinstance(result, MappingResult):
            COA_LINE_ITEM_MAPPINGS.labels(method=result.mapping_method.value).inc()
            logger.debug("line_item_mapped",
                        label=item.source_label,
                        coa_code=result.coa_code,
                        method=result.mapping_method.value,
                        confidence=round(result.confidence, 4))
        else:
            COA_LINE_ITEM_MAPPINGS.labels(method="unmapped").inc()
            logger.debug("line_item_unmapped",
                        label=item.source_label,
                        guesses=len(result.guesses))

        if deal_id and db is not None:
            mapped = isinstance(result, MappingResult)
            await self.learned.record_outcome(
                deal_id,
                item.source_label,
                db,
                coa_code=result.coa_code if mapped else None,
                coa_name=result.coa_name if mapped else None,
                confidence=result.confidence if mapped else None,
                facility_id=facility_id,
                document_id=document_id,
            )

        return result

    async def map_extracted_data(
        self,
        data: ExtractedFinancialData,
        deal_id: Optional[str] = None,
        db: Optional[AsyncSession] = None,
    ) -> COAMappingBatch:
        """Classify every line item of a document (sequential: one session)"""
        logger.info("coa_mapping_started",
                   source=data.source,
                   deal_id=deal_id,
                   line_items=len(data.line_items))

        batch = COAMappingBatch(source=data.source, deal_id=deal_id)
        for item in data.line_items:
            if data.confidence < 1.0:
                item = item.model_copy(update={"confidence": item.confidence * data.confidence})
            result = await self.map_line_item(
                item,
                deal_id=deal_id,
                db=db,
                facility_id=data.facility_id,
                document_id=data.document_id,
            )
            if isinstance(result, MappingResult):
                batch.mappings.append(result)
            else:
                batch.unmapped.append(result)

        logger.info("coa_mapping_complete",
                   source=data.source,
                   deal_id=deal_id,
                   mapped=len(batch.mappings),
                   learned=sum(1 for m in batch.mappings if m.mapping_method == MappingMethod.LEARNED),
                   needs_review=batch.needs_review_count,
                   unmapped=len(batch.unmapped))
        return batch

    def convert_mappings_to_proforma(
        self,
        mappings: Iterable[MappingResult],
    ) -> dict[str, dict[str, float]]:
        """COA code -> month -> value, summing sources that land on the same code"""
        proforma: dict[str, dict[str, float]] = defaultdict(dict)
        for mapping in mappings:
            months = proforma[mapping.coa_code]
            for month, value in mapping.monthly_values.items():
                months[month] = months.get(month, 0.0) + value
        return dict(proforma)

    def get_unmapped_summary(
        self,
        unmapped: Iterable[UnmappedLineItem],
    ) -> list[UnmappedCategorySummary]:
        """Group unmapped labels into coarse buckets with a few examples each"""
        buckets: dict[str, list[str]] = {}
        for item in unmapped:
            words = set(normalize_text(item.source_label).split())
            category = "Other"
            for name, keywords in UNMAPPED_CATEGORY_WORDS:
                if words & keywords:
                    category = name
                    break
            buckets.setdefault(category, []).append(item.source_label)

        return [
            UnmappedCategorySummary(category=category, count=len(labels), examples=labels[:3])
            for category, labels in buckets.items()
        ]

    async def _find_learned(
        self,
        item: ExtractedLineItem,
        deal_id: str,
        db: AsyncSession,
    ) -> Optional[LearnedSuggestion]:
        try:
            return await self.learned.find_learned_match(
                item.source_label,
                db,
                deal_id=deal_id,
                min_confidence=self.thresholds.learned_min_confidence,
            )
        except SQLAlchemyError as e:
            # Degrade to the static path for this item
            await db.rollback()
            logger.warning("learned_lookup_failed",
                          label=item.source_label,
                          deal_id=deal_id,
                          error=str(e))
            return None

    def _from_learned(self, item: ExtractedLineItem, learned: LearnedSuggestion) -> MappingResult:
        return MappingResult(
            coa_code=learned.coa_code,
            coa_name=learned.coa_name,
            source_label=item.source_label,
            monthly_values=monthly_values_of(item),
            confidence=learned.confidence * item.confidence,
            mapping_method=MappingMethod.LEARNED,
            needs_review=False,
            reason=learned.reason,
        )

    def _from_static(self, item: ExtractedLineItem, static: TaxonomyMatch) -> MappingResult:
        t = self.thresholds
        is_exact = static.confidence >= t.exact_method_cutoff
        return MappingResult(
            coa_code=static.coa_code,
            coa_name=self.taxonomy.get_account_name(static.coa_code) or "Unknown",
            source_label=item.source_label,
            monthly_values=monthly_values_of(item),
            confidence=static.confidence * item.confidence,
            mapping_method=MappingMethod.EXACT if is_exact else MappingMethod.FUZZY,
            needs_review=not is_exact,
            reason=static.reason,
        )

    def _unmapped(self, item: ExtractedLineItem, static: Optional[TaxonomyMatch]) -> UnmappedLineItem:
        t = self.thresholds
        guesses = {g.coa_code: g for g in self.taxonomy.find_possible_matches(item.label)}

        if static:
            account = find_account(static.coa_code)
            current = guesses.get(static.coa_code)
            if account and (current is None or static.confidence > current.confidence):
                guesses[static.coa_code] = COAGuess(
                    coa_code=static.coa_code,
                    coa_name=account.name,
                    confidence=static.confidence,
                    reason=static.reason,
                )

        ranked = sorted(guesses.values(), key=lambda g: (-g.confidence, g.coa_code))
        return UnmappedLineItem(
            source_label=item.source_label,
            label=item.label,
            category=item.category,
            monthly_values=monthly_values_of(item),
            confidence=item.confidence,
            guesses=ranked[: t.guess_limit],
        )


# Singleton instance
match_orchestrator = MatchOrchestrator()
