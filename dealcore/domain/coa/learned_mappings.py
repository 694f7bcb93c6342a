"""
Learned-Mapping Store - Two-tier learning from human COA confirmations

Tiers live in separate tables so "deal first, then global" is an explicit
lookup step:
1. deal_coa_mappings - applies only within one deal, keyed by (deal_id, source_label)
2. global_coa_mappings - applies across deals, keyed by normalized label

Learning (each tier write is one atomic statement, committed on its own):
- Deal tier: upsert, method "manual", confidence 1.0, reviewer metadata
- Global tier: insert-or-skip. An existing mapping is never silently
  overwritten by one later correction. Agreeing corrections reinforce it
  (confidence x1.05, capped at 0.98). Disagreeing corrections follow the
  configured GlobalConflictPolicy.

Lookup probes label variations ("total_nursing_expense" -> "nursing") by
token containment in both tiers. Deal rows are consulted only when a deal id
is supplied.
"""
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dealcore.common.config import GlobalConflictPolicy, MatchThresholds, get_settings
from dealcore.common.database import upsert_insert, utcnow
from dealcore.common.tables import deal_coa_mappings, global_coa_mappings
from dealcore.domain.coa.chart_of_accounts import category_from_code, find_account
from dealcore.domain.coa.schemas import (
    DealMapping,
    DealMappingStats,
    GlobalConflictOutcome,
    GlobalMapping,
    LearnedMappingExport,
    LearnedScope,
    LearnedSuggestion,
    LearnOutcome,
    MappingConfirmation,
    UnmappedLabelCount,
)
from dealcore.matching.text_normalizer import generate_label_variations, normalize_label

logger = structlog.get_logger()

MANUAL = "manual"
AUTO = "auto"
UNMAPPED = "unmapped"


def token_containment(column, variation: str):
    """SQL predicate: variation appears in column as a run of underscore tokens"""
    padded = sa.literal("_") + column + sa.literal("_")
    return padded.contains(f"_{variation}_", autoescape=True)


class DealMappingRepository:
    """Deal-scoped tier (deal_coa_mappings)."""

    async def upsert_confirmation(
        self,
        confirmation: MappingConfirmation,
        normalized_label: str,
        reviewed_at: datetime,
        db: AsyncSession,
    ):
        """Insert or update the deal row for this exact source label"""
        t = deal_coa_mappings
        stmt = upsert_insert(db, t).values(
            deal_id=confirmation.deal_id,
            facility_id=confirmation.facility_id,
            document_id=confirmation.document_id,
            source_label=confirmation.source_label,
            normalized_label=normalized_label,
            coa_code=confirmation.coa_code,
            coa_name=confirmation.coa_name,
            mapping_method=MANUAL,
            mapping_confidence=1.0,
            is_mapped=True,
            usage_count=1,
            reviewed_by=confirmation.reviewed_by,
            reviewed_at=reviewed_at,
            created_at=reviewed_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[t.c.deal_id, t.c.source_label],
            set_={
                "normalized_label": stmt.excluded.normalized_label,
                "coa_code": stmt.excluded.coa_code,
                "coa_name": stmt.excluded.coa_name,
                "facility_id": sa.func.coalesce(stmt.excluded.facility_id, t.c.facility_id),
                "document_id": sa.func.coalesce(stmt.excluded.document_id, t.c.document_id),
                "mapping_method": MANUAL,
                "mapping_confidence": 1.0,
                "is_mapped": True,
                "usage_count": t.c.usage_count + 1,
                "reviewed_by": stmt.excluded.reviewed_by,
                "reviewed_at": stmt.excluded.reviewed_at,
            },
        )
        await db.execute(stmt)
        await db.commit()

    async def record_outcome(
        self,
        deal_id: str,
        source_label: str,
        coa_code: Optional[str],
        coa_name: Optional[str],
        confidence: Optional[float],
        db: AsyncSession,
        facility_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ):
        """
        Record an automatic outcome for statistics.

        Never touches a manual row. Outcome rows are not consulted by lookups.
        """
        t = deal_coa_mappings
        now = utcnow()
        is_mapped = coa_code is not None
        stmt = upsert_insert(db, t).values(
            deal_id=deal_id,
            facility_id=facility_id,
            document_id=document_id,
            source_label=source_label,
            normalized_label=normalize_label(source_label),
            coa_code=coa_code,
            coa_name=coa_name,
            mapping_method=AUTO if is_mapped else UNMAPPED,
            mapping_confidence=confidence,
            is_mapped=is_mapped,
            usage_count=1,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[t.c.deal_id, t.c.source_label],
            set_={
                "coa_code": stmt.excluded.coa_code,
                "coa_name": stmt.excluded.coa_name,
                "mapping_method": stmt.excluded.mapping_method,
                "mapping_confidence": stmt.excluded.mapping_confidence,
                "is_mapped": stmt.excluded.is_mapped,
                "usage_count": t.c.usage_count + 1,
            },
            where=t.c.mapping_method != MANUAL,
        )
        await db.execute(stmt)
        await db.commit()

    async def find_containing(
        self,
        deal_id: str,
        variation: str,
        db: AsyncSession,
        limit: int = 3,
    ) -> list:
        """Manual rows of one deal whose normalized label contains the variation"""
        t = deal_coa_mappings
        result = await db.execute(
            sa.select(t)
            .where(
                t.c.deal_id == deal_id,
                t.c.mapping_method == MANUAL,
                t.c.is_mapped.is_(True),
                t.c.coa_code.is_not(None),
                token_containment(t.c.normalized_label, variation),
            )
            .order_by(t.c.reviewed_at.desc(), t.c.id.desc())
            .limit(limit)
        )
        return list(result.fetchall())

    async def get_stats(self, deal_id: str, db: AsyncSession) -> DealMappingStats:
        t = deal_coa_mappings

        def count_where(condition):
            return sa.func.coalesce(sa.func.sum(sa.case((condition, 1), else_=0)), 0)

        result = await db.execute(
            sa.select(
                sa.func.count().label("total"),
                count_where(t.c.is_mapped.is_(True)).label("mapped"),
                count_where(t.c.mapping_method == MANUAL).label("manual"),
                count_where(t.c.mapping_method == AUTO).label("auto"),
                count_where(t.c.is_mapped.is_(False)).label("unmapped"),
            ).where(t.c.deal_id == deal_id)
        )
        row = result.one()
        return DealMappingStats(
            deal_id=deal_id,
            total=row.total or 0,
            mapped=row.mapped or 0,
            manual=row.manual or 0,
            auto=row.auto or 0,
            unmapped=row.unmapped or 0,
        )

    async def common_unmapped_labels(self, db: AsyncSession, limit: int = 20) -> list[UnmappedLabelCount]:
        t = deal_coa_mappings
        occurrences = sa.func.count().label("occurrences")
        result = await db.execute(
            sa.select(t.c.source_label, occurrences)
            .where(t.c.is_mapped.is_(False))
            .group_by(t.c.source_label)
            .order_by(occurrences.desc(), t.c.source_label)
            .limit(limit)
        )
        return [UnmappedLabelCount(source_label=r.source_label, count=r.occurrences) for r in result]

    async def list_mapped(self, db: AsyncSession) -> list:
        t = deal_coa_mappings
        result = await db.execute(
            sa.select(t).where(t.c.is_mapped.is_(True)).order_by(t.c.deal_id, t.c.source_label)
        )
        return list(result.fetchall())

    async def purge(self, deal_id: str, db: AsyncSession) -> int:
        result = await db.execute(
            sa.delete(deal_coa_mappings).where(deal_coa_mappings.c.deal_id == deal_id)
        )
        await db.commit()
        return result.rowcount


class GlobalMappingRepository:
    """Global tier (global_coa_mappings)."""

    def __init__(self, thresholds: Optional[MatchThresholds] = None):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> MatchThresholds:
        return self._thresholds or get_settings().matching

    async def learn(
        self,
        normalized_label: str,
        confirmation: MappingConfirmation,
        reviewed_at: datetime,
        db: AsyncSession,
    ) -> GlobalConflictOutcome:
        """Insert-or-skip, then reinforce or apply the conflict policy"""
        created = await self._insert_if_absent(normalized_label, confirmation, reviewed_at, db)
        if created:
            return GlobalConflictOutcome.CREATED

        existing = await self.get(normalized_label, db)
        if existing is None:
            # Purged between the insert attempt and the read
            created = await self._insert_if_absent(normalized_label, confirmation, reviewed_at, db)
            return GlobalConflictOutcome.CREATED if created else GlobalConflictOutcome.DISAGREED

        if existing.coa_code == confirmation.coa_code:
            return await self._reinforce(normalized_label, confirmation, reviewed_at, db)

        if self.thresholds.global_conflict_policy == GlobalConflictPolicy.OVERRIDE_AFTER_N:
            return await self._challenge(normalized_label, existing.coa_code, confirmation, reviewed_at, db)

        return await self._record_disagreement(normalized_label, existing.coa_code, confirmation, db)

    async def get(self, normalized_label: str, db: AsyncSession):
        result = await db.execute(
            sa.select(global_coa_mappings)
            .where(global_coa_mappings.c.normalized_label == normalized_label)
        )
        return result.first()

    async def find_containing(self, variation: str, db: AsyncSession, limit: int = 5) -> list:
        """Global rows whose normalized label contains the variation"""
        t = global_coa_mappings
        result = await db.execute(
            sa.select(t)
            .where(token_containment(t.c.normalized_label, variation))
            .order_by(t.c.confidence.desc(), t.c.usage_count.desc(), t.c.normalized_label)
            .limit(limit)
        )
        return list(result.fetchall())

    async def list_all(self, db: AsyncSession) -> list:
        result = await db.execute(
            sa.select(global_coa_mappings).order_by(global_coa_mappings.c.normalized_label)
        )
        return list(result.fetchall())

    async def purge(self, normalized_label: str, db: AsyncSession) -> bool:
        result = await db.execute(
            sa.delete(global_coa_mappings)
            .where(global_coa_mappings.c.normalized_label == normalized_label)
        )
        await db.commit()
        return result.rowcount > 0

    async def _insert_if_absent(
        self,
        normalized_label: str,
        confirmation: MappingConfirmation,
        reviewed_at: datetime,
        db: AsyncSession,
    ) -> bool:
        t = global_coa_mappings
        stmt = (
            upsert_insert(db, t)
            .values(
                normalized_label=normalized_label,
                coa_code=confirmation.coa_code,
                coa_name=confirmation.coa_name,
                category=category_from_code(confirmation.coa_code),
                confidence=self.thresholds.learned_global_exact,
                usage_count=1,
                challenger_count=0,
                disagreement_count=0,
                source_deal_id=confirmation.deal_id,
                last_reviewed_by=confirmation.reviewed_by,
                last_reviewed_at=reviewed_at,
                created_at=reviewed_at,
            )
            .on_conflict_do_nothing(index_elements=[t.c.normalized_label])
            .returning(t.c.id)
        )
        result = await db.execute(stmt)
        created = result.first() is not None
        await db.commit()
        return created

    async def _reinforce(
        self,
        normalized_label: str,
        confirmation: MappingConfirmation,
        reviewed_at: datetime,
        db: AsyncSession,
    ) -> GlobalConflictOutcome:
        t = global_coa_mappings
        th = self.thresholds
        boosted = t.c.confidence * th.reinforcement_factor
        result = await db.execute(
            sa.update(t)
            .where(t.c.normalized_label == normalized_label, t.c.coa_code == confirmation.coa_code)
            .values(
                usage_count=t.c.usage_count + 1,
                confidence=sa.case(
                    (boosted > th.learned_confidence_cap, th.learned_confidence_cap),
                    else_=boosted,
                ),
                last_reviewed_by=confirmation.reviewed_by,
                last_reviewed_at=reviewed_at,
            )
        )
        await db.commit()

        if result.rowcount == 0:
            # Code changed (or row purged) between the read and the update
            current = await self.get(normalized_label, db)
            return await self._record_disagreement(
                normalized_label, current.coa_code if current else None, confirmation, db
            )

        logger.info("global_mapping_reinforced",
                   normalized_label=normalized_label,
                   coa_code=confirmation.coa_code)
        return GlobalConflictOutcome.REINFORCED

    async def _record_disagreement(
        self,
        normalized_label: str,
        existing_code: Optional[str],
        confirmation: MappingConfirmation,
        db: AsyncSession,
    ) -> GlobalConflictOutcome:
        t = global_coa_mappings
        await db.execute(
            sa.update(t)
            .where(t.c.normalized_label == normalized_label)
            .values(disagreement_count=t.c.disagreement_count + 1)
        )
        await db.commit()

        logger.info("global_mapping_conflict_skipped",
                   normalized_label=normalized_label,
                   existing_code=existing_code,
                   proposed_code=confirmation.coa_code,
                   deal_id=confirmation.deal_id)
        return GlobalConflictOutcome.DISAGREED

    async def _challenge(
        self,
        normalized_label: str,
        existing_code: str,
        confirmation: MappingConfirmation,
        reviewed_at: datetime,
        db: AsyncSession,
    ) -> GlobalConflictOutcome:
        """
        Count a disagreeing correction and replace the mapping once the same
        challenger code reaches the override threshold. One UPDATE: every SET
        expression reads the pre-update row.
        """
        t = global_coa_mappings
        th = self.thresholds
        code = confirmation.coa_code

        challenger_total = sa.case(
            (t.c.challenger_code == code, t.c.challenger_count + 1),
            else_=1,
        )
        overrides = challenger_total >= th.global_override_threshold

        def when_override(new_value, current):
            return sa.case((overrides, new_value), else_=current)

        result = await db.execute(
            sa.update(t)
            .where(t.c.normalized_label == normalized_label, t.c.coa_code == existing_code)
            .values(
                coa_code=when_override(sa.literal(code, sa.Text), t.c.coa_code),
                coa_name=when_override(sa.literal(confirmation.coa_name, sa.Text), t.c.coa_name),
                category=when_override(sa.literal(category_from_code(code), sa.Text), t.c.category),
                confidence=when_override(sa.literal(th.learned_global_exact, sa.Float), t.c.confidence),
                usage_count=when_override(challenger_total, t.c.usage_count),
                challenger_code=when_override(sa.null(), sa.literal(code, sa.Text)),
                challenger_count=when_override(0, challenger_total),
                disagreement_count=t.c.disagreement_count + 1,
                source_deal_id=when_override(sa.literal(confirmation.deal_id, sa.Text), t.c.source_deal_id),
                last_reviewed_by=when_override(sa.literal(confirmation.reviewed_by, sa.Text), t.c.last_reviewed_by),
                last_reviewed_at=when_override(sa.literal(reviewed_at, sa.DateTime), t.c.last_reviewed_at),
            )
            .returning(t.c.coa_code, t.c.challenger_count)
        )
        row = result.first()
        await db.commit()

        if row is not None and row.coa_code == code:
            logger.warning("global_mapping_overridden",
                          normalized_label=normalized_label,
                          previous_code=existing_code,
                          coa_code=code)
            return GlobalConflictOutcome.OVERRIDDEN

        logger.info("global_mapping_challenged",
                   normalized_label=normalized_label,
                   existing_code=existing_code,
                   challenger_code=code,
                   challenger_count=row.challenger_count if row else None)
        return GlobalConflictOutcome.CHALLENGED


class LearnedMappingStore:
    """
    Facade over both tiers: learning, ranked suggestions, stats.

    Usage:
        await learned_mapping_store.learn_from_mapping(
            MappingConfirmation(source_label="MCAID RM&B", coa_code="4110",
                                coa_name="Medicaid Room & Board", deal_id="D1"),
            db,
        )
        match = await learned_mapping_store.find_learned_match("MCAID RM&B", db, deal_id="D1")
    """

    def __init__(
        self,
        thresholds: Optional[MatchThresholds] = None,
        deal_repository: Optional[DealMappingRepository] = None,
        global_repository: Optional[GlobalMappingRepository] = None,
    ):
        self._thresholds = thresholds
        self.deals = deal_repository or DealMappingRepository()
        self.globals = global_repository or GlobalMappingRepository(thresholds)

    @property
    def thresholds(self) -> MatchThresholds:
        return self._thresholds or get_settings().matching

    # ---- learning -------------------------------------------------------------------

    @staticmethod
    def validate_confirmation(confirmation: MappingConfirmation) -> str:
        """Check a confirmation can be learned. Returns its normalized label."""
        normalized = normalize_label(confirmation.source_label)
        if not normalized:
            raise ValueError(f"Label {confirmation.source_label!r} has no matchable content")

        account = find_account(confirmation.coa_code)
        if account is None or account.is_header:
            raise ValueError(f"COA code {confirmation.coa_code!r} is not a postable account")
        return normalized

    async def learn_from_mapping(self, confirmation: MappingConfirmation, db: AsyncSession) -> LearnOutcome:
        """
        Persist a human confirmation to both tiers.

        Raises:
            ValueError: label normalizes to nothing, or the code is not a
                postable chart account
        """
        normalized = self.validate_confirmation(confirmation)
        reviewed_at = utcnow()

        deal_recorded = False
        if confirmation.deal_id:
            await self.deals.upsert_confirmation(confirmation, normalized, reviewed_at, db)
            deal_recorded = True

        global_outcome = await self.globals.learn(normalized, confirmation, reviewed_at, db)

        logger.info("coa_mapping_learned",
                   source_label=confirmation.source_label,
                   normalized_label=normalized,
                   coa_code=confirmation.coa_code,
                   deal_id=confirmation.deal_id,
                   reviewed_by=confirmation.reviewed_by,
                   global_outcome=global_outcome.value)

        return LearnOutcome(
            normalized_label=normalized,
            deal_recorded=deal_recorded,
            global_outcome=global_outcome,
        )

    async def learn_from_mappings(
        self,
        confirmations: Iterable[MappingConfirmation],
        db: AsyncSession,
    ) -> list[LearnOutcome]:
        """
        Learn a batch in order. Each confirmation commits on its own.

        Every confirmation is validated before the first write, so a batch
        with any invalid entry persists nothing.

        Raises:
            ValueError: naming the index of the first invalid confirmation
        """
        confirmations = list(confirmations)
        for index, confirmation in enumerate(confirmations):
            try:
                self.validate_confirmation(confirmation)
            except ValueError as e:
                raise ValueError(f"Confirmation {index}: {e}") from e

        return [await self.learn_from_mapping(c, db) for c in confirmations]

    async def record_outcome(
        self,
        deal_id: str,
        source_label: str,
        db: AsyncSession,
        coa_code: Optional[str] = None,
        coa_name: Optional[str] = None,
        confidence: Optional[float] = None,
        facility_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> bool:
        """Best-effort statistics write; failures are logged, never raised"""
        try:
            await self.deals.record_outcome(
                deal_id, source_label, coa_code, coa_name, confidence, db,
                facility_id=facility_id, document_id=document_id,
            )
            return True
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("coa_outcome_record_failed",
                          deal_id=deal_id,
                          source_label=source_label,
                          error=str(e))
            return False

    # ---- lookup ---------------------------------------------------------------------

    async def get_learned_suggestions(
        self,
        source_label: str,
        db: AsyncSession,
        deal_id: Optional[str] = None,
    ) -> list[LearnedSuggestion]:
        """
        Ranked, de-duplicated learned suggestions for a label.

        Deal rows are probed only when deal_id is given. Ranking: confidence,
        then deal before global, then exact before containment. A code found
        in both tiers is boosted once.
        """
        t = self.thresholds
        variations = generate_label_variations(source_label)
        if not variations:
            return []
        normalized = variations[0]

        hits: list[LearnedSuggestion] = []

        if deal_id:
            seen_ids = set()
            for variation in variations:
                for row in await self.deals.find_containing(deal_id, variation, db):
                    if row.id in seen_ids:
                        continue
                    seen_ids.add(row.id)
                    is_exact = row.normalized_label == normalized
                    hits.append(LearnedSuggestion(
                        coa_code=row.coa_code,
                        coa_name=row.coa_name or row.coa_code,
                        confidence=t.learned_deal_exact if is_exact else t.learned_deal_partial,
                        scope=LearnedScope.DEAL,
                        is_exact=is_exact,
                        matched_label=row.source_label,
                        usage_count=row.usage_count,
                        reason="Exact match from this deal" if is_exact else "Similar label from this deal",
                    ))

        partial_scale = t.learned_global_partial / t.learned_global_exact
        seen_ids = set()
        for variation in variations:
            for row in await self.globals.find_containing(variation, db):
                if row.id in seen_ids:
                    continue
                seen_ids.add(row.id)
                is_exact = row.normalized_label == normalized
                confidence = row.confidence if is_exact else row.confidence * partial_scale
                hits.append(LearnedSuggestion(
                    coa_code=row.coa_code,
                    coa_name=row.coa_name or row.coa_code,
                    confidence=min(confidence, t.learned_confidence_cap),
                    scope=LearnedScope.GLOBAL,
                    is_exact=is_exact,
                    matched_label=row.normalized_label,
                    usage_count=row.usage_count,
                    reason=(
                        "Exact match from learned patterns" if is_exact
                        else "Similar pattern from other deals"
                    ),
                ))

        return self._rank(hits)[: t.suggestion_limit]

    async def find_learned_match(
        self,
        source_label: str,
        db: AsyncSession,
        deal_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
    ) -> Optional[LearnedSuggestion]:
        """Best learned suggestion if it clears the minimum confidence"""
        if min_confidence is None:
            min_confidence = self.thresholds.learned_min_confidence

        suggestions = await self.get_learned_suggestions(source_label, db, deal_id=deal_id)
        if suggestions and suggestions[0].confidence >= min_confidence:
            return suggestions[0]
        return None

    # ---- stats & management ---------------------------------------------------------

    async def get_deal_mapping_stats(self, deal_id: str, db: AsyncSession) -> DealMappingStats:
        return await self.deals.get_stats(deal_id, db)

    async def get_common_unmapped_labels(self, db: AsyncSession, limit: int = 20) -> list[UnmappedLabelCount]:
        """Labels most often left unmapped across deals, for growing the static tables"""
        return await self.deals.common_unmapped_labels(db, limit=limit)

    async def export_learned_mappings(self, db: AsyncSession) -> LearnedMappingExport:
        """Global tier plus mapped deal rows grouped by deal, for backup or review"""
        global_rows = await self.globals.list_all(db)
        deal_rows = await self.deals.list_mapped(db)

        per_deal: dict[str, list[DealMapping]] = defaultdict(list)
        for row in deal_rows:
            per_deal[row.deal_id].append(DealMapping(
                source_label=row.source_label,
                coa_code=row.coa_code,
                coa_name=row.coa_name,
                mapping_method=row.mapping_method,
                reviewed_by=row.reviewed_by,
                reviewed_at=row.reviewed_at,
            ))

        return LearnedMappingExport(
            global_mappings=[
                GlobalMapping(
                    normalized_label=r.normalized_label,
                    coa_code=r.coa_code,
                    coa_name=r.coa_name,
                    category=r.category,
                    confidence=r.confidence,
                    usage_count=r.usage_count,
                    disagreement_count=r.disagreement_count,
                    challenger_code=r.challenger_code,
                    challenger_count=r.challenger_count,
                    source_deal_id=r.source_deal_id,
                    last_reviewed_at=r.last_reviewed_at,
                )
                for r in global_rows
            ],
            per_deal=dict(per_deal),
        )

    async def purge_global_mapping(self, normalized_label: str, db: AsyncSession) -> bool:
        removed = await self.globals.purge(normalized_label, db)
        logger.info("global_mapping_purged", normalized_label=normalized_label, removed=removed)
        return removed

    async def purge_deal_mappings(self, deal_id: str, db: AsyncSession) -> int:
        removed = await self.deals.purge(deal_id, db)
        logger.info("deal_mappings_purged", deal_id=deal_id, removed=removed)
        return removed

    def _rank(self, hits: list[LearnedSuggestion]) -> list[LearnedSuggestion]:
        t = self.thresholds

        def order(s: LearnedSuggestion):
            return (-s.confidence, s.scope != LearnedScope.DEAL, not s.is_exact)

        scopes_by_code: dict[str, set] = defaultdict(set)
        for hit in hits:
            scopes_by_code[hit.coa_code].add(hit.scope)

        ranked = []
        seen_codes = set()
        for hit in sorted(hits, key=order):
            if hit.coa_code in seen_codes:
                continue
            seen_codes.add(hit.coa_code)
            if len(scopes_by_code[hit.coa_code]) > 1:
                # Corroborated by the other tier
                hit = hit.model_copy(update={
                    "confidence": min(hit.confidence * t.reinforcement_factor, t.learned_confidence_cap),
                    "usage_count": hit.usage_count + 1,
                })
            ranked.append(hit)

        return sorted(ranked, key=order)


# Singleton instance
learned_mapping_store = LearnedMappingStore()
