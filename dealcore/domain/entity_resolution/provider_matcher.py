"""
Provider Matcher - resolves extracted facilities against the CMS registry

Flow per facility:
1. CCN present in the documents -> fetch by id (confidence 1.0 when found)
2. Otherwise search the registry by name + state through RegistryCache
   (retry on the longest normalized name token when the full-name search is empty)
3. Rank candidates with CandidateRanker and apply the decision ladder

Batches fan out concurrently. One facility failing (registry down, bad data)
yields a NO_MATCH result for that facility only; the batch continues.
"""
import asyncio
from typing import Iterable, Optional

import structlog

from dealcore.domain.entity_resolution.candidate_ranker import CandidateRanker
from dealcore.domain.entity_resolution.schemas import (
    ExtractedFacility,
    MatchDecision,
    MatchResult,
)
from dealcore.integrations.cms.registry_cache import RegistryCache
from dealcore.integrations.cms.schemas import CanonicalProvider, ProviderProfile
from dealcore.matching.text_normalizer import normalize_name, normalize_text

logger = structlog.get_logger()


class ProviderMatcher:
    """
    Matches ExtractedFacility records to CanonicalProvider records.

    Usage:
        matcher = ProviderMatcher(registry_cache)
        result = await matcher.match_facility(ExtractedFacility(name="Valley Grande Manor", state="TX"))
        if result.decision == MatchDecision.MATCHED:
            print(result.provider.ccn, result.confidence)
    """

    def __init__(self, registry: RegistryCache, ranker: Optional[CandidateRanker] = None):
        self.registry = registry
        self.ranker = ranker or CandidateRanker(registry.settings.matching)

    async def match_facility(self, facility: ExtractedFacility) -> MatchResult:
        """Resolve one facility; never raises for registry problems"""
        logger.info("facility_match_started",
                   facility=facility.name,
                   city=facility.city,
                   state=facility.state,
                   ccn=facility.ccn)

        if facility.ccn:
            provider = await self.registry.get_provider(facility.ccn)
            if provider:
                return self._ccn_match(facility, provider)
            logger.info("facility_ccn_not_found",
                       facility=facility.name,
                       ccn=facility.ccn)

        providers = await self._search(facility)
        result = self.ranker.resolve(facility, providers)

        logger.info("facility_match_complete",
                   facility=facility.name,
                   decision=result.decision.value,
                   confidence=round(result.confidence, 4),
                   auto_verified=result.auto_verified,
                   ccn=result.provider.ccn if result.provider else None)
        return result

    async def match_facilities(self, facilities: Iterable[ExtractedFacility]) -> list[MatchResult]:
        """Resolve a batch concurrently, isolating per-facility failures"""
        facilities = list(facilities)
        outcomes = await asyncio.gather(
            *(self.match_facility(f) for f in facilities),
            return_exceptions=True,
        )

        results = []
        for facility, outcome in zip(facilities, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("facility_match_failed",
                            facility=facility.name,
                            error=str(outcome),
                            exc_info=outcome)
                results.append(MatchResult(
                    facility=facility,
                    decision=MatchDecision.NO_MATCH,
                    reason=f"Matching failed: {outcome}",
                ))
            else:
                results.append(outcome)

        matched = sum(1 for r in results if r.decision == MatchDecision.MATCHED)
        logger.info("facility_batch_complete",
                   total=len(results),
                   matched=matched,
                   possible=sum(1 for r in results if r.decision == MatchDecision.POSSIBLE),
                   unmatched=sum(1 for r in results if r.decision == MatchDecision.NO_MATCH))
        return results

    async def get_provider_profile(self, ccn: str) -> Optional[ProviderProfile]:
        """Provider with penalties and deficiencies, fetched concurrently"""
        provider, penalties, deficiencies = await asyncio.gather(
            self.registry.get_provider(ccn),
            self.registry.get_penalties(ccn),
            self.registry.get_deficiencies(ccn),
        )
        if provider is None:
            return None
        return ProviderProfile(provider=provider, penalties=penalties, deficiencies=deficiencies)

    async def _search(self, facility: ExtractedFacility) -> list[CanonicalProvider]:
        providers = await self.registry.search_providers(facility.name, facility.state)
        if providers:
            return providers

        # Keyword search is literal; fall back to the most distinctive token
        tokens = normalize_name(facility.name).split()
        if tokens:
            fallback = max(tokens, key=len)
            if fallback != normalize_text(facility.name):
                logger.debug("facility_search_fallback",
                            facility=facility.name,
                            keyword=fallback)
                providers = await self.registry.search_providers(fallback, facility.state)
        return providers

    def _ccn_match(self, facility: ExtractedFacility, provider: CanonicalProvider) -> MatchResult:
        candidate = self.ranker.score_candidate(facility, provider)
        candidate = candidate.model_copy(update={
            "confidence": 1.0,
            "reason": f"Certification number {provider.ccn}; {candidate.reason}",
        })
        logger.info("facility_matched_by_ccn",
                   facility=facility.name,
                   ccn=provider.ccn)
        return MatchResult(
            facility=facility,
            decision=MatchDecision.MATCHED,
            provider=provider,
            confidence=1.0,
            auto_verified=True,
            candidates=[candidate],
            reason=f"Matched via CCN {provider.ccn}",
        )
