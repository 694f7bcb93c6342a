"""
Candidate Ranker - multi-factor scoring of registry providers for one facility

Pure and synchronous: no I/O, no shared state. Safe to run across facilities
in parallel.

Blended score (weights from MatchThresholds):
    0.50 * name similarity      (normalized names, edit distance)
  + 0.25 * city match           (both present and similarity > 0.80)
  + 0.25 * bed similarity       (1 - |a - b| / max(a, b), both present and nonzero)

Decision ladder:
    score >  0.70 -> MATCHED (auto-verified when > 0.90)
    0.50 .. 0.70  -> POSSIBLE, surfaced for review, never auto-accepted
    score <  0.50 -> NO_MATCH, alternatives kept for audit
"""
from typing import Iterable, Optional

import structlog

from dealcore.common.config import MatchThresholds, get_settings
from dealcore.domain.entity_resolution.schemas import (
    ExtractedFacility,
    MatchCandidate,
    MatchDecision,
    MatchResult,
)
from dealcore.integrations.cms.schemas import CanonicalProvider
from dealcore.matching.similarity import similarity
from dealcore.matching.text_normalizer import normalize_name, normalize_text

logger = structlog.get_logger()


def bed_similarity(beds_a: Optional[int], beds_b: Optional[int]) -> float:
    """Relative closeness of two bed counts; 0 when either is missing or not positive"""
    if not isinstance(beds_a, int) or not isinstance(beds_b, int):
        return 0.0
    if beds_a <= 0 or beds_b <= 0:
        return 0.0
    return 1.0 - abs(beds_a - beds_b) / max(beds_a, beds_b)


class CandidateRanker:
    """Scores and ranks CanonicalProvider candidates for an ExtractedFacility."""

    def __init__(self, thresholds: Optional[MatchThresholds] = None):
        self.thresholds = thresholds or get_settings().matching

    def city_match(self, city_a: Optional[str], city_b: Optional[str]) -> bool:
        a = normalize_text(city_a)
        b = normalize_text(city_b)
        if not a or not b:
            return False
        return similarity(a, b) > self.thresholds.city_match_cutoff

    def blend(self, name_similarity: float, city_match: bool, beds: float) -> float:
        t = self.thresholds
        score = (
            t.name_weight * name_similarity
            + t.city_weight * (1.0 if city_match else 0.0)
            + t.bed_weight * beds
        )
        return max(0.0, min(1.0, score))

    def score_candidate(
        self,
        facility: ExtractedFacility,
        provider: CanonicalProvider,
    ) -> MatchCandidate:
        """Componentwise scores plus the blended confidence"""
        name_sim = similarity(normalize_name(facility.name), normalize_name(provider.provider_name))
        city = self.city_match(facility.city, provider.city)
        beds = bed_similarity(facility.licensed_beds, provider.number_of_beds)
        confidence = self.blend(name_sim, city, beds)

        return MatchCandidate(
            provider=provider,
            name_similarity=name_sim,
            city_match=city,
            bed_similarity=beds,
            confidence=confidence,
            reason=self._describe(name_sim, city, beds, facility, provider),
        )

    def rank(
        self,
        facility: ExtractedFacility,
        providers: Iterable[CanonicalProvider],
    ) -> list[MatchCandidate]:
        """Score every provider; descending confidence, ties broken by CCN"""
        candidates = [self.score_candidate(facility, p) for p in providers]
        return sorted(candidates, key=lambda c: (-c.confidence, c.provider.ccn))

    def decide(self, score: float) -> MatchDecision:
        t = self.thresholds
        if score > t.accept_threshold:
            return MatchDecision.MATCHED
        if score >= t.possible_floor:
            return MatchDecision.POSSIBLE
        return MatchDecision.NO_MATCH

    def is_auto_verified(self, score: float) -> bool:
        return score > self.thresholds.auto_verify_threshold

    def resolve(
        self,
        facility: ExtractedFacility,
        providers: Iterable[CanonicalProvider],
    ) -> MatchResult:
        """Pick the best provider for a facility and apply the decision ladder"""
        ranked = self.rank(facility, providers)
        top_k = ranked[: self.thresholds.alternatives_limit]

        if not ranked:
            return MatchResult(
                facility=facility,
                decision=MatchDecision.NO_MATCH,
                reason="No registry candidates found",
            )

        best = ranked[0]
        decision = self.decide(best.confidence)

        if decision == MatchDecision.MATCHED:
            result = MatchResult(
                facility=facility,
                decision=decision,
                provider=best.provider,
                confidence=best.confidence,
                auto_verified=self.is_auto_verified(best.confidence),
                candidates=top_k,
                reason=best.reason,
            )
        elif decision == MatchDecision.POSSIBLE:
            result = MatchResult(
                facility=facility,
                decision=decision,
                confidence=best.confidence,
                candidates=top_k,
                reason=f"Possible match {best.provider.provider_name} needs review: {best.reason}",
            )
        else:
            result = MatchResult(
                facility=facility,
                decision=decision,
                confidence=best.confidence,
                candidates=top_k,
                reason=(
                    f"No confident match. Best candidate {best.provider.provider_name} "
                    f"scored {best.confidence:.0%}"
                ),
            )

        logger.debug("facility_resolved",
                    facility=facility.name,
                    decision=decision.value,
                    confidence=round(best.confidence, 4),
                    ccn=best.provider.ccn,
                    candidates=len(ranked))
        return result

    @staticmethod
    def _describe(
        name_sim: float,
        city: bool,
        beds: float,
        facility: ExtractedFacility,
        provider: CanonicalProvider,
    ) -> str:
        parts = [f"name {name_sim:.0%}"]
        if city:
            parts.append(f"city match ({provider.city})")
        elif facility.city and provider.city:
            parts.append(f"city mismatch ({facility.city} vs {provider.city})")
        if beds > 0:
            parts.append(f"beds {facility.licensed_beds} vs {provider.number_of_beds} ({beds:.0%})")
        return ", ".join(parts)
