"""
Taxonomy Matcher - Rule-based mapping from line-item labels to COA codes

Static classification path. NO I/O, no learned state: the result is a pure
function of (label, category hint).

Ladder (confidences from MatchThresholds):
1. Canonical mapping key of a chart account          -> 0.95
2. Synonym / variation table                         -> 0.90
3. Synonym key contained in the label, or the label
   contained in a synonym key, on underscore token
   boundaries (longest key wins)                     -> 0.75
4. Category hint -> aggregate total account          -> 0.50
5. Otherwise no match
"""
from typing import Optional

import structlog

from dealcore.common.config import MatchThresholds, get_settings
from dealcore.domain.coa.chart_of_accounts import (
    SNF_CHART_OF_ACCOUNTS,
    find_account,
    find_account_by_mapping_key,
)
from dealcore.domain.coa.schemas import COAGuess, TaxonomyMatch
from dealcore.matching.similarity import word_overlap
from dealcore.matching.text_normalizer import normalize_label

logger = structlog.get_logger()


def contains_key(label: str, key: str) -> bool:
    """True if key appears in label as a whole run of underscore tokens"""
    if not label or not key:
        return False
    return f"_{key}_" in f"_{label}_"


class TaxonomyMatcher:
    """
    Maps normalized line-item labels to chart-of-accounts codes.

    Usage:
        match = taxonomy_matcher.match("Medicaid Room & Board Revenue")
        # TaxonomyMatch(coa_code="4110", confidence=0.95, ...)
    """

    # === SYNONYM / VARIATION TABLE ===
    LABEL_VARIATIONS = {
        # Revenue
        "medicaid": "4110",
        "medicaid_revenue": "4110",
        "mcaid": "4110",
        "mcaid_rev": "4110",
        "managed_medicaid": "4120",
        "mco_medicaid": "4120",
        "mco": "4120",
        "private_pay": "4130",
        "private": "4130",
        "self_pay": "4130",
        "va": "4140",
        "veterans": "4140",
        "hospice": "4150",
        "medicare": "4210",
        "medicare_a": "4210",
        "mcr": "4210",
        "mcr_a": "4210",
        "pdpm": "4210",
        "medicare_advantage": "4215",
        "ma": "4215",
        "hmo": "4250",
        "commercial": "4250",
        "insurance_revenue": "4250",
        "part_b": "4410",
        "medicare_b": "4410",
        "upl": "4430",
        "igp": "4430",
        "total_revenue": "4999",
        "gross_revenue": "4999",

        # Nursing
        "nursing": "5299",
        "nursing_expense": "5299",
        "nursing_wages": "5210",
        "rn_wages": "5210",
        "lpn_wages": "5211",
        "cna_wages": "5212",
        "nursing_benefits": "5220",
        "agency_nursing": "5230",
        "contract_nursing": "5230",
        "travel_nursing": "5230",
        "nursing_supplies": "5253",

        # Therapy
        "therapy": "5119",
        "therapy_expense": "5119",
        "pt": "5111",
        "physical_therapy": "5111",
        "ot": "5112",
        "occupational_therapy": "5112",
        "slp": "5113",
        "speech_therapy": "5113",

        # Dietary
        "dietary": "5799",
        "food_service": "5799",
        "raw_food": "5740",
        "food_cost": "5740",

        # Plant / maintenance
        "plant": "5499",
        "maintenance": "5499",
        "utilities": "5430",
        "electric": "5430",
        "gas": "5431",
        "water": "5432",

        # Admin
        "admin": "6199",
        "administration": "6199",
        "administrator": "6110",
        "insurance_expense": "6150",
        "gl_insurance": "6150",
        "workers_comp": "6152",
        "professional_liability": "6151",
        "it": "6140",
        "legal": "6170",
        "accounting": "6171",

        # Other operating
        "bad_debt": "6200",
        "bed_tax": "6300",
        "provider_tax": "6300",
        "management_fee": "6500",
        "mgmt_fee": "6500",
        "rent": "7010",
        "lease": "7010",
        "property_tax": "7020",
        "depreciation": "8010",
        "amortization": "8020",
        "interest": "8030",
        "interest_expense": "8030",

        # Totals
        "total_expenses": "6499",
        "operating_expenses": "6499",
        "ebitdar": "6600",
        "ebitda": "7100",
        "net_income": "9000",
        "profit": "9000",

        # Statistics
        "patient_days": "9199",
        "total_days": "9199",
        "medicaid_days": "9111",
        "medicare_days": "9121",
        "skilled_days": "9129",
        "licensed_beds": "9210",
        "beds": "9210",
        "operational_beds": "9211",
        "staffed_beds": "9211",
        "occupancy": "9230",
        "census": "9220",
        "adc": "9220",
    }

    # === CATEGORY HINT → AGGREGATE ACCOUNT (checked in order) ===
    CATEGORY_FALLBACKS = [
        ("revenue", "4999"),
        ("expense", "6499"),
        ("nursing", "5299"),
        ("therapy", "5119"),
        ("dietary", "5799"),
        ("admin", "6199"),
        ("plant", "5499"),
    ]

    def __init__(self, thresholds: Optional[MatchThresholds] = None):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> MatchThresholds:
        # Resolved lazily so the module singleton picks up settings at first use
        return self._thresholds or get_settings().matching

    def match(self, label: str, category: Optional[str] = None) -> Optional[TaxonomyMatch]:
        """
        Classify a label against the static tables.

        Args:
            label: Line-item label as extracted
            category: Optional category hint from extraction

        Returns:
            TaxonomyMatch, or None when no rule applies
        """
        t = self.thresholds
        normalized = normalize_label(label)

        if normalized:
            account = find_account_by_mapping_key(normalized)
            if account:
                return TaxonomyMatch(
                    coa_code=account.code,
                    confidence=t.exact_key_confidence,
                    reason="Direct mapping key match",
                )

            code = self.LABEL_VARIATIONS.get(normalized)
            if code:
                return TaxonomyMatch(
                    coa_code=code,
                    confidence=t.synonym_confidence,
                    reason="Common variation match",
                )

            partial = self._partial_match(normalized)
            if partial:
                variation, code = partial
                return TaxonomyMatch(
                    coa_code=code,
                    confidence=t.partial_confidence,
                    reason=f"Partial match: {variation}",
                )

        if category:
            normalized_category = normalize_label(category)
            for hint, code in self.CATEGORY_FALLBACKS:
                if hint in normalized_category:
                    return TaxonomyMatch(
                        coa_code=code,
                        confidence=t.category_confidence,
                        reason=f"Category match: {hint}",
                    )

        return None

    def find_possible_matches(
        self,
        label: str,
        limit: Optional[int] = None,
    ) -> list[COAGuess]:
        """
        Ranked guesses for a label no rule accepted.

        Word overlap against every non-header account name, plus partial hits
        on mapping keys and the synonym table. One guess per account.
        """
        t = self.thresholds
        limit = limit or t.guess_limit
        normalized = normalize_label(label)
        if not normalized:
            return []

        words = normalized.split("_")
        best: dict[str, COAGuess] = {}

        def offer(guess: COAGuess):
            current = best.get(guess.coa_code)
            if current is None or guess.confidence > current.confidence:
                best[guess.coa_code] = guess

        for account in SNF_CHART_OF_ACCOUNTS:
            if account.is_header:
                continue

            account_words = normalize_label(account.name).split("_")
            common = word_overlap(words, account_words)
            if common:
                confidence = len(common) / max(len(words), len(account_words)) * t.guess_overlap_weight
                offer(COAGuess(
                    coa_code=account.code,
                    coa_name=account.name,
                    confidence=confidence,
                    reason=f"Word match: {', '.join(common)}",
                ))

            for key in account.mapping_keys:
                if contains_key(normalized, key) or contains_key(key, normalized):
                    offer(COAGuess(
                        coa_code=account.code,
                        coa_name=account.name,
                        confidence=t.guess_partial_confidence,
                        reason=f"Mapping key similarity: {key}",
                    ))

        for variation, code in self.LABEL_VARIATIONS.items():
            if contains_key(normalized, variation) or contains_key(variation, normalized):
                account = find_account(code)
                if account:
                    offer(COAGuess(
                        coa_code=code,
                        coa_name=account.name,
                        confidence=t.guess_partial_confidence,
                        reason=f"Variation similarity: {variation}",
                    ))

        ranked = sorted(best.values(), key=lambda g: (-g.confidence, g.coa_code))
        return ranked[:limit]

    def get_account_name(self, coa_code: str) -> Optional[str]:
        """Get human-readable account name for a COA code."""
        account = find_account(coa_code)
        return account.name if account else None

    def _partial_match(self, normalized: str) -> Optional[tuple[str, str]]:
        best = None
        for variation, code in self.LABEL_VARIATIONS.items():
            if contains_key(normalized, variation) or contains_key(variation, normalized):
                if best is None or len(variation) > len(best[0]):
                    best = (variation, code)
        if best:
            logger.debug("taxonomy_partial_match",
                        label=normalized,
                        variation=best[0],
                        coa_code=best[1])
        return best


# Singleton instance
taxonomy_matcher = TaxonomyMatcher()
