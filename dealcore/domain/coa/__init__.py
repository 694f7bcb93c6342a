"""
Chart-of-Accounts classification - learned, static and fallback matching

Example:
- Extracted: "Medicaid Room & Board Revenue", confidence 0.9
- Learned store (no deal id) -> skipped
- Taxonomy: mapping key "medicaid_room_board_revenue" -> 4110 (0.95)
- Output: MappingResult 4110, confidence 0.855, method "exact"
"""

from dealcore.domain.coa.chart_of_accounts import (
    SNF_CHART_OF_ACCOUNTS,
    COAAccount,
    category_from_code,
    find_account,
    find_account_by_mapping_key,
)
from dealcore.domain.coa.learned_mappings import LearnedMappingStore, learned_mapping_store
from dealcore.domain.coa.match_orchestrator import MatchOrchestrator, match_orchestrator
from dealcore.domain.coa.taxonomy_matcher import TaxonomyMatcher, taxonomy_matcher

__all__ = [
    'SNF_CHART_OF_ACCOUNTS',
    'COAAccount',
    'category_from_code',
    'find_account',
    'find_account_by_mapping_key',
    'LearnedMappingStore',
    'learned_mapping_store',
    'MatchOrchestrator',
    'match_orchestrator',
    'TaxonomyMatcher',
    'taxonomy_matcher',
]
