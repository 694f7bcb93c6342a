"""
Entity Resolution - match extracted facilities to CMS registry providers

Example:
- Extracted: "Valley Grande Manor, Weslaco TX, 147 beds"
- Registry search (cached 7 days) -> candidates
- Ranker: name 100%, city match, beds 100% -> 1.0 -> MATCHED, auto-verified
"""

from dealcore.domain.entity_resolution.candidate_ranker import CandidateRanker, bed_similarity
from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.domain.entity_resolution.schemas import (
    ExtractedFacility,
    MatchCandidate,
    MatchDecision,
    MatchResult,
)

__all__ = [
    'CandidateRanker',
    'bed_similarity',
    'ProviderMatcher',
    'ExtractedFacility',
    'MatchCandidate',
    'MatchDecision',
    'MatchResult',
]
