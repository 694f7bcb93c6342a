"""
Shared FastAPI dependencies for the matching services

The registry cache holds the in-process layer and the outbound semaphore, so
one instance serves the whole process.
"""
from functools import lru_cache

from dealcore.common.database import sessionmanager
from dealcore.domain.coa.learned_mappings import LearnedMappingStore, learned_mapping_store
from dealcore.domain.coa.match_orchestrator import MatchOrchestrator, match_orchestrator
from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.integrations.cms.client import CMSRegistryClient
from dealcore.integrations.cms.registry_cache import RegistryCache


@lru_cache()
def get_registry_cache() -> RegistryCache:
    return RegistryCache(CMSRegistryClient(), session_factory=sessionmanager.session)


def get_provider_matcher() -> ProviderMatcher:
    return ProviderMatcher(get_registry_cache())


def get_match_orchestrator() -> MatchOrchestrator:
    return match_orchestrator


def get_learned_store() -> LearnedMappingStore:
    return learned_mapping_store
