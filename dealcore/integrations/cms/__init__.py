"""
CMS provider registry integration

- CMSRegistryClient: raw calls against the rate-limited registry API
- RegistryCache: memory + persistent TTL cache in front of the client
"""

from dealcore.integrations.cms.client import CMSRegistryClient, RegistryUnavailableError
from dealcore.integrations.cms.registry_cache import RegistryCache
from dealcore.integrations.cms.schemas import (
    CanonicalProvider,
    ProviderDeficiency,
    ProviderPenalty,
    ProviderProfile,
    normalize_ccn,
    parse_int,
    parse_numeric,
)

__all__ = [
    'CMSRegistryClient',
    'RegistryUnavailableError',
    'RegistryCache',
    'CanonicalProvider',
    'ProviderDeficiency',
    'ProviderPenalty',
    'ProviderProfile',
    'normalize_ccn',
    'parse_int',
    'parse_numeric',
]
