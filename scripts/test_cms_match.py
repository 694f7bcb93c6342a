#!/usr/bin/env python3
"""
Match sample facilities against the live CMS registry (no database).

Usage:
    python scripts/test_cms_match.py [name] [state]

Example:
    python scripts/test_cms_match.py "Valley Grande Manor" TX
"""
import sys
import os
import asyncio
import time

# Add parent directory to path so we can import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.domain.entity_resolution.schemas import ExtractedFacility
from dealcore.integrations.cms.client import CMSRegistryClient
from dealcore.integrations.cms.registry_cache import RegistryCache

SAMPLE_FACILITIES = [
    ExtractedFacility(name="Valley Grande Manor", city="Weslaco", state="TX", licensed_beds=147),
    ExtractedFacility(name="Avir Beaumont", city="Beaumont", state="TX", licensed_beds=214),
    ExtractedFacility(name="Colonial Manor", state="TX"),
    ExtractedFacility(name="Evergreen Post Acute", state="OR"),
    ExtractedFacility(name="Guadalupe Valley Nursing", city="Seguin", state="TX"),
]


async def main():
    if len(sys.argv) > 1:
        state = sys.argv[2] if len(sys.argv) > 2 else None
        facilities = [ExtractedFacility(name=sys.argv[1], state=state)]
    else:
        facilities = SAMPLE_FACILITIES

    client = CMSRegistryClient()
    matcher = ProviderMatcher(RegistryCache(client))

    try:
        for facility in facilities:
            print("-" * 60)
            print(f"{facility.name} ({facility.city or 'N/A'}, {facility.state or 'N/A'}), "
                  f"beds: {facility.licensed_beds or 'N/A'}")

            started = time.monotonic()
            result = await matcher.match_facility(facility)
            elapsed = time.monotonic() - started

            print(f"  Decision: {result.decision.value} ({result.confidence:.0%}) in {elapsed:.2f}s")
            if result.provider:
                p = result.provider
                print(f"  Provider: {p.provider_name} [{p.ccn}] {p.city}, {p.state}, beds {p.number_of_beds}")
                print(f"  Auto-verified: {result.auto_verified}")
            print(f"  Reason: {result.reason}")
            for candidate in result.candidates[1:]:
                print(f"    alt: {candidate.provider.provider_name} [{candidate.provider.ccn}] "
                      f"{candidate.confidence:.0%}")
    finally:
        await client.close()


if __name__ == "__main__":
    asyncio.run(main())
