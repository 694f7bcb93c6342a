"""
Facility resolution task - batch matching against the CMS registry

Flow:
1. Validate the queued facility dicts into ExtractedFacility records
2. Open a database engine for this task's event loop (persistent cache layer)
3. Run ProviderMatcher.match_facilities (concurrent, per-facility isolation)
4. Return JSON-ready MatchResult dicts

Registry outages degrade individual facilities to no_match; they never fail
the task.
"""
import asyncio
from typing import Any, Dict, List

import structlog
from pydantic import ValidationError

from dealcore.common.config import get_settings
from dealcore.common.database import sessionmanager
from dealcore.domain.entity_resolution.provider_matcher import ProviderMatcher
from dealcore.domain.entity_resolution.schemas import ExtractedFacility, MatchDecision
from dealcore.integrations.cms.client import CMSRegistryClient
from dealcore.integrations.cms.registry_cache import RegistryCache
from services.worker.celery_app import app

logger = structlog.get_logger()


async def resolve_facilities(facilities: List[ExtractedFacility]) -> List[Dict[str, Any]]:
    """Match a batch with a task-scoped registry cache and database engine"""
    settings = get_settings()
    await sessionmanager.init(settings.database_url)

    client = CMSRegistryClient(settings)
    cache = RegistryCache(client, session_factory=sessionmanager.session, settings=settings)
    try:
        results = await ProviderMatcher(cache).match_facilities(facilities)
    finally:
        await client.close()
        await sessionmanager.close()

    return [r.model_dump(mode="json") for r in results]


@app.task(name="services.worker.tasks.resolve_facilities.resolve_facilities_task")
def resolve_facilities_task(facilities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Resolve queued facilities against the registry.

    Args:
        facilities: ExtractedFacility dicts as queued by the API

    Returns:
        Dict with counts and one MatchResult dict per valid facility
    """
    logger.info("facility_resolution_started", facilities=len(facilities))

    valid: List[ExtractedFacility] = []
    rejected = []
    for index, raw in enumerate(facilities):
        try:
            valid.append(ExtractedFacility.model_validate(raw))
        except ValidationError as e:
            logger.warning("facility_rejected",
                          index=index,
                          errors=e.errors(include_url=False))
            rejected.append({"index": index, "error": str(e)})

    results = asyncio.run(resolve_facilities(valid)) if valid else []

    summary = {
        "total": len(facilities),
        "matched": sum(1 for r in results if r["decision"] == MatchDecision.MATCHED.value),
        "possible": sum(1 for r in results if r["decision"] == MatchDecision.POSSIBLE.value),
        "no_match": sum(1 for r in results if r["decision"] == MatchDecision.NO_MATCH.value),
        "rejected": rejected,
        "results": results,
    }

    logger.info("facility_resolution_complete",
               total=summary["total"],
               matched=summary["matched"],
               possible=summary["possible"],
               no_match=summary["no_match"],
               rejected=len(rejected))
    return summary
