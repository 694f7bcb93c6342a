"""
CMS Provider Registry client - nursing home provider data (data.cms.gov)

Datasets:
- Provider Information: name, location, beds, star ratings, SFF status
- Penalties: fines and payment denials
- Health Deficiencies: inspection citations

The API is rate-limited. This client makes raw calls only; callers go
through RegistryCache, which checks the memory and persistent layers before
any outbound request.

"Not found" is a normal outcome (None or []). Transport failures and non-2xx
responses raise RegistryUnavailableError.
"""
from typing import Any, Optional

import httpx
import structlog

from dealcore.common.config import Settings, get_settings
from dealcore.integrations.cms.schemas import normalize_ccn

logger = structlog.get_logger()


class RegistryUnavailableError(Exception):
    """Registry could not be reached or returned an error status"""


class CMSRegistryClient:
    """
    Thin async client over the CMS provider data API.

    Usage:
        client = CMSRegistryClient()
        rows = await client.search_providers("Valley Grande", state="TX")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.cms_request_timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self):
        """Close the underlying HTTP client"""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _fetch(self, dataset: str, params: dict[str, str]) -> list[dict[str, Any]]:
        url = f"{self.settings.cms_api_base}/{dataset}/data"

        try:
            response = await self._client().get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning("cms_request_failed",
                          dataset=dataset,
                          error=str(e))
            raise RegistryUnavailableError(f"CMS request failed: {e}") from e

        if response.status_code != 200:
            logger.warning("cms_request_error_status",
                          dataset=dataset,
                          status_code=response.status_code)
            raise RegistryUnavailableError(
                f"CMS API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryUnavailableError("CMS API returned invalid JSON") from e

        if not isinstance(data, list):
            raise RegistryUnavailableError("CMS API returned unexpected payload shape")

        return data

    async def search_providers(
        self,
        name: str,
        state: Optional[str] = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Keyword search over provider information, optionally by state"""
        params = {"size": str(limit)}
        if name:
            params["keyword"] = name
        if state:
            params["filter[provider_state]"] = state.upper()

        rows = await self._fetch(self.settings.cms_provider_dataset, params)

        logger.debug("cms_search_complete",
                    name=name,
                    state=state,
                    results=len(rows))
        return rows

    async def get_provider(self, ccn: str) -> Optional[dict[str, Any]]:
        """Fetch one provider row by CCN; None when not certified/not found"""
        normalized = normalize_ccn(ccn)
        if not normalized:
            return None

        rows = await self._fetch(self.settings.cms_provider_dataset, {
            "filter[federal_provider_number]": normalized,
            "size": "1",
        })
        return rows[0] if rows else None

    async def get_penalties(self, ccn: str) -> list[dict[str, Any]]:
        """Penalty history for a provider"""
        normalized = normalize_ccn(ccn)
        if not normalized:
            return []

        return await self._fetch(self.settings.cms_penalties_dataset, {
            "filter[federal_provider_number]": normalized,
            "size": "100",
        })

    async def get_deficiencies(self, ccn: str) -> list[dict[str, Any]]:
        """Health deficiency citations for a provider"""
        normalized = normalize_ccn(ccn)
        if not normalized:
            return []

        return await self._fetch(self.settings.cms_deficiencies_dataset, {
            "filter[federal_provider_number]": normalized,
            "size": "500",
        })
