"""
Brave Search API web search adapter.

Implements WebSearchPort with httpx. The client can be injected so tests
can run against ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from domain.models import WebSearchResult
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


class BraveWebSearchAdapter:
    """Brave Search implementation of WebSearchPort."""

    def __init__(
        self,
        api_key: str,
        endpoint: str = BRAVE_SEARCH_URL,
        timeout: float = Defaults.WEB_SEARCH_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = client

    async def search(self, query: str, count: int = Defaults.WEB_SEARCH_RESULTS) -> List[WebSearchResult]:
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self._api_key,
        }
        params = {"q": query, "count": count}
        try:
            if self._client is not None:
                response = await self._client.get(self._endpoint, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._endpoint, params=params, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.error("web_search_failed", query=query, error=str(exc))
            raise ExternalServiceError("BraveSearch", f"Web search failed: {exc}") from exc

        results = self._parse_results(data)[:count]
        logger.info("web_search_completed", query=query, results=len(results))
        return results

    @staticmethod
    def _parse_results(data: Dict[str, Any]) -> List[WebSearchResult]:
        results: List[WebSearchResult] = []
        for item in (data.get("web") or {}).get("results", []) or []:
            url = item.get("url")
            if not url:
                continue
            results.append(
                WebSearchResult(
                    title=item.get("title") or url,
                    url=url,
                    snippet=item.get("description") or "",
                )
            )
        return results
