"""
Port interface for external web search.

Implementations: BraveWebSearchAdapter (adapters/)
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from domain.models import WebSearchResult


@runtime_checkable
class WebSearchPort(Protocol):
    """Fetches web results used to augment a conversational answer."""

    async def search(self, query: str, count: int = 5) -> List[WebSearchResult]:
        """Search the web.

        Args:
            query: Free-text query.
            count: Maximum results.

        Raises:
            ExternalServiceError: If the search API fails.
        """
        ...
