"""Web search service backed by the Brave Search API."""

from dataclasses import asdict, dataclass
from typing import Any

import httpx

from relay.utils.logging import get_logger

logger = get_logger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


@dataclass
class WebSearchResult:
    """A single web search hit."""

    title: str
    url: str
    description: str
    source: str | None = None


class WebSearchService:
    """Thin async client for web search."""

    def __init__(self, api_key: str | None, result_count: int = 3, timeout: float = 15.0):
        self.api_key = api_key
        self.result_count = result_count
        self.timeout = timeout

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Search the web and return simplified results.

        Raises:
            ValueError: If no API key is configured
            httpx.HTTPError: If the search request fails
        """
        if not self.api_key:
            raise ValueError("BRAVE_API_KEY is not set, web search is unavailable")
        if not query.strip():
            raise ValueError("Query is required")

        logger.info(f"Searching web: {query}")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": self.result_count},
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key,
                },
            )
            response.raise_for_status()
            data = response.json()

        results = [
            WebSearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=item.get("description", ""),
                source=(item.get("profile") or {}).get("long_name"),
            )
            for item in data.get("web", {}).get("results", [])
        ]
        return [asdict(result) for result in results]
