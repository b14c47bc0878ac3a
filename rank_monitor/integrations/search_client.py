"""Tavily web search client used to read search engine rankings."""

import logging
import os
from typing import Any, Optional, Sequence

from tavily import AsyncTavilyClient

from rank_monitor.modules.rank_tracker.state import SearchResult, coerce_results

logger = logging.getLogger(__name__)

SEARCH_DEPTHS = ("basic", "advanced")


class SearchResponseError(Exception):
    """The search provider answered with something other than a result list."""


def parse_search_response(response: Any) -> list[SearchResult]:
    """Validate a Tavily response envelope and its result entries.

    Raises:
        SearchResponseError: if the envelope is not a mapping with a
            ``results`` list.
    """
    if not isinstance(response, dict):
        raise SearchResponseError(
            f"Malformed search response: expected an object, got {type(response).__name__}"
        )
    raw_results = response.get("results")
    if not isinstance(raw_results, list):
        raise SearchResponseError("Malformed search response: no results list")
    return coerce_results(raw_results)


class TavilySearchClient:
    """Async Tavily search restricted to a set of domains.

    Usage::

        client = TavilySearchClient()
        results = await client.search("kitchens", "advanced", ["yandex.ru"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_results: int = 20,
        include_raw_content: bool = True,
    ):
        self._api_key = api_key or os.getenv("TAVILY_API_KEY", "")
        self._max_results = max_results
        self._include_raw_content = include_raw_content
        self._client: Optional[AsyncTavilyClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncTavilyClient:
        """Lazy-load the Tavily client."""
        if self._client is None:
            if not self._api_key:
                raise ValueError("TAVILY_API_KEY not set in environment")
            self._client = AsyncTavilyClient(api_key=self._api_key)
        return self._client

    async def search(
        self,
        query: str,
        search_depth: str = "advanced",
        include_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        """Run one search and return its results in rank order."""
        if search_depth not in SEARCH_DEPTHS:
            raise ValueError(f"Unsupported search depth: {search_depth!r}")

        client = self._get_client()
        response = await client.search(
            query=query,
            search_depth=search_depth,
            include_domains=list(include_domains),
            max_results=self._max_results,
            include_raw_content=self._include_raw_content,
            include_answer=False,
        )
        results = parse_search_response(response)
        logger.info(
            "Tavily search for %r (%s, %s): %d results",
            query, search_depth, ", ".join(include_domains) or "all domains", len(results),
        )
        return results
