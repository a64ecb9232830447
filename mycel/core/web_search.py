"""Web search client used to validate claims."""

import asyncio
import random
from typing import Protocol

import httpx
from pydantic import BaseModel, Field

from mycel.core.config import Settings, get_settings
from mycel.core.errors import ConfigurationError, WebSearchError
from mycel.core.logging import get_logger

logger = get_logger(__name__)

SERPAPI_BASE_URL = "https://serpapi.com/search"
MAX_RETRIES = 3
BASE_DELAY = 1.0


class WebSearchResult(BaseModel):
    query: str
    content: str
    source_urls: list[str] = Field(default_factory=list)


class WebSearchClient(Protocol):
    async def search(self, query: str, context: str | None = None) -> WebSearchResult: ...


def _is_transient(error: Exception) -> bool:
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return False


class SerpApiWebSearchClient:
    """Google search through SerpAPI; organic snippets are joined into one summary."""

    def __init__(
        self,
        settings: Settings | None = None,
        num_results: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        if not self.settings.SERPAPI_API_KEY:
            raise ConfigurationError("SERPAPI_API_KEY not configured")
        self.num_results = num_results
        self._transport = transport

    async def _request(self, query: str) -> dict:
        async with httpx.AsyncClient(
            timeout=self.settings.WEB_SEARCH_TIMEOUT, transport=self._transport
        ) as client:
            response = await client.get(
                SERPAPI_BASE_URL,
                params={
                    "api_key": self.settings.SERPAPI_API_KEY,
                    "q": query,
                    "num": self.num_results,
                    "engine": "google",
                },
            )
            response.raise_for_status()
            return response.json()

    async def search(self, query: str, context: str | None = None) -> WebSearchResult:
        """
        Search the web for `query`.

        `context` describes why the search runs; it is logged, not sent to the search engine.

        Raises:
            WebSearchError: retryable=True after transient failures exhaust the
                retries, retryable=False for any other failure
        """
        logger.debug("Web search", extra={"query": query, "search_context": context})

        for attempt in range(MAX_RETRIES):
            try:
                data = await self._request(query)
                break
            except Exception as e:
                if not _is_transient(e):
                    raise WebSearchError(
                        f"Web search failed: {e}", retryable=False, cause=e
                    ) from e
                if attempt >= MAX_RETRIES - 1:
                    raise WebSearchError(
                        f"Web search failed after {MAX_RETRIES} retries: {e}",
                        retryable=True,
                        cause=e,
                    ) from e
                delay = BASE_DELAY * (2**attempt) + random.uniform(0, BASE_DELAY)
                logger.warning(
                    f"Transient web search error, retrying in {delay:.1f}s",
                    extra={"attempt": attempt + 1, "max_retries": MAX_RETRIES},
                )
                await asyncio.sleep(delay)

        organic = data.get("organic_results", [])[: self.num_results]
        snippets = []
        urls: list[str] = []
        for item in organic:
            title = item.get("title", "")
            snippet = item.get("snippet", "")
            if snippet:
                snippets.append(f"{title}: {snippet}" if title else snippet)
            link = item.get("link")
            if link and link not in urls:
                urls.append(link)

        logger.debug(f"Web search '{query[:50]}': {len(urls)} sources")
        return WebSearchResult(query=query, content="\n".join(snippets), source_urls=urls)
