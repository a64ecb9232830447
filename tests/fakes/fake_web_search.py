"""Fake web search client recording every query."""

from mycel.core.web_search import WebSearchResult


class FakeWebSearchClient:
    def __init__(
        self,
        results: dict[str, WebSearchResult | Exception] | None = None,
        error: Exception | None = None,
    ):
        self.results = results or {}
        self.error = error
        self.queries: list[str] = []
        self.contexts: list[str | None] = []

    async def search(self, query: str, context: str | None = None) -> WebSearchResult:
        self.queries.append(query)
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        if query in self.results:
            result = self.results[query]
            if isinstance(result, Exception):
                raise result
            return result
        return WebSearchResult(
            query=query,
            content=f"Search results for {query}",
            source_urls=[f"https://example.org/{len(self.queries)}"],
        )
