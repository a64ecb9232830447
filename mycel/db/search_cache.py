"""Cache of web search results keyed by normalized query."""

from datetime import timedelta
from typing import Protocol

from mycel.core.config import get_settings
from mycel.core.schemas_knowledge import CachedSearchResult, utc_now


def normalize_query(query: str) -> str:
    return query.lower().strip()


class SearchCacheRepository(Protocol):
    async def get(self, query: str) -> CachedSearchResult | None: ...

    async def set(self, query: str, content: str, source_urls: list[str]) -> None: ...


class InMemorySearchCacheRepository:
    def __init__(self, ttl: timedelta | None = None):
        if ttl is None:
            ttl = timedelta(days=get_settings().SEARCH_CACHE_TTL_DAYS)
        self.ttl = ttl
        self._cache: dict[str, CachedSearchResult] = {}

    async def get(self, query: str) -> CachedSearchResult | None:
        """Cached result for the query; expired entries are dropped and count as a miss."""
        key = normalize_query(query)
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.expires_at < utc_now():
            del self._cache[key]
            return None
        return entry

    async def set(self, query: str, content: str, source_urls: list[str]) -> None:
        key = normalize_query(query)
        now = utc_now()
        self._cache[key] = CachedSearchResult(
            query=key,
            content=content,
            source_urls=list(source_urls),
            cached_at=now,
            expires_at=now + self.ttl,
        )
