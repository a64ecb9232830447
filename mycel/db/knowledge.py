"""Knowledge entry storage."""

from typing import Any, Protocol

from mycel.core.errors import PersistenceError
from mycel.core.logging import get_logger
from mycel.core.schemas_knowledge import (
    UNCATEGORIZED,
    KnowledgeEntry,
    KnowledgeSearchResult,
    utc_now,
)
from mycel.core.similarity import similarity_to_many

logger = get_logger(__name__)

MIN_SIMILARITY_SCORE = 0.7
DEFAULT_SEARCH_LIMIT = 5

# Fields callers may change after creation
UPDATABLE_FIELDS = frozenset(
    {"category_id", "status", "migrated_from", "structured_data", "tags", "metadata", "enrichment"}
)


class KnowledgeRepository(Protocol):
    async def create(self, entry: KnowledgeEntry) -> KnowledgeEntry: ...

    async def get_by_id(self, entry_id: str) -> KnowledgeEntry | None: ...

    async def get_by_session(self, session_id: str) -> list[KnowledgeEntry]: ...

    async def get_by_category(self, category_id: str) -> list[KnowledgeEntry]: ...

    async def get_uncategorized(self) -> list[KnowledgeEntry]: ...

    async def get_uncategorized_by_domain(self, domain_schema_id: str) -> list[KnowledgeEntry]: ...

    async def query_by_topic_keywords(self, keywords: list[str]) -> list[KnowledgeEntry]: ...

    async def search_similar(
        self,
        domain_schema_id: str,
        embedding: list[float],
        limit: int = DEFAULT_SEARCH_LIMIT,
        exclude_session_id: str | None = None,
    ) -> list[KnowledgeSearchResult]: ...

    async def update(self, entry_id: str, **updates: Any) -> None: ...


class InMemoryKnowledgeRepository:
    """Dict-backed knowledge store with brute-force cosine search."""

    def __init__(self):
        self._entries: dict[str, KnowledgeEntry] = {}

    async def create(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """
        Store a new draft entry. A fresh id is assigned; `embedding_generated_at` is
        stamped when the entry carries an embedding.
        """
        now = utc_now()
        stored = KnowledgeEntry.model_validate(
            entry.model_dump(
                exclude={"id", "created_at", "updated_at", "status", "embedding_generated_at"}
            )
            | {
                "created_at": now,
                "updated_at": now,
                "status": "draft",
                "embedding_generated_at": now if entry.embedding else None,
            }
        )
        self._entries[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_by_id(self, entry_id: str) -> KnowledgeEntry | None:
        entry = self._entries.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    async def get_by_session(self, session_id: str) -> list[KnowledgeEntry]:
        return [e.model_copy(deep=True) for e in self._entries.values() if e.session_id == session_id]

    async def get_by_category(self, category_id: str) -> list[KnowledgeEntry]:
        return [
            e.model_copy(deep=True) for e in self._entries.values() if e.category_id == category_id
        ]

    async def get_uncategorized(self) -> list[KnowledgeEntry]:
        return [
            e.model_copy(deep=True)
            for e in self._entries.values()
            if e.category_id == UNCATEGORIZED and e.status == "draft"
        ]

    async def get_uncategorized_by_domain(self, domain_schema_id: str) -> list[KnowledgeEntry]:
        return [e for e in await self.get_uncategorized() if e.domain_schema_id == domain_schema_id]

    async def query_by_topic_keywords(self, keywords: list[str]) -> list[KnowledgeEntry]:
        wanted = set(keywords)
        return [
            e.model_copy(deep=True)
            for e in self._entries.values()
            if e.topic_keywords and wanted.intersection(e.topic_keywords)
        ]

    async def search_similar(
        self,
        domain_schema_id: str,
        embedding: list[float],
        limit: int = DEFAULT_SEARCH_LIMIT,
        exclude_session_id: str | None = None,
    ) -> list[KnowledgeSearchResult]:
        """Entries of the domain scoring at least MIN_SIMILARITY_SCORE, best first."""
        candidates = [
            e
            for e in self._entries.values()
            if e.domain_schema_id == domain_schema_id
            and e.embedding
            and len(e.embedding) == len(embedding)
            and not (exclude_session_id and e.session_id == exclude_session_id)
        ]
        if not candidates:
            return []

        scores = similarity_to_many(embedding, [e.embedding for e in candidates])
        results = [
            KnowledgeSearchResult(entry=e.model_copy(deep=True), score=score)
            for e, score in zip(candidates, scores)
            if score >= MIN_SIMILARITY_SCORE
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    async def update(self, entry_id: str, **updates: Any) -> None:
        """
        Update mutable fields of an entry.

        Raises:
            PersistenceError: If the entry does not exist or a field is not updatable
        """
        entry = self._entries.get(entry_id)
        if entry is None:
            raise PersistenceError(f"Knowledge entry not found: {entry_id}")

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise PersistenceError(f"Cannot update fields {sorted(unknown)} on knowledge entry")

        now = utc_now()
        changes = dict(updates)
        if changes.get("migrated_from") is not None:
            changes["migrated_at"] = now
        changes["updated_at"] = now

        self._entries[entry_id] = KnowledgeEntry.model_validate(entry.model_dump() | changes)
