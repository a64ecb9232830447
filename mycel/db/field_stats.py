"""Per-field ask/answer counters."""

import asyncio
from typing import Protocol

from mycel.core.schemas_evolution import FieldStats
from mycel.core.schemas_knowledge import utc_now


class FieldStatsRepository(Protocol):
    async def get_by_domain(self, domain_schema_id: str) -> list[FieldStats]: ...

    async def get_by_category(self, domain_schema_id: str, category_id: str) -> list[FieldStats]: ...

    async def increment_asked(self, domain_schema_id: str, category_id: str, field_name: str) -> None: ...

    async def increment_answered(
        self, domain_schema_id: str, category_id: str, field_name: str
    ) -> None: ...


class InMemoryFieldStatsRepository:
    """Counters keyed by (domain schema, category, field); increments hold a lock."""

    def __init__(self):
        self._stats: dict[tuple[str, str, str], FieldStats] = {}
        self._lock = asyncio.Lock()

    async def get_by_domain(self, domain_schema_id: str) -> list[FieldStats]:
        return [s for s in self._stats.values() if s.domain_schema_id == domain_schema_id]

    async def get_by_category(self, domain_schema_id: str, category_id: str) -> list[FieldStats]:
        return [
            s
            for s in self._stats.values()
            if s.domain_schema_id == domain_schema_id and s.category_id == category_id
        ]

    async def _increment(
        self, domain_schema_id: str, category_id: str, field_name: str, counter: str
    ) -> None:
        key = (domain_schema_id, category_id, field_name)
        async with self._lock:
            current = self._stats.get(key) or FieldStats(
                domain_schema_id=domain_schema_id,
                category_id=category_id,
                field_name=field_name,
            )
            self._stats[key] = current.model_copy(
                update={counter: getattr(current, counter) + 1, "last_updated_at": utc_now()}
            )

    async def increment_asked(self, domain_schema_id: str, category_id: str, field_name: str) -> None:
        await self._increment(domain_schema_id, category_id, field_name, "times_asked")

    async def increment_answered(
        self, domain_schema_id: str, category_id: str, field_name: str
    ) -> None:
        await self._increment(domain_schema_id, category_id, field_name, "times_answered")
