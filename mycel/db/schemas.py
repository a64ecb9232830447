"""Versioned domain and persona schema storage."""

import asyncio
from typing import Protocol

from mycel.core.schemas_domain import PersistedDomainSchema, PersistedPersonaSchema
from mycel.core.schemas_knowledge import utc_now


class SchemaRepository(Protocol):
    async def get_domain_schema(self, schema_id: str) -> PersistedDomainSchema | None: ...

    async def get_domain_schema_by_name(self, name: str) -> PersistedDomainSchema | None: ...

    async def get_active_domain_schema(self) -> PersistedDomainSchema | None: ...

    async def save_domain_schema(self, schema: PersistedDomainSchema) -> PersistedDomainSchema: ...

    async def list_domain_schemas(self) -> list[PersistedDomainSchema]: ...

    async def get_persona_schema(self, schema_id: str) -> PersistedPersonaSchema | None: ...

    async def get_active_persona_schema(self) -> PersistedPersonaSchema | None: ...

    async def save_persona_schema(
        self, schema: PersistedPersonaSchema
    ) -> PersistedPersonaSchema: ...

    async def list_persona_schemas(self) -> list[PersistedPersonaSchema]: ...


class InMemorySchemaRepository:
    """
    Keeps every saved schema version. Saving an active schema deactivates the
    previously active one of the same kind under a lock, so at most one is active.
    """

    def __init__(self):
        self._domain: dict[str, PersistedDomainSchema] = {}
        self._persona: dict[str, PersistedPersonaSchema] = {}
        self._lock = asyncio.Lock()

    # Domain schemas

    async def get_domain_schema(self, schema_id: str) -> PersistedDomainSchema | None:
        return self._domain.get(schema_id)

    async def get_domain_schema_by_name(self, name: str) -> PersistedDomainSchema | None:
        """Latest version with the given name."""
        matches = [s for s in self._domain.values() if s.name == name]
        if not matches:
            return None
        return max(matches, key=lambda s: s.version)

    async def get_active_domain_schema(self) -> PersistedDomainSchema | None:
        return next((s for s in self._domain.values() if s.is_active), None)

    async def save_domain_schema(self, schema: PersistedDomainSchema) -> PersistedDomainSchema:
        async with self._lock:
            now = utc_now()
            if schema.is_active:
                for schema_id, existing in list(self._domain.items()):
                    if existing.is_active:
                        self._domain[schema_id] = existing.model_copy(
                            update={"is_active": False, "updated_at": now}
                        )
            stored = schema.model_copy(update={"created_at": now, "updated_at": now})
            self._domain[stored.id] = stored
            return stored

    async def list_domain_schemas(self) -> list[PersistedDomainSchema]:
        return sorted(self._domain.values(), key=lambda s: s.created_at)

    # Persona schemas

    async def get_persona_schema(self, schema_id: str) -> PersistedPersonaSchema | None:
        return self._persona.get(schema_id)

    async def get_active_persona_schema(self) -> PersistedPersonaSchema | None:
        return next((s for s in self._persona.values() if s.is_active), None)

    async def save_persona_schema(self, schema: PersistedPersonaSchema) -> PersistedPersonaSchema:
        async with self._lock:
            now = utc_now()
            if schema.is_active:
                for schema_id, existing in list(self._persona.items()):
                    if existing.is_active:
                        self._persona[schema_id] = existing.model_copy(
                            update={"is_active": False, "updated_at": now}
                        )
            stored = schema.model_copy(update={"created_at": now, "updated_at": now})
            self._persona[stored.id] = stored
            return stored

    async def list_persona_schemas(self) -> list[PersistedPersonaSchema]:
        return sorted(self._persona.values(), key=lambda s: s.created_at)
