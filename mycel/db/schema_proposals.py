"""Storage for generated domain schema proposals."""

from typing import Any, Protocol

from mycel.core.errors import PersistenceError
from mycel.core.schemas_generation import SchemaProposal, SchemaProposalStatus
from mycel.core.schemas_knowledge import utc_now

REVIEWED_STATUSES = ("approved", "rejected")


class SchemaProposalRepository(Protocol):
    async def create(self, proposal: SchemaProposal) -> SchemaProposal: ...

    async def get_by_id(self, proposal_id: str) -> SchemaProposal | None: ...

    async def list_proposals(
        self, statuses: list[SchemaProposalStatus] | None = None
    ) -> list[SchemaProposal]: ...

    async def update(self, proposal_id: str, **changes: Any) -> SchemaProposal: ...


class InMemorySchemaProposalRepository:
    def __init__(self):
        self._proposals: dict[str, SchemaProposal] = {}

    async def create(self, proposal: SchemaProposal) -> SchemaProposal:
        stored = proposal.model_copy(update={"created_at": utc_now(), "reviewed_at": None})
        self._proposals[stored.id] = stored
        return stored

    async def get_by_id(self, proposal_id: str) -> SchemaProposal | None:
        return self._proposals.get(proposal_id)

    async def list_proposals(
        self, statuses: list[SchemaProposalStatus] | None = None
    ) -> list[SchemaProposal]:
        """Newest first, optionally filtered by status."""
        proposals = [p for p in self._proposals.values() if not statuses or p.status in statuses]
        return sorted(proposals, key=lambda p: p.created_at, reverse=True)

    async def update(self, proposal_id: str, **changes: Any) -> SchemaProposal:
        """
        Apply field changes; moving to approved or rejected stamps reviewed_at.

        Raises:
            PersistenceError: If the proposal does not exist
        """
        existing = self._proposals.get(proposal_id)
        if existing is None:
            raise PersistenceError(f"Schema proposal not found: {proposal_id}")

        if changes.get("status") in REVIEWED_STATUSES:
            changes["reviewed_at"] = utc_now()
        updated = existing.model_copy(update=changes)
        self._proposals[proposal_id] = updated
        return updated
