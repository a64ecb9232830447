"""Schema evolution proposal storage. Proposals are never deleted."""

from datetime import datetime
from typing import Protocol

from mycel.core.errors import PersistenceError
from mycel.core.schemas_evolution import EvolutionProposal, ProposalStatus
from mycel.core.schemas_knowledge import utc_now


class EvolutionProposalRepository(Protocol):
    async def create(self, proposal: EvolutionProposal) -> EvolutionProposal: ...

    async def get_by_id(self, proposal_id: str) -> EvolutionProposal | None: ...

    async def get_by_domain(self, domain_schema_id: str) -> list[EvolutionProposal]: ...

    async def get_pending_by_domain(self, domain_schema_id: str) -> list[EvolutionProposal]: ...

    async def update(
        self,
        proposal_id: str,
        status: ProposalStatus | None = None,
        applied_at: datetime | None = None,
    ) -> None: ...


class InMemoryEvolutionProposalRepository:
    def __init__(self):
        self._proposals: dict[str, EvolutionProposal] = {}

    async def create(self, proposal: EvolutionProposal) -> EvolutionProposal:
        stored = proposal.model_copy(
            update={"status": "pending", "created_at": utc_now(), "reviewed_at": None}
        )
        self._proposals[stored.id] = stored
        return stored

    async def get_by_id(self, proposal_id: str) -> EvolutionProposal | None:
        return self._proposals.get(proposal_id)

    async def get_by_domain(self, domain_schema_id: str) -> list[EvolutionProposal]:
        return [p for p in self._proposals.values() if p.domain_schema_id == domain_schema_id]

    async def get_pending_by_domain(self, domain_schema_id: str) -> list[EvolutionProposal]:
        return [p for p in await self.get_by_domain(domain_schema_id) if p.status == "pending"]

    async def update(
        self,
        proposal_id: str,
        status: ProposalStatus | None = None,
        applied_at: datetime | None = None,
    ) -> None:
        """
        Change a proposal's status (stamping reviewed_at) and/or applied_at.

        Raises:
            PersistenceError: If the proposal does not exist
        """
        existing = self._proposals.get(proposal_id)
        if existing is None:
            raise PersistenceError(f"Evolution proposal not found: {proposal_id}")

        changes: dict = {}
        if status is not None:
            changes["status"] = status
            changes["reviewed_at"] = utc_now()
        if applied_at is not None:
            changes["applied_at"] = applied_at
        self._proposals[proposal_id] = existing.model_copy(update=changes)
