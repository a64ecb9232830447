"""Schema evolution service: analysis, auto-apply and manual review of proposals."""

from mycel.core.errors import ProposalNotFoundError, SchemaEvolutionError, SchemaNotFoundError
from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.schemas_evolution import (
    EvolutionProposal,
    EvolutionReviewResult,
    FieldStats,
    ReviewDecision,
)
from mycel.db.evolution_proposals import EvolutionProposalRepository
from mycel.db.field_stats import FieldStatsRepository
from mycel.db.knowledge import KnowledgeRepository
from mycel.db.schemas import SchemaRepository
from mycel.services.evolution_applier import EvolutionApplier, EvolutionLog
from mycel.services.evolution_proposer import generate_proposals

logger = get_logger(__name__)

AUTO_APPLY_CONFIDENCE_THRESHOLD = 0.7


def can_auto_apply(proposal: EvolutionProposal) -> bool:
    """
    new_category needs confidence >= 0.7, new_field only when optional,
    change_priority always.
    """
    if proposal.type == "new_category":
        return proposal.confidence >= AUTO_APPLY_CONFIDENCE_THRESHOLD
    if proposal.type == "new_field":
        return proposal.new_field is not None and proposal.new_field.field_type == "optional"
    if proposal.type == "change_priority":
        return True
    return False


class SchemaEvolutionService:
    def __init__(
        self,
        knowledge_repository: KnowledgeRepository,
        schema_repository: SchemaRepository,
        proposal_repository: EvolutionProposalRepository,
        field_stats_repository: FieldStatsRepository,
        llm_client: LlmClient,
        evolution_log: EvolutionLog | None = None,
    ):
        self.knowledge_repository = knowledge_repository
        self.schema_repository = schema_repository
        self.proposal_repository = proposal_repository
        self.field_stats_repository = field_stats_repository
        self.llm_client = llm_client
        self.applier = EvolutionApplier(
            schema_repository, knowledge_repository, proposal_repository, evolution_log
        )

    async def analyze(self, domain_schema_id: str) -> list[EvolutionProposal]:
        """
        Generate proposals for a domain schema (looked up by name) and auto-apply the
        eligible ones when the schema's evolution mode is "auto".

        Raises:
            SchemaNotFoundError: If no schema with this name exists
        """
        logger.info("Starting schema evolution analysis", extra={"domain_schema_id": domain_schema_id})

        schema = await self.schema_repository.get_domain_schema_by_name(domain_schema_id)
        if schema is None:
            raise SchemaNotFoundError(f"Domain schema not found: {domain_schema_id}")

        mode = schema.behavior.schema_evolution
        if mode == "fixed":
            logger.info("Schema evolution disabled (fixed mode)", extra={"domain_schema_id": domain_schema_id})
            return []

        uncategorized = await self.knowledge_repository.get_uncategorized_by_domain(domain_schema_id)
        logger.info(f"Fetched {len(uncategorized)} uncategorized entries")

        proposals = await generate_proposals(
            domain_schema_id,
            uncategorized,
            schema.config,
            self.proposal_repository,
            self.field_stats_repository,
            self.llm_client,
        )

        if mode == "auto":
            for proposal in proposals:
                if not can_auto_apply(proposal):
                    continue
                try:
                    current = await self.schema_repository.get_domain_schema_by_name(
                        domain_schema_id
                    )
                    if current is None:
                        continue
                    await self.applier.apply(proposal, current, auto_applied=True)
                    logger.info(
                        "Auto-applied evolution proposal",
                        extra={"proposal_id": proposal.id, "type": proposal.type},
                    )
                except Exception as e:
                    logger.warning(
                        f"Failed to auto-apply proposal: {e}",
                        extra={"proposal_id": proposal.id},
                    )

            # Auto-applied proposals changed status in the repository
            refreshed = []
            for proposal in proposals:
                stored = await self.proposal_repository.get_by_id(proposal.id)
                refreshed.append(stored or proposal)
            proposals = refreshed

        return proposals

    async def review_proposal(
        self, proposal_id: str, decision: ReviewDecision
    ) -> EvolutionReviewResult:
        """
        Approve (apply now) or reject a pending proposal.

        Raises:
            ProposalNotFoundError: If the proposal does not exist
            SchemaEvolutionError: If the proposal was already reviewed
            SchemaNotFoundError: If the proposal's schema no longer exists
        """
        logger.info("Reviewing evolution proposal", extra={"proposal_id": proposal_id, "decision": decision})

        proposal = await self.proposal_repository.get_by_id(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Evolution proposal not found: {proposal_id}")
        if proposal.status != "pending":
            raise SchemaEvolutionError(
                f"Proposal {proposal_id} has already been reviewed (status: {proposal.status})"
            )

        if decision == "reject":
            await self.proposal_repository.update(proposal_id, status="rejected")
            return EvolutionReviewResult(proposal_id=proposal_id, status="rejected")

        schema = await self.schema_repository.get_domain_schema_by_name(proposal.domain_schema_id)
        if schema is None:
            raise SchemaNotFoundError(f"Domain schema not found: {proposal.domain_schema_id}")

        new_schema_id = await self.applier.apply(proposal, schema, auto_applied=False)
        return EvolutionReviewResult(
            proposal_id=proposal_id, status="approved", domain_schema_id=new_schema_id
        )

    async def get_proposals(self, domain_schema_id: str) -> list[EvolutionProposal]:
        return await self.proposal_repository.get_by_domain(domain_schema_id)

    async def get_field_stats(self, domain_schema_id: str) -> list[FieldStats]:
        return await self.field_stats_repository.get_by_domain(domain_schema_id)
