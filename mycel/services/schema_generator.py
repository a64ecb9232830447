"""
Bootstrap a domain schema from a free-text description.

generate() analyzes the description, researches the domain on the web when the
behavior allows it, drafts a schema and stores it as a pending proposal. Nothing
becomes an active domain schema until review_proposal() approves it.
"""

from typing import Any

from pydantic import ValidationError

from mycel.chains.analyze_domain import analyze_domain
from mycel.chains.synthesize_schema import synthesize_schema
from mycel.core.errors import ConfigurationError, SchemaGenerationError, SchemaProposalNotFoundError
from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import (
    BEHAVIOR_PRESETS,
    BehaviorPreset,
    Category,
    DomainBehaviorConfig,
    DomainConfig,
    PersistedDomainSchema,
    resolve_behavior_preset,
)
from mycel.core.schemas_generation import (
    DomainAnalysis,
    SchemaProposal,
    SchemaProposalStatus,
    SchemaReviewDecision,
    SchemaReviewResult,
)
from mycel.core.web_search import WebSearchClient, WebSearchResult
from mycel.db.schema_proposals import SchemaProposalRepository
from mycel.db.schemas import SchemaRepository

logger = get_logger(__name__)

DEFAULT_PRESET: BehaviorPreset = "balanced"
RESEARCH_MODES = ("web_research", "hybrid")


def resolve_behavior(behavior: BehaviorPreset | DomainBehaviorConfig | None) -> DomainBehaviorConfig:
    """
    Raises:
        ConfigurationError: If a preset name is unknown
    """
    if behavior is None:
        return resolve_behavior_preset(DEFAULT_PRESET)
    if isinstance(behavior, str):
        if behavior not in BEHAVIOR_PRESETS:
            raise ConfigurationError(f"Unknown behavior preset '{behavior}'")
        return resolve_behavior_preset(behavior)
    return behavior


def research_enabled(behavior: DomainBehaviorConfig) -> bool:
    return behavior.schema_creation in RESEARCH_MODES and behavior.web_search != "disabled"


def _existing_categories(partial_schema: dict[str, Any] | None) -> list[Category]:
    if not partial_schema:
        return []
    try:
        return [Category.model_validate(c) for c in partial_schema.get("categories", [])]
    except ValidationError as e:
        raise SchemaGenerationError(f"Partial schema has invalid categories: {e}", cause=e) from e


def keep_existing_categories(config: DomainConfig, existing: list[Category]) -> DomainConfig:
    """User-defined categories win over whatever the model returned for the same id."""
    if not existing:
        return config
    existing_ids = {c.id for c in existing}
    added = [c for c in config.categories if c.id not in existing_ids]
    return config.model_copy(update={"categories": [*existing, *added]})


def build_reasoning(analysis: DomainAnalysis, searched: int, config: DomainConfig) -> str:
    location = f" in {analysis.location}" if analysis.location else ""
    return (
        f'Analyzed domain "{analysis.subject}" ({analysis.domain_type}){location}. '
        f"Executed {searched}/{len(analysis.search_queries)} web searches successfully. "
        f"Generated {len(config.categories)} categories covering the domain."
    )


class SchemaGenerator:
    def __init__(
        self,
        llm_client: LlmClient,
        proposal_repository: SchemaProposalRepository,
        schema_repository: SchemaRepository,
        web_search_client: WebSearchClient | None = None,
    ):
        self.llm_client = llm_client
        self.proposal_repository = proposal_repository
        self.schema_repository = schema_repository
        self.web_search_client = web_search_client

    async def _research(self, analysis: DomainAnalysis) -> list[WebSearchResult]:
        """Run every query; a failed query is skipped, all failing is an error."""
        context = (
            f'You are researching the topic "{analysis.subject}" ({analysis.domain_type}) '
            "to help create a knowledge schema."
        )
        results: list[WebSearchResult] = []
        for query in analysis.search_queries:
            try:
                results.append(await self.web_search_client.search(query, context=context))
            except Exception as e:
                logger.warning(f"Web search failed for query, continuing: {e}", extra={"query": query})

        if not results:
            raise SchemaGenerationError(
                "All web searches failed. Cannot generate schema without research data."
            )
        logger.info(
            "Web searches completed",
            extra={"successful": len(results), "total": len(analysis.search_queries)},
        )
        return results

    async def generate(
        self,
        description: str,
        language: str | None = None,
        behavior: BehaviorPreset | DomainBehaviorConfig | None = None,
        partial_schema: dict[str, Any] | None = None,
    ) -> SchemaProposal:
        """
        Draft a domain schema and store it as a pending proposal.

        Raises:
            SchemaGenerationError: If schema creation is manual, the partial schema is
                invalid, or every web search failed
            ConfigurationError: If research is needed but no web search client is set
            AgentError: If the model never returned a valid analysis or schema
        """
        resolved = resolve_behavior(behavior)
        if resolved.schema_creation == "manual":
            raise SchemaGenerationError("Schema creation is manual for this behavior configuration")
        if research_enabled(resolved) and self.web_search_client is None:
            raise ConfigurationError("Web research requested but no web search client configured")
        existing = _existing_categories(partial_schema)

        logger.info(
            "Starting schema generation",
            extra={
                "description_length": len(description),
                "schema_creation": resolved.schema_creation,
                "web_search": resolved.web_search,
            },
        )

        analysis = await analyze_domain(description, self.llm_client, language)

        search_results: list[WebSearchResult] = []
        if research_enabled(resolved):
            search_results = await self._research(analysis)
        else:
            logger.info("Web search disabled, generating schema without research")

        proposed = await synthesize_schema(
            analysis, search_results, self.llm_client, partial_schema, existing
        )
        proposed = keep_existing_categories(proposed, existing)

        sources = list(dict.fromkeys(url for r in search_results for url in r.source_urls))
        proposal = await self.proposal_repository.create(
            SchemaProposal(
                description=description,
                language=analysis.language,
                proposed_schema=proposed,
                behavior=resolved,
                origin=resolved.schema_creation,
                reasoning=build_reasoning(analysis, len(search_results), proposed),
                sources=sources,
            )
        )

        logger.info(
            "Schema proposal created",
            extra={"proposal_id": proposal.id, "category_count": len(proposed.categories)},
        )
        return proposal

    async def review_proposal(
        self,
        proposal_id: str,
        decision: SchemaReviewDecision,
        modifications: dict[str, Any] | None = None,
        feedback: str | None = None,
    ) -> SchemaReviewResult:
        """
        Reject a proposal, or approve it (optionally with changes) as a new active
        domain schema.

        Raises:
            SchemaProposalNotFoundError: If the proposal does not exist
            SchemaGenerationError: If it was already reviewed or the changes are invalid
        """
        logger.info("Reviewing schema proposal", extra={"proposal_id": proposal_id, "decision": decision})

        proposal = await self.proposal_repository.get_by_id(proposal_id)
        if proposal is None:
            raise SchemaProposalNotFoundError(f"Schema proposal not found: {proposal_id}")
        if proposal.status != "pending":
            raise SchemaGenerationError(
                f"Proposal {proposal_id} has already been reviewed (status: {proposal.status})"
            )

        if decision == "reject":
            await self.proposal_repository.update(proposal_id, status="rejected", feedback=feedback)
            return SchemaReviewResult(proposal_id=proposal_id, status="rejected")

        final = proposal.proposed_schema
        if decision == "approve_with_changes" and modifications:
            try:
                final = DomainConfig.model_validate(final.model_dump() | modifications)
            except ValidationError as e:
                raise SchemaGenerationError(f"Modified schema is invalid: {e}", cause=e) from e

        previous = await self.schema_repository.get_domain_schema_by_name(final.name)
        saved = await self.schema_repository.save_domain_schema(
            PersistedDomainSchema(
                name=final.name,
                version=previous.version + 1 if previous else 1,
                config=final,
                behavior=proposal.behavior,
                origin=proposal.origin,
                generated_from=proposal_id,
                is_active=True,
            )
        )

        await self.proposal_repository.update(
            proposal_id,
            status="approved",
            proposed_schema=final,
            resulting_domain_schema_id=saved.id,
            feedback=feedback,
        )
        logger.info(
            "Schema proposal approved",
            extra={"proposal_id": proposal_id, "domain_schema_id": saved.id},
        )
        return SchemaReviewResult(proposal_id=proposal_id, status="approved", domain_schema_id=saved.id)

    async def get_proposal(self, proposal_id: str) -> SchemaProposal | None:
        return await self.proposal_repository.get_by_id(proposal_id)

    async def list_proposals(
        self, statuses: list[SchemaProposalStatus] | None = None
    ) -> list[SchemaProposal]:
        return await self.proposal_repository.list_proposals(statuses)
