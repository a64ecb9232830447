"""Web enrichment of stored knowledge entries.

Claims are pulled from the user's raw input, checked through the search cache and the
web search client, and the verdicts are attached to the entry as an enrichment block.
"""

from mycel.chains.extract_claims import extract_claims
from mycel.chains.validate_claim import validate_claims
from mycel.core.config import get_settings
from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import WebSearchMode
from mycel.core.schemas_knowledge import KnowledgeEnrichment
from mycel.core.web_search import WebSearchClient
from mycel.db.knowledge import KnowledgeRepository
from mycel.db.search_cache import SearchCacheRepository

logger = get_logger(__name__)

ENRICHING_MODES: frozenset[str] = frozenset({"enrichment", "full"})


class EnrichmentService:
    def __init__(
        self,
        llm_client: LlmClient,
        web_search_client: WebSearchClient,
        search_cache: SearchCacheRepository,
        knowledge_repository: KnowledgeRepository,
        web_search_mode: WebSearchMode,
        max_searches: int | None = None,
    ):
        self.llm_client = llm_client
        self.web_search_client = web_search_client
        self.search_cache = search_cache
        self.knowledge_repository = knowledge_repository
        self.web_search_mode = web_search_mode
        if max_searches is None:
            max_searches = get_settings().ENRICHMENT_MAX_SEARCHES
        self.max_searches = max_searches

    @property
    def enabled(self) -> bool:
        return self.web_search_mode in ENRICHING_MODES

    async def enrich(
        self,
        entry_id: str,
        user_input: str,
        category_id: str | None = None,
        domain_schema_id: str | None = None,
    ) -> KnowledgeEnrichment | None:
        """
        Verify claims in `user_input` and attach the result to the entry.

        Returns:
            The enrichment written, or None when skipped or no claims were verifiable

        Raises:
            AgentError: If claim extraction returns invalid output
            PersistenceError: If the entry cannot be updated
        """
        if not self.enabled:
            logger.debug(
                "Enrichment skipped",
                extra={"entry_id": entry_id, "web_search": self.web_search_mode},
            )
            return None

        logger.info(
            "Starting enrichment",
            extra={"entry_id": entry_id, "category_id": category_id, "domain_schema_id": domain_schema_id},
        )

        claims = await extract_claims(user_input, self.llm_client)
        if not claims:
            logger.info("No verifiable claims found, skipping enrichment", extra={"entry_id": entry_id})
            return None

        outcome = await validate_claims(
            claims,
            self.llm_client,
            self.web_search_client,
            self.search_cache,
            self.max_searches,
        )

        enrichment = KnowledgeEnrichment(
            claims=outcome.verified,
            search_queries=outcome.search_queries,
            source_urls=outcome.source_urls,
        )
        await self.knowledge_repository.update(entry_id, enrichment=enrichment)

        logger.info(
            "Enrichment complete",
            extra={
                "entry_id": entry_id,
                "total_claims": len(outcome.verified),
                "verified": sum(1 for c in outcome.verified if c.status == "verified"),
                "contradicted": sum(1 for c in outcome.verified if c.status == "contradicted"),
                "searches_performed": len(outcome.search_queries),
            },
        )
        return enrichment
