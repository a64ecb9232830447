"""Tests for bootstrapping a domain schema from a description, and reviewing the result."""

import pytest

from mycel.chains.analyze_domain import analyze_domain
from mycel.chains.synthesize_schema import build_synthesis_prompt, synthesize_schema
from mycel.core.errors import (
    AgentError,
    ConfigurationError,
    SchemaGenerationError,
    SchemaProposalNotFoundError,
    WebSearchError,
)
from mycel.core.schemas_domain import Category, DomainBehaviorConfig, resolve_behavior_preset
from mycel.core.schemas_generation import DomainAnalysis
from mycel.db.schema_proposals import InMemorySchemaProposalRepository
from mycel.db.schemas import InMemorySchemaRepository
from mycel.services.schema_generator import SchemaGenerator, keep_existing_categories
from tests.fakes.fake_llm import DEFAULT_RESPONSES, FakeLlmClient
from tests.fakes.fake_web_search import FakeWebSearchClient

DESCRIPTION = "A village website for Naugarten, Brandenburg"
QUERIES = DEFAULT_RESPONSES["domain_analysis"]["search_queries"]


@pytest.fixture
def proposal_repository():
    return InMemorySchemaProposalRepository()


@pytest.fixture
def schema_repository():
    return InMemorySchemaRepository()


@pytest.fixture
def web_search():
    return FakeWebSearchClient()


@pytest.fixture
def generator(fake_llm, proposal_repository, schema_repository, web_search):
    return SchemaGenerator(fake_llm, proposal_repository, schema_repository, web_search)


class TestAnalyzeDomain:
    @pytest.mark.asyncio
    async def test_language_hint_reaches_model(self, fake_llm):
        analysis = await analyze_domain(DESCRIPTION, fake_llm, language_hint="de")

        assert analysis.subject == "Village of Naugarten"
        assert analysis.search_queries == QUERIES
        message = fake_llm.requests_for("domain_analysis")[0].user_message
        assert message == f'Domain description: "{DESCRIPTION}"\n\nLanguage hint: de'

    @pytest.mark.asyncio
    async def test_too_few_queries_is_rejected(self):
        llm = FakeLlmClient(
            {"domain_analysis": {**DEFAULT_RESPONSES["domain_analysis"], "search_queries": ["one"]}}
        )

        with pytest.raises(AgentError, match="Domain analyzer returned invalid output"):
            await analyze_domain(DESCRIPTION, llm)


class TestSynthesizeSchema:
    def test_hybrid_prompt_lists_existing_categories(self):
        prompt = build_synthesis_prompt([Category(id="mills", label="Mills")])

        assert "Keep every existing category exactly as it" in prompt
        assert '"id": "mills"' in prompt

    @pytest.mark.asyncio
    async def test_schema_without_categories_is_rejected(self):
        llm = FakeLlmClient(
            {"schema_synthesis": {**DEFAULT_RESPONSES["schema_synthesis"], "categories": []}}
        )
        analysis = DomainAnalysis(**DEFAULT_RESPONSES["domain_analysis"])

        with pytest.raises(AgentError, match="Schema synthesizer"):
            await synthesize_schema(analysis, [], llm)

    @pytest.mark.asyncio
    async def test_without_research_says_so(self, fake_llm):
        analysis = DomainAnalysis(**DEFAULT_RESPONSES["domain_analysis"])

        config = await synthesize_schema(analysis, [], fake_llm)

        assert config.category_ids == ["history", "nature"]
        message = fake_llm.requests_for("schema_synthesis")[0].user_message
        assert "No web research was performed" in message
        assert "- Location: Brandenburg" in message


class TestKeepExistingCategories:
    def test_user_categories_override_and_lead(self, domain_config):
        mine = Category(id="nature", label="Our Nature", required_fields=["species"])

        kept = keep_existing_categories(domain_config, [mine])

        assert kept.category_ids == ["nature", "history", "events"]
        assert kept.get_category("nature").label == "Our Nature"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_generates_pending_proposal_with_research(
        self, generator, fake_llm, web_search, proposal_repository
    ):
        proposal = await generator.generate(DESCRIPTION)

        assert proposal.status == "pending"
        assert proposal.language == "de"
        assert proposal.origin == "web_research"
        assert proposal.proposed_schema.name == "village-naugarten"
        assert proposal.behavior == resolve_behavior_preset("balanced")
        assert proposal.sources == ["https://example.org/1", "https://example.org/2", "https://example.org/3"]
        assert "Naugarten" in proposal.reasoning
        assert "3/3 web searches" in proposal.reasoning
        assert web_search.queries == QUERIES
        assert 'researching the topic "Village of Naugarten"' in web_search.contexts[0]
        research = fake_llm.requests_for("schema_synthesis")[0].user_message
        assert '### Research: "Naugarten Natur Umgebung"' in research
        assert await proposal_repository.get_by_id(proposal.id) == proposal

    @pytest.mark.asyncio
    async def test_tolerates_partial_search_failures(self, fake_llm, proposal_repository, schema_repository):
        web_search = FakeWebSearchClient(results={QUERIES[1]: WebSearchError("Temporary failure")})
        generator = SchemaGenerator(fake_llm, proposal_repository, schema_repository, web_search)

        proposal = await generator.generate(DESCRIPTION)

        assert "2/3 web searches" in proposal.reasoning
        assert web_search.queries == QUERIES

    @pytest.mark.asyncio
    async def test_all_searches_failing_raises(self, fake_llm, proposal_repository, schema_repository):
        web_search = FakeWebSearchClient(error=WebSearchError("Search API unavailable"))
        generator = SchemaGenerator(fake_llm, proposal_repository, schema_repository, web_search)

        with pytest.raises(SchemaGenerationError, match="All web searches failed"):
            await generator.generate(DESCRIPTION)

        assert fake_llm.requests_for("schema_synthesis") == []
        assert await proposal_repository.list_proposals() == []

    @pytest.mark.asyncio
    async def test_disabled_web_search_skips_research(self, generator, fake_llm, web_search):
        behavior = DomainBehaviorConfig(schema_creation="web_research", web_search="disabled")

        proposal = await generator.generate(DESCRIPTION, behavior=behavior)

        assert web_search.queries == []
        assert proposal.sources == []
        assert "0/3 web searches" in proposal.reasoning
        assert "No web research was performed" in fake_llm.requests_for("schema_synthesis")[0].user_message

    @pytest.mark.asyncio
    async def test_research_without_client_raises(self, fake_llm, proposal_repository, schema_repository):
        generator = SchemaGenerator(fake_llm, proposal_repository, schema_repository)

        with pytest.raises(ConfigurationError, match="no web search client"):
            await generator.generate(DESCRIPTION, behavior="full_auto")

        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_manual_schema_creation_is_refused(self, generator, fake_llm):
        with pytest.raises(SchemaGenerationError, match="manual"):
            await generator.generate(DESCRIPTION, behavior="manual")

        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_preset(self, generator):
        with pytest.raises(ConfigurationError, match="Unknown behavior preset 'reckless'"):
            await generator.generate(DESCRIPTION, behavior="reckless")

    @pytest.mark.asyncio
    async def test_hybrid_keeps_user_categories(self, generator, fake_llm):
        behavior = DomainBehaviorConfig(schema_creation="hybrid", web_search="bootstrap_only")
        mills = {"id": "mills", "label": "Mills", "description": "Old mills", "required_fields": ["river"]}
        history = {"id": "history", "label": "Our History", "description": "As we tell it"}

        proposal = await generator.generate(
            DESCRIPTION, behavior=behavior, partial_schema={"categories": [mills, history]}
        )

        assert proposal.origin == "hybrid"
        schema = proposal.proposed_schema
        assert schema.category_ids == ["mills", "history", "nature"]
        assert schema.get_category("history").label == "Our History"
        assert schema.get_category("mills").required_fields == ["river"]
        request = fake_llm.requests_for("schema_synthesis")[0]
        assert '"id": "mills"' in request.system_prompt
        assert "## Existing Partial Schema" in request.user_message

    @pytest.mark.asyncio
    async def test_invalid_partial_categories(self, generator):
        with pytest.raises(SchemaGenerationError, match="invalid categories"):
            await generator.generate(DESCRIPTION, partial_schema={"categories": [{"id": "mills"}]})


class TestReviewProposal:
    @pytest.mark.asyncio
    async def test_approve_creates_active_domain_schema(
        self, generator, schema_repository, proposal_repository
    ):
        proposal = await generator.generate(DESCRIPTION)

        result = await generator.review_proposal(proposal.id, "approve")

        assert result.status == "approved"
        schema = await schema_repository.get_domain_schema(result.domain_schema_id)
        assert schema.config.name == "village-naugarten"
        assert schema.version == 1
        assert schema.is_active is True
        assert schema.behavior.web_search == "bootstrap_only"
        assert schema.origin == "web_research"
        assert schema.generated_from == proposal.id
        stored = await proposal_repository.get_by_id(proposal.id)
        assert stored.status == "approved"
        assert stored.resulting_domain_schema_id == schema.id
        assert stored.reviewed_at is not None

    @pytest.mark.asyncio
    async def test_approve_with_changes(self, generator, schema_repository):
        proposal = await generator.generate(DESCRIPTION)

        result = await generator.review_proposal(
            proposal.id, "approve_with_changes", modifications={"description": "Modified description"}
        )

        schema = await schema_repository.get_domain_schema(result.domain_schema_id)
        assert schema.config.description == "Modified description"
        assert schema.config.category_ids == ["history", "nature"]

    @pytest.mark.asyncio
    async def test_invalid_changes_are_rejected(self, generator, schema_repository):
        proposal = await generator.generate(DESCRIPTION)

        with pytest.raises(SchemaGenerationError, match="Modified schema is invalid"):
            await generator.review_proposal(
                proposal.id, "approve_with_changes", modifications={"version": "one"}
            )

        assert await schema_repository.list_domain_schemas() == []
        assert (await generator.get_proposal(proposal.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_approving_existing_name_adds_a_version(self, generator, schema_repository):
        first = await generator.generate(DESCRIPTION)
        second = await generator.generate(DESCRIPTION)
        await generator.review_proposal(first.id, "approve")

        await generator.review_proposal(second.id, "approve")

        latest = await schema_repository.get_domain_schema_by_name("village-naugarten")
        assert latest.version == 2
        assert latest.generated_from == second.id

    @pytest.mark.asyncio
    async def test_reject_with_feedback(self, generator, schema_repository):
        proposal = await generator.generate(DESCRIPTION)

        result = await generator.review_proposal(proposal.id, "reject", feedback="Categories too broad")

        assert result.status == "rejected"
        assert result.domain_schema_id is None
        stored = await generator.get_proposal(proposal.id)
        assert stored.status == "rejected"
        assert stored.feedback == "Categories too broad"
        assert await schema_repository.list_domain_schemas() == []

    @pytest.mark.asyncio
    async def test_already_reviewed(self, generator):
        proposal = await generator.generate(DESCRIPTION)
        await generator.review_proposal(proposal.id, "reject")

        with pytest.raises(SchemaGenerationError, match="already been reviewed"):
            await generator.review_proposal(proposal.id, "approve")

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, generator):
        with pytest.raises(SchemaProposalNotFoundError):
            await generator.review_proposal("nonexistent", "approve")
        assert await generator.get_proposal("nonexistent") is None

    @pytest.mark.asyncio
    async def test_list_proposals_by_status(self, generator):
        kept = await generator.generate(DESCRIPTION)
        dropped = await generator.generate(DESCRIPTION)
        await generator.review_proposal(dropped.id, "reject")

        assert [p.id for p in await generator.list_proposals(["pending"])] == [kept.id]
        assert {p.id for p in await generator.list_proposals()} == {kept.id, dropped.id}
