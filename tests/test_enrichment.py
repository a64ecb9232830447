"""Tests for claim extraction, claim validation and entry enrichment."""

import pytest

from mycel.chains.extract_claims import extract_claims
from mycel.chains.validate_claim import validate_claims
from mycel.core.errors import WebSearchError
from mycel.core.schemas_knowledge import ExtractedClaim
from mycel.core.web_search import WebSearchResult
from mycel.db.search_cache import InMemorySearchCacheRepository
from mycel.services.enrichment import EnrichmentService
from tests.fakes.fake_llm import FakeLlmClient
from tests.fakes.fake_web_search import FakeWebSearchClient
from tests.fixtures_domain import DOMAIN_NAME, make_entry

CHURCH_CLAIMS = {
    "claims": [
        {"claim": "The church was built in 1732", "verifiable": True, "search_query": "village church 1732"},
        {"claim": "It is the most beautiful church", "verifiable": False},
        {"claim": "The bell was cast in Lyon", "verifiable": True, "search_query": "church bell Lyon"},
    ]
}


def _claim(text: str, query: str | None) -> ExtractedClaim:
    return ExtractedClaim(claim=text, verifiable=True, search_query=query)


class TestExtractClaims:
    @pytest.mark.asyncio
    async def test_keeps_verifiable_claims_with_query(self):
        llm = FakeLlmClient(
            {
                "claims": {
                    "claims": [
                        *CHURCH_CLAIMS["claims"],
                        {"claim": "No query given", "verifiable": True},
                    ]
                }
            }
        )

        claims = await extract_claims("The church was built in 1732.", llm)

        assert [c.search_query for c in claims] == ["village church 1732", "church bell Lyon"]
        assert llm.requests_for("claims")[0].user_message == "The church was built in 1732."


class TestValidateClaims:
    @pytest.mark.asyncio
    async def test_uses_cache_before_searching(self):
        cache = InMemorySearchCacheRepository()
        await cache.set("village church 1732", "Built 1732.", ["https://cached.example.org"])
        search = FakeWebSearchClient()
        llm = FakeLlmClient()

        outcome = await validate_claims(
            [_claim("Built in 1732", "village church 1732"), _claim("Bell from Lyon", "church bell Lyon")],
            llm,
            search,
            cache,
            max_searches=3,
        )

        assert search.queries == ["church bell Lyon"]
        assert search.contexts == ['Verifying claim: "Bell from Lyon"']
        assert (await cache.get("church bell lyon")).content == "Search results for church bell Lyon"
        assert outcome.search_queries == ["village church 1732", "church bell Lyon"]
        assert outcome.source_urls == ["https://cached.example.org", "https://example.org/1"]
        assert [c.status for c in outcome.verified] == ["verified", "verified"]
        assert outcome.verified[0].source_url == "https://cached.example.org"
        assert "Built 1732." in llm.requests_for("fact_check")[0].user_message

    @pytest.mark.asyncio
    async def test_respects_max_searches(self):
        search = FakeWebSearchClient()

        outcome = await validate_claims(
            [_claim(f"claim {i}", f"query {i}") for i in range(5)],
            FakeLlmClient(),
            search,
            InMemorySearchCacheRepository(),
            max_searches=2,
        )

        assert search.queries == ["query 0", "query 1"]
        assert len(outcome.verified) == 2

    @pytest.mark.asyncio
    async def test_search_failure_marks_claim_unverifiable(self):
        search = FakeWebSearchClient(error=WebSearchError("search backend down"))

        outcome = await validate_claims(
            [_claim("Built in 1732", "village church 1732")],
            FakeLlmClient(),
            search,
            InMemorySearchCacheRepository(),
            max_searches=3,
        )

        [claim] = outcome.verified
        assert claim.status == "unverifiable"
        assert claim.confidence == 0.0
        assert outcome.search_queries == []

    @pytest.mark.asyncio
    async def test_source_urls_are_unique(self):
        shared = WebSearchResult(query="q", content="text", source_urls=["https://a.org", "https://b.org"])
        search = FakeWebSearchClient(results={"q1": shared, "q2": shared})

        outcome = await validate_claims(
            [_claim("first", "q1"), _claim("second", "q2")],
            FakeLlmClient(),
            search,
            InMemorySearchCacheRepository(),
            max_searches=3,
        )

        assert outcome.source_urls == ["https://a.org", "https://b.org"]

    @pytest.mark.asyncio
    async def test_contradicted_claim_keeps_evidence(self):
        llm = FakeLlmClient(
            {"fact_check": {"status": "contradicted", "evidence": "Built in 1754.", "confidence": 0.8}}
        )

        outcome = await validate_claims(
            [_claim("Built in 1732", "village church 1732")],
            llm,
            FakeWebSearchClient(),
            InMemorySearchCacheRepository(),
            max_searches=3,
        )

        [claim] = outcome.verified
        assert claim.status == "contradicted"
        assert claim.evidence == "Built in 1754."
        assert claim.confidence == 0.8


class TestEnrichmentService:
    def _service(self, llm, knowledge_repository, mode="enrichment", search=None):
        return EnrichmentService(
            llm,
            search or FakeWebSearchClient(),
            InMemorySearchCacheRepository(),
            knowledge_repository,
            mode,
        )

    def test_max_searches_defaults_to_settings(self, fake_llm, knowledge_repository):
        assert self._service(fake_llm, knowledge_repository).max_searches == 3

    @pytest.mark.parametrize(
        "mode,enabled",
        [("disabled", False), ("bootstrap_only", False), ("enrichment", True), ("full", True)],
    )
    def test_enabled_modes(self, fake_llm, knowledge_repository, mode, enabled):
        assert self._service(fake_llm, knowledge_repository, mode).enabled is enabled

    @pytest.mark.asyncio
    async def test_disabled_mode_does_nothing(self, fake_llm, knowledge_repository):
        service = self._service(fake_llm, knowledge_repository, "disabled")

        assert await service.enrich("entry-1", "The church was built in 1732.") is None
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_no_claims_leaves_entry_untouched(self, fake_llm, knowledge_repository):
        stored = await knowledge_repository.create(make_entry())
        search = FakeWebSearchClient()

        result = await self._service(fake_llm, knowledge_repository, search=search).enrich(
            stored.id, "I love this church."
        )

        assert result is None
        assert search.queries == []
        assert (await knowledge_repository.get_by_id(stored.id)).enrichment is None

    @pytest.mark.asyncio
    async def test_enrichment_is_attached_to_entry(self, knowledge_repository):
        stored = await knowledge_repository.create(make_entry())
        llm = FakeLlmClient({"claims": CHURCH_CLAIMS})

        enrichment = await self._service(llm, knowledge_repository).enrich(
            stored.id, "The church was built in 1732 and its bell came from Lyon.", "history", DOMAIN_NAME
        )

        assert [c.claim for c in enrichment.claims] == [
            "The church was built in 1732",
            "The bell was cast in Lyon",
        ]
        assert enrichment.search_queries == ["village church 1732", "church bell Lyon"]
        assert enrichment.source_urls == ["https://example.org/1", "https://example.org/2"]
        updated = await knowledge_repository.get_by_id(stored.id)
        assert updated.enrichment == enrichment
