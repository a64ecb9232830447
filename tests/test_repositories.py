"""Tests for the in-memory repositories."""

from datetime import timedelta

import pytest

from mycel.core.errors import PersistenceError
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import AgentInput
from mycel.core.schemas_domain import (
    DomainBehaviorConfig,
    PersistedDomainSchema,
    PersistedPersonaSchema,
)
from mycel.core.schemas_evolution import EvolutionProposal
from mycel.core.schemas_generation import SchemaProposal
from mycel.core.schemas_knowledge import UNCATEGORIZED
from mycel.core.schemas_session import TurnInput
from mycel.db.evolution_proposals import InMemoryEvolutionProposalRepository
from mycel.db.knowledge import InMemoryKnowledgeRepository
from mycel.db.schema_proposals import InMemorySchemaProposalRepository
from mycel.db.schemas import InMemorySchemaRepository
from mycel.db.search_cache import InMemorySearchCacheRepository
from tests.fixtures_domain import (
    DOMAIN_NAME,
    make_domain_config,
    make_entry,
    make_persona_config,
)


def _unit(*values: float) -> list[float]:
    return list(values)


class TestKnowledgeRepository:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_draft_status(self):
        repository = InMemoryKnowledgeRepository()
        entry = make_entry(status="confirmed", embedding=_unit(1.0, 0.0))

        stored = await repository.create(entry)

        assert stored.id != entry.id
        assert stored.status == "draft"
        assert stored.embedding_generated_at is not None
        assert await repository.get_by_id(stored.id) == stored

    @pytest.mark.asyncio
    async def test_create_without_embedding_has_no_timestamp(self):
        stored = await InMemoryKnowledgeRepository().create(make_entry())

        assert stored.embedding_generated_at is None

    @pytest.mark.asyncio
    async def test_search_similar_scopes_filters_and_sorts(self):
        repository = InMemoryKnowledgeRepository()
        best = await repository.create(make_entry(title="best", embedding=_unit(1.0, 0.0)))
        good = await repository.create(make_entry(title="good", embedding=_unit(0.9, 0.3)))
        await repository.create(make_entry(title="orthogonal", embedding=_unit(0.0, 1.0)))
        await repository.create(
            make_entry(title="other domain", domain_schema_id="elsewhere", embedding=_unit(1.0, 0.0))
        )
        await repository.create(
            make_entry(title="excluded", session_id="skip-me", embedding=_unit(1.0, 0.0))
        )

        results = await repository.search_similar(
            DOMAIN_NAME, _unit(1.0, 0.0), exclude_session_id="skip-me"
        )

        assert [r.entry.id for r in results] == [best.id, good.id]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score >= 0.7

    @pytest.mark.asyncio
    async def test_search_similar_respects_limit(self):
        repository = InMemoryKnowledgeRepository()
        for i in range(4):
            await repository.create(make_entry(title=f"e{i}", embedding=_unit(1.0, 0.01 * i)))

        results = await repository.search_similar(DOMAIN_NAME, _unit(1.0, 0.0), limit=2)

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_uncategorized_queries(self):
        repository = InMemoryKnowledgeRepository()
        draft = await repository.create(make_entry(category_id=UNCATEGORIZED, topic_keywords=["pottery"]))
        other_domain = await repository.create(
            make_entry(category_id=UNCATEGORIZED, domain_schema_id="elsewhere")
        )
        migrated = await repository.create(make_entry(category_id=UNCATEGORIZED))
        await repository.update(migrated.id, status="migrated")

        assert {e.id for e in await repository.get_uncategorized()} == {draft.id, other_domain.id}
        assert [e.id for e in await repository.get_uncategorized_by_domain(DOMAIN_NAME)] == [draft.id]
        assert [e.id for e in await repository.query_by_topic_keywords(["pottery", "x"])] == [draft.id]

    @pytest.mark.asyncio
    async def test_update_migration_stamps_timestamp(self):
        repository = InMemoryKnowledgeRepository()
        stored = await repository.create(make_entry(category_id=UNCATEGORIZED))

        await repository.update(
            stored.id, category_id="crafts", status="migrated", migrated_from=UNCATEGORIZED
        )

        updated = await repository.get_by_id(stored.id)
        assert updated.category_id == "crafts"
        assert updated.status == "migrated"
        assert updated.migrated_from == UNCATEGORIZED
        assert updated.migrated_at is not None
        assert updated.updated_at >= stored.updated_at

    @pytest.mark.asyncio
    async def test_update_errors(self):
        repository = InMemoryKnowledgeRepository()
        stored = await repository.create(make_entry())

        with pytest.raises(PersistenceError, match="Knowledge entry not found"):
            await repository.update("missing", status="confirmed")
        with pytest.raises(PersistenceError, match="Cannot update"):
            await repository.update(stored.id, title="renamed")


class TestSessionRepository:
    @pytest.mark.asyncio
    async def test_turns_and_updates(self, session_repository):
        session = await session_repository.create("village-knowledge", "Chronicler")
        state = PipelineState(
            session_id=session.id, input=AgentInput(session_id=session.id, content="hello")
        )

        turn = await session_repository.add_turn(session.id, 1, TurnInput(content="hello"), state)
        await session_repository.update(session.id, status="complete")

        loaded = await session_repository.get_session_with_turns(session.id)
        assert loaded.status == "complete"
        assert [t.id for t in loaded.turns] == [turn.id]
        assert loaded.turns[0].pipeline_result.input.content == "hello"
        assert (await session_repository.get_by_id(session.id)).turns == []

    @pytest.mark.asyncio
    async def test_update_errors(self, session_repository):
        session = await session_repository.create("village-knowledge", "Chronicler")

        with pytest.raises(PersistenceError):
            await session_repository.update("missing", status="complete")
        with pytest.raises(PersistenceError):
            await session_repository.update(session.id, domain_config_name="other")
        assert await session_repository.get_session_with_turns("missing") is None


class TestSchemaRepository:
    @pytest.mark.asyncio
    async def test_saving_active_schema_deactivates_previous(self):
        repository = InMemorySchemaRepository()
        first = await repository.save_domain_schema(
            PersistedDomainSchema(name=DOMAIN_NAME, config=make_domain_config())
        )
        second = await repository.save_domain_schema(
            PersistedDomainSchema(name=DOMAIN_NAME, version=2, config=make_domain_config())
        )

        assert (await repository.get_domain_schema(first.id)).is_active is False
        assert (await repository.get_active_domain_schema()).id == second.id
        assert (await repository.get_domain_schema_by_name(DOMAIN_NAME)).version == 2
        assert len(await repository.list_domain_schemas()) == 2
        assert await repository.get_domain_schema_by_name("unknown") is None

    @pytest.mark.asyncio
    async def test_persona_schemas(self):
        repository = InMemorySchemaRepository()
        first = await repository.save_persona_schema(
            PersistedPersonaSchema(name="Chronicler", config=make_persona_config())
        )
        second = await repository.save_persona_schema(
            PersistedPersonaSchema(name="Guide", config=make_persona_config(name="Guide"))
        )

        assert (await repository.get_persona_schema(first.id)).is_active is False
        assert (await repository.get_active_persona_schema()).id == second.id


class TestEvolutionProposalRepository:
    @pytest.mark.asyncio
    async def test_create_forces_pending_and_update_stamps_review(self):
        repository = InMemoryEvolutionProposalRepository()
        proposal = await repository.create(
            EvolutionProposal(
                domain_schema_id=DOMAIN_NAME,
                type="new_field",
                description="Add a field",
                confidence=0.5,
                status="approved",
            )
        )
        assert proposal.status == "pending"
        assert [p.id for p in await repository.get_pending_by_domain(DOMAIN_NAME)] == [proposal.id]

        await repository.update(proposal.id, status="rejected")

        updated = await repository.get_by_id(proposal.id)
        assert updated.status == "rejected"
        assert updated.reviewed_at is not None
        assert await repository.get_pending_by_domain(DOMAIN_NAME) == []
        assert len(await repository.get_by_domain(DOMAIN_NAME)) == 1

    @pytest.mark.asyncio
    async def test_update_missing_raises(self):
        with pytest.raises(PersistenceError):
            await InMemoryEvolutionProposalRepository().update("missing", status="rejected")


class TestSchemaProposalRepository:
    @pytest.mark.asyncio
    async def test_only_reviews_stamp_reviewed_at(self):
        repository = InMemorySchemaProposalRepository()
        proposal = await repository.create(
            SchemaProposal(
                description="A village website",
                language="en",
                proposed_schema=make_domain_config(),
                behavior=DomainBehaviorConfig(),
                reasoning="Drafted",
            )
        )

        edited = await repository.update(proposal.id, feedback="Looks fine")
        assert edited.reviewed_at is None
        assert [p.id for p in await repository.list_proposals(["pending"])] == [proposal.id]

        approved = await repository.update(proposal.id, status="approved")
        assert approved.reviewed_at is not None
        assert approved.feedback == "Looks fine"
        assert await repository.list_proposals(["pending", "rejected"]) == []

    @pytest.mark.asyncio
    async def test_update_missing_raises(self):
        with pytest.raises(PersistenceError, match="Schema proposal not found"):
            await InMemorySchemaProposalRepository().update("missing", status="rejected")


class TestFieldStatsRepository:
    @pytest.mark.asyncio
    async def test_counters_and_answer_rate(self, field_stats_repository):
        for _ in range(4):
            await field_stats_repository.increment_asked(DOMAIN_NAME, "history", "period")
        await field_stats_repository.increment_answered(DOMAIN_NAME, "history", "period")
        await field_stats_repository.increment_asked(DOMAIN_NAME, "nature", "species")

        [period] = await field_stats_repository.get_by_category(DOMAIN_NAME, "history")
        assert period.times_asked == 4
        assert period.times_answered == 1
        assert period.answer_rate == 0.25
        assert len(await field_stats_repository.get_by_domain(DOMAIN_NAME)) == 2

    @pytest.mark.asyncio
    async def test_answer_rate_zero_when_never_asked(self, field_stats_repository):
        await field_stats_repository.increment_answered(DOMAIN_NAME, "history", "sources")

        [stats] = await field_stats_repository.get_by_domain(DOMAIN_NAME)
        assert stats.answer_rate == 0.0


class TestSearchCacheRepository:
    @pytest.mark.asyncio
    async def test_normalized_hit(self):
        cache = InMemorySearchCacheRepository()
        await cache.set("  Church 1732 ", "content", ["https://example.org"])

        cached = await cache.get("church 1732")

        assert cached.content == "content"
        assert cached.source_urls == ["https://example.org"]
        assert cached.expires_at - cached.cached_at == timedelta(days=7)

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self):
        cache = InMemorySearchCacheRepository(ttl=timedelta(seconds=-1))
        await cache.set("church", "content", [])

        assert await cache.get("church") is None
        assert await cache.get("church") is None
