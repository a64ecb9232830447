"""Tests for the gap reasoning stage and its prompt modes."""

from unittest.mock import AsyncMock

import pytest

from mycel.agents.gap_reasoning import GapReasoner, build_gap_reasoning_node
from mycel.core.errors import AgentError
from mycel.core.pipeline_state import PipelineState, TurnContext, TurnSummary
from mycel.core.schemas_agents import AgentInput, ClassifierOutput, ClassifierResult
from mycel.core.schemas_knowledge import UNCATEGORIZED
from tests.fakes.fake_llm import FakeLlmClient
from tests.fixtures_domain import DOMAIN_NAME, SESSION_ID, make_entry


def _state(category_id: str = "history", intent: str = "content", **fields) -> PipelineState:
    result = ClassifierResult(
        category_id=category_id,
        confidence=0.9,
        intent=intent,
        summary=fields.pop("summary", None),
        suggested_category_label=fields.pop("suggested_category_label", None),
    )
    return PipelineState(
        session_id=SESSION_ID,
        input=AgentInput(session_id=SESSION_ID, content="The church was built long ago."),
        classifier_output=ClassifierOutput(result=result, confidence=0.9),
        **fields,
    )


class TestGapReasoningRun:
    @pytest.mark.asyncio
    async def test_greeting_skips_model(self, domain_config, fake_llm):
        reasoner = GapReasoner(domain_config, fake_llm)

        output = await reasoner.run(_state("_meta", "greeting"))

        assert output.result.gaps == []
        assert output.result.follow_up_questions == []
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_truncates_to_three_questions(self, domain_config):
        llm = FakeLlmClient(
            {
                "gap_reasoning": {
                    "gaps": [{"field": "period", "description": "When", "priority": "high"}],
                    "follow_up_questions": ["q1", "q2", "q3", "q4", "q5"],
                }
            }
        )
        node = build_gap_reasoning_node(domain_config, llm)

        update = await node(_state())

        output = update["gap_reasoning_output"]
        assert output.result.follow_up_questions == ["q1", "q2", "q3"]
        assert [g.field for g in output.result.gaps] == ["period"]

    @pytest.mark.asyncio
    async def test_requires_classifier_output(self, domain_config, fake_llm):
        reasoner = GapReasoner(domain_config, fake_llm)
        state = PipelineState(
            session_id=SESSION_ID, input=AgentInput(session_id=SESSION_ID, content="x")
        )

        with pytest.raises(AgentError):
            await reasoner.run(state)

    @pytest.mark.asyncio
    async def test_unknown_category_raises(self, domain_config, fake_llm):
        reasoner = GapReasoner(domain_config, fake_llm)

        with pytest.raises(AgentError, match="Unknown category: cooking"):
            await reasoner.run(_state("cooking"))


class TestGapReasoningPrompts:
    @pytest.mark.asyncio
    async def test_structured_mode_lists_fields(self, domain_config, fake_llm):
        prompt = await GapReasoner(domain_config, fake_llm).build_prompt(_state())

        assert "Required fields for this category: period" in prompt
        assert "Optional fields for this category: location, sources" in prompt
        assert "[FOLLOW_UP_CONTEXT]" not in prompt

    @pytest.mark.asyncio
    async def test_exploratory_mode_for_uncategorized(self, domain_config, fake_llm):
        state = _state(UNCATEGORIZED, summary="Pottery workshop", suggested_category_label="Crafts")

        prompt = await GapReasoner(domain_config, fake_llm).build_prompt(state)

        assert "exploratory mode" in prompt
        assert "Classifier summary: Pottery workshop" in prompt
        assert "Suggested topic area: Crafts" in prompt
        assert "Required fields" not in prompt

    @pytest.mark.asyncio
    async def test_proactive_mode_lists_categories_with_fields(self, domain_config, fake_llm):
        prompt = await GapReasoner(domain_config, fake_llm).build_prompt(
            _state("_meta", "proactive_request")
        )

        assert "LEAST coverage" in prompt
        assert "- nature: Nature - Plants animals and landscape (fields: species, habitat, season)" in prompt

    @pytest.mark.asyncio
    async def test_dont_know_mode_with_skipped_fields(self, domain_config, fake_llm):
        state = _state(
            intent="dont_know",
            turn_context=TurnContext(
                turn_number=3, is_follow_up=True, skipped_fields=["period"]
            ),
        )

        prompt = await GapReasoner(domain_config, fake_llm).build_prompt(state)

        assert "don't know the answer" in prompt
        assert "[SKIPPED TOPICS]" in prompt
        assert "- period" in prompt
        assert "Suggest switching to a DIFFERENT category entirely" in prompt
        assert "Other available categories:" in prompt

    @pytest.mark.asyncio
    async def test_follow_up_block_summarizes_previous_turns(self, domain_config, fake_llm):
        state = _state(
            turn_context=TurnContext(
                turn_number=2,
                is_follow_up=True,
                previous_turns=[
                    TurnSummary(
                        turn_number=1,
                        user_input="The church is old.",
                        gaps=["period"],
                        filled_fields=["location"],
                    )
                ],
                previous_entry=make_entry(structured_data={"location": "hill"}),
            ),
        )

        prompt = await GapReasoner(domain_config, fake_llm).build_prompt(state)

        assert "This is follow-up turn 2" in prompt
        assert 'Turn 1: User said: "The church is old." | Gaps: period | Filled: location' in prompt
        assert 'Existing structured data: {"location": "hill"}' in prompt

    @pytest.mark.asyncio
    async def test_field_stats_included_after_enough_asks(
        self, domain_config, fake_llm, field_stats_repository
    ):
        for _ in range(6):
            await field_stats_repository.increment_asked(DOMAIN_NAME, "history", "period")
        await field_stats_repository.increment_answered(DOMAIN_NAME, "history", "period")
        for _ in range(2):
            await field_stats_repository.increment_asked(DOMAIN_NAME, "history", "sources")

        reasoner = GapReasoner(domain_config, fake_llm, field_stats_repository)
        prompt = await reasoner.build_prompt(_state())

        assert "[FIELD_STATS]" in prompt
        assert "- period: 17% (1/6)" in prompt
        assert "- sources:" not in prompt

    @pytest.mark.asyncio
    async def test_field_stats_failure_is_ignored(self, domain_config, fake_llm):
        repository = AsyncMock()
        repository.get_by_category.side_effect = RuntimeError("stats store down")

        prompt = await GapReasoner(domain_config, fake_llm, repository).build_prompt(_state())

        assert "[FIELD_STATS]" not in prompt
