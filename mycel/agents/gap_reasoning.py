"""Gap reasoning stage: finds missing information and drafts follow-up questions.

Four prompt modes, chosen from the classifier's intent and category:

- proactive_request: the user asked to be asked; review domain-wide coverage
- dont_know: the user could not answer; try another angle or category
- exploratory: input is uncategorized; ask open questions without a field list
- structured: known category; compare against its required and optional fields
"""

import json

from mycel.core.errors import AgentError
from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import GapReasoningOutput, GapReasoningResult
from mycel.core.schemas_domain import Category, DomainConfig
from mycel.core.schemas_knowledge import UNCATEGORIZED
from mycel.db.field_stats import FieldStatsRepository

logger = get_logger(__name__)

MAX_FOLLOW_UP_QUESTIONS = 3
FIELD_STATS_MIN_ASKED = 5

CONTEXT_RULE = (
    "Generate follow-up questions that CONNECT the user's input to existing knowledge "
    "(for example, if the user mentions a building near a known church, ask how the two "
    "relate instead of asking generic questions)"
)
NO_CONTEXT_RULE = "Only ask about things the user is likely to know based on their input"

PROACTIVE_PROMPT = """You are a gap analysis agent deciding which knowledge areas need more coverage. The user has asked you to ask them questions.

Available categories:
{categories}

## What Is Already Known
{context_summary}
{skipped}
Identify the categories with the LEAST coverage, or none at all, and ask 1-2 specific,
curious questions about them, the way an interested local would ask.

Rules:
- Focus on categories with zero or very few entries
- If every category has some coverage, ask for depth in the weakest one
- Maximum 2 questions
- Use the category id as the gap field name

Respond with JSON: gaps (array of {{field, description, priority}}), follow_up_questions (max 2), reasoning."""

DONT_KNOW_PROMPT = """You are a gap-reasoning agent. The user just said they don't know the answer to a previous question.

Current category: {category_label}
{other_categories}
## Already Known
{context_summary}
{skipped}{follow_up}
{skipped_note}
Rules:
- Do NOT ask about skipped topics again
- {direction}
- Ask at most 1 follow-up question about a topic that has not been asked yet
- If nothing is left to ask, return empty gaps and questions

Respond with JSON: gaps (array of {{field, description, priority}}), follow_up_questions (max 1), reasoning."""

EXPLORATORY_PROMPT = """You are a gap-reasoning and gap analysis agent in exploratory mode. The user's input did not fit any existing knowledge category.

Classifier summary: {summary}
{suggested_label}
## Already Known
{context_summary}
{skipped}{follow_up}
Understand what the user is sharing and ask questions that capture their knowledge more fully.
There is no predefined list of fields to check.

Rules:
- NEVER ask about anything already listed under "Already Known"
- {context_rule}
- For personal experiences ask about details of the experience; for facts ask about sources
- Include one question about the broader topic, such as whether this happens regularly here
- If the input is already rich, few or no gaps are fine
- Maximum {max_questions} follow-up questions, most natural first
- Use descriptive gap field names such as "timeframe", "location" or "personal_connection"

Respond with JSON: gaps (array of {{field, description, priority}} using "medium" or "low" priority), follow_up_questions (max {max_questions}), reasoning."""

STRUCTURED_PROMPT = """You are a gap-reasoning and gap analysis agent. Analyze the user's input for a knowledge entry in the "{category_label}" category.

Required fields for this category: {required}
Optional fields for this category: {optional}
{field_stats}
## Already Known
{context_summary}
{skipped}{follow_up}
Identify missing or incomplete information. For each gap give the field name, what is missing
and a priority (high for required fields, medium or low for optional ones).

Rules:
- NEVER ask about anything already listed under "Already Known"
- {context_rule}
- If the input is already rich, return fewer or no gaps
- Rank questions by how likely the user can answer them
- Never ask for specialized expertise the user has not shown
- Maximum {max_questions} follow-up questions

Respond with JSON: gaps (array of {{field, description, priority}}), follow_up_questions (max {max_questions}), reasoning.

Example: {{"gaps": [{{"field": "period", "description": "The time period is unclear", "priority": "high"}}], "follow_up_questions": ["Can you say when this happened?"], "reasoning": "No date given."}}"""


def _skipped_block(skipped_fields: list[str]) -> str:
    if not skipped_fields:
        return ""
    lines = "\n".join(f"- {f}" for f in skipped_fields)
    return (
        "\n[SKIPPED TOPICS]\n"
        "The user already said they don't know about these topics. Do NOT ask about them again:\n"
        f"{lines}\n\n"
        "Ask about something different or move to another category.\n"
    )


def _follow_up_block(state: PipelineState) -> str:
    turn_context = state.turn_context
    if turn_context is None or not turn_context.is_follow_up:
        return ""

    previous = "\n".join(
        f'Turn {t.turn_number}: User said: "{t.user_input}" | '
        f"Gaps: {', '.join(t.gaps) or 'none'} | "
        f"Filled: {', '.join(t.filled_fields) or 'none'}"
        for t in turn_context.previous_turns
    )
    existing = "none"
    if turn_context.previous_entry is not None:
        existing = json.dumps(turn_context.previous_entry.structured_data, default=str)

    return (
        "\n[FOLLOW_UP_CONTEXT]\n"
        f"This is follow-up turn {turn_context.turn_number}. "
        "The user is providing additional information.\n\n"
        f"Previous turns:\n{previous}\n\n"
        f"Existing structured data: {existing}\n\n"
        "Focus ONLY on remaining gaps that have not been filled yet.\n"
    )


def _describe_category(category: Category, with_fields: bool = False) -> str:
    line = f"- {category.id}: {category.label} - {category.description}"
    fields = category.required_fields + category.optional_fields
    if with_fields and fields:
        line += f" (fields: {', '.join(fields)})"
    return line


class GapReasoner:
    """Builds the gap reasoning prompt for a run and calls the model."""

    def __init__(
        self,
        domain_config: DomainConfig,
        llm_client: LlmClient,
        field_stats_repository: FieldStatsRepository | None = None,
        domain_schema_id: str | None = None,
    ):
        self.domain_config = domain_config
        self.llm_client = llm_client
        self.field_stats_repository = field_stats_repository
        self.domain_schema_id = domain_schema_id or domain_config.name

    async def _field_stats_block(self, category_id: str) -> str:
        if self.field_stats_repository is None:
            return ""
        try:
            stats = await self.field_stats_repository.get_by_category(
                self.domain_schema_id, category_id
            )
        except Exception as e:
            logger.warning(
                f"Failed to load field stats for gap reasoning: {e}",
                extra={"category_id": category_id},
            )
            return ""

        relevant = sorted(
            (s for s in stats if s.times_asked >= FIELD_STATS_MIN_ASKED),
            key=lambda s: s.answer_rate,
        )
        if not relevant:
            return ""
        lines = "\n".join(
            f"- {s.field_name}: {round(s.answer_rate * 100)}% ({s.times_answered}/{s.times_asked})"
            for s in relevant
        )
        return (
            "\n[FIELD_STATS]\n"
            "Answer rates for fields in this category (consider deprioritizing very low rates):\n"
            f"{lines}\n"
        )

    async def build_prompt(self, state: PipelineState) -> str:
        """
        Select the prompt mode for this run.

        Raises:
            AgentError: If a known-category run names a category missing from the domain
        """
        result = state.classifier_output.result
        category_id = result.category_id

        dispatcher = state.context_dispatcher_output
        context_summary = dispatcher.result.context_summary if dispatcher else "No context available."
        has_context = bool(dispatcher and dispatcher.result.relevant_context)
        context_rule = CONTEXT_RULE if has_context else NO_CONTEXT_RULE

        skipped_fields = state.turn_context.skipped_fields if state.turn_context else []
        skipped = _skipped_block(skipped_fields)
        follow_up = _follow_up_block(state)

        if result.intent == "proactive_request":
            return PROACTIVE_PROMPT.format(
                categories="\n".join(
                    _describe_category(c, with_fields=True) for c in self.domain_config.categories
                ),
                context_summary=context_summary,
                skipped=skipped,
            )

        if result.intent == "dont_know":
            category = self.domain_config.get_category(category_id)
            others = [c for c in self.domain_config.categories if c.id != category_id]
            other_categories = ""
            if others:
                other_categories = "\nOther available categories:\n" + "\n".join(
                    _describe_category(c) for c in others
                ) + "\n"
            all_skipped = bool(skipped_fields)
            return DONT_KNOW_PROMPT.format(
                category_label=category.label if category else category_id,
                other_categories=other_categories,
                context_summary=context_summary,
                skipped=skipped,
                follow_up=follow_up,
                skipped_note=(
                    "Several topics in this category have been skipped already.\n"
                    if all_skipped
                    else ""
                ),
                direction=(
                    "Suggest switching to a DIFFERENT category entirely"
                    if all_skipped
                    else "Try a different angle within the current category, or suggest another category"
                ),
            )

        if category_id == UNCATEGORIZED:
            suggested = ""
            if result.suggested_category_label:
                suggested = f"Suggested topic area: {result.suggested_category_label}\n"
            return EXPLORATORY_PROMPT.format(
                summary=result.summary or "No summary available.",
                suggested_label=suggested,
                context_summary=context_summary,
                skipped=skipped,
                follow_up=follow_up,
                context_rule=context_rule,
                max_questions=MAX_FOLLOW_UP_QUESTIONS,
            )

        category = self.domain_config.get_category(category_id)
        if category is None:
            raise AgentError(f"Unknown category: {category_id}")

        return STRUCTURED_PROMPT.format(
            category_label=category.label,
            required=", ".join(category.required_fields) or "none",
            optional=", ".join(category.optional_fields) or "none",
            field_stats=await self._field_stats_block(category_id),
            context_summary=context_summary,
            skipped=skipped,
            follow_up=follow_up,
            context_rule=context_rule,
            max_questions=MAX_FOLLOW_UP_QUESTIONS,
        )

    async def run(self, state: PipelineState) -> GapReasoningOutput:
        classifier_output = state.classifier_output
        if classifier_output is None or not classifier_output.result.category_id:
            raise AgentError("Gap reasoning requires classifier output with a category_id")

        intent = classifier_output.result.intent
        logger.info(
            "Analyzing knowledge gaps",
            extra={
                "session_id": state.session_id,
                "category_id": classifier_output.result.category_id,
                "intent": intent,
            },
        )

        if intent == "greeting":
            return GapReasoningOutput(
                result=GapReasoningResult(gaps=[], follow_up_questions=[]),
                reasoning="No gap analysis needed for greeting.",
            )

        request = LlmRequest(
            system_prompt=await self.build_prompt(state),
            user_message=state.input.content,
        )
        result = await invoke_and_validate(
            self.llm_client, request, GapReasoningResult, "Gap reasoning"
        )

        questions = result.follow_up_questions[:MAX_FOLLOW_UP_QUESTIONS]
        logger.info(
            "Gap analysis complete",
            extra={
                "session_id": state.session_id,
                "gap_count": len(result.gaps),
                "question_count": len(questions),
            },
        )
        return GapReasoningOutput(
            result=GapReasoningResult(gaps=result.gaps, follow_up_questions=questions),
            reasoning=result.reasoning,
        )


def build_gap_reasoning_node(
    domain_config: DomainConfig,
    llm_client: LlmClient,
    field_stats_repository: FieldStatsRepository | None = None,
    domain_schema_id: str | None = None,
):
    """Create the gap reasoning node for the pipeline graph."""
    reasoner = GapReasoner(domain_config, llm_client, field_stats_repository, domain_schema_id)

    async def gap_reasoning_node(state: PipelineState) -> dict:
        return {"gap_reasoning_output": await reasoner.run(state)}

    return gap_reasoning_node
