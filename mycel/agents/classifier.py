"""Classifier stage: detects the user's intent and assigns a domain category."""

from mycel.core.errors import AgentError
from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import ClassifierOutput, ClassifierResult
from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_knowledge import META_CATEGORY, UNCATEGORIZED

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are the classifier agent of a knowledge collection system.
First determine the user's INTENT, then classify the input if it carries content.

## Step 1: Intent

- "greeting": greetings or small talk without information ("hi", "hello", "hallo", "moin").
  Set category_id to "{meta}" and confidence to 1.0.
- "proactive_request": the user asks YOU to ask questions or wants to know what is missing
  ("ask me something", "what do you want to know?", "frag mich was").
  Set category_id to "{meta}" and confidence to 1.0.
- "dont_know": on a follow-up turn the user says they do not know the answer
  ("I don't know", "no idea", "keine Ahnung"). Keep the current topic's category and set
  is_topic_change to false.
- "content": the user shares knowledge, facts, stories or descriptions. Go to step 2.

## Step 2: Category (content only)

Available categories:
{categories}

If nothing fits with confidence of at least 0.6, use "{uncategorized}". Only then also provide
"summary" (what the input is about) and "suggested_category_label" (a new category name in
{language}).
{session_context}
Respond with JSON:
- category_id: a category id, "{uncategorized}" or "{meta}"
- subcategory_id: optional, null for non-content intents
- confidence: number between 0 and 1
- intent: "content", "greeting", "proactive_request" or "dont_know"
- is_topic_change: true only when a follow-up turn clearly switches to a different subject
- reasoning: one sentence
- summary, suggested_category_label: only for "{uncategorized}"

Example: {{"category_id": "history", "confidence": 0.92, "intent": "content", "is_topic_change": false, "reasoning": "Historical content."}}
"""

SESSION_CONTEXT_TEMPLATE = """
[SESSION_CONTEXT]
The user is in a conversation about the topic "{active_category}".
{last_question}
Decide whether the user is answering within this topic (including "I don't know" or "no",
which is NOT a topic change, so is_topic_change is false) or introduces a completely
different subject (is_topic_change is true).
"""


def build_classifier_prompt(domain_config: DomainConfig, state: PipelineState) -> str:
    category_list = "\n".join(
        f"- {c.id}: {c.label} - {c.description}" for c in domain_config.categories
    )

    session_context = ""
    turn_context = state.turn_context
    if turn_context and turn_context.is_follow_up and state.active_category:
        last_question = ""
        if turn_context.asked_questions:
            last_question = (
                f'The last question asked to the user was: "{turn_context.asked_questions[-1]}"'
            )
        session_context = SESSION_CONTEXT_TEMPLATE.format(
            active_category=state.active_category, last_question=last_question
        )

    return SYSTEM_PROMPT.format(
        meta=META_CATEGORY,
        uncategorized=UNCATEGORIZED,
        categories=category_list,
        language=domain_config.ingestion.primary_language,
        session_context=session_context,
    )


def build_classifier_node(domain_config: DomainConfig, llm_client: LlmClient):
    """Create the classifier node for the pipeline graph."""
    known_ids = set(domain_config.category_ids)

    async def classifier_node(state: PipelineState) -> dict:
        logger.info("Classifying input", extra={"session_id": state.session_id})

        if not domain_config.categories:
            raise AgentError("No categories configured in domain schema")

        request = LlmRequest(
            system_prompt=build_classifier_prompt(domain_config, state),
            user_message=state.input.content,
        )
        result = await invoke_and_validate(llm_client, request, ClassifierResult, "Classifier")

        if result.category_id not in known_ids and result.category_id not in (
            UNCATEGORIZED,
            META_CATEGORY,
        ):
            logger.warning(
                f"Classifier returned unknown category '{result.category_id}', "
                f"treating input as {UNCATEGORIZED}",
                extra={"session_id": state.session_id},
            )
            result = result.model_copy(update={"category_id": UNCATEGORIZED})

        logger.info(
            "Classification complete",
            extra={
                "session_id": state.session_id,
                "category_id": result.category_id,
                "intent": result.intent,
                "confidence": result.confidence,
                "is_topic_change": result.is_topic_change,
            },
        )

        return {
            "classifier_output": ClassifierOutput(
                result=result,
                confidence=result.confidence,
                reasoning=result.reasoning,
            )
        }

    return classifier_node
