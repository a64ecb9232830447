"""Structuring stage: distills the turn into a KnowledgeEntry, merging follow-ups."""

import json
from uuid import uuid4

from mycel.core.errors import AgentError
from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import StructuredEntry, StructuringOutput, StructuringResult
from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_knowledge import (
    FollowUp,
    KnowledgeEntry,
    KnowledgeSource,
    ProcessingDetails,
    utc_now,
)

logger = get_logger(__name__)

MERGE_INSTRUCTION = (
    "Merge the new information: update structuredData with newly provided fields, append to "
    "content, and update tags. Keep the existing title unless the new information warrants "
    "a better one."
)

OUTPUT_INSTRUCTIONS = """Create a knowledge entry with:
- title: a concise title
- content: the full content, cleaned up and well-structured
- structured_data: extracted field values as key-value pairs
- tags: relevant tags
- is_complete: whether all required fields are filled
- missing_fields: required fields that are still missing

Respond with a JSON object.

Example: {"title": "Village Church History", "content": "The village church was built in the 18th century.", "structured_data": {"period": "18th century"}, "tags": ["history", "architecture"], "is_complete": false, "missing_fields": ["sources"]}"""


def _merge_block(state: PipelineState) -> str:
    turn_context = state.turn_context
    if not (turn_context and turn_context.is_follow_up and turn_context.previous_entry):
        return ""
    existing = turn_context.previous_entry
    return (
        "\n[FOLLOW_UP_CONTEXT]\n"
        f"This is follow-up turn {turn_context.turn_number}. "
        "Merge new information into the existing entry.\n\n"
        "Existing entry:\n"
        f"- Title: {existing.title}\n"
        f"- Content: {existing.content}\n"
        f"- Structured data: {json.dumps(existing.structured_data, default=str)}\n"
        f"- Tags: {', '.join(existing.tags)}\n\n"
        f"{MERGE_INSTRUCTION}\n"
    )


def build_structuring_prompt(domain_config: DomainConfig, state: PipelineState) -> str:
    """
    Prompt for extracting the category's fields from the user's input.

    Raises:
        AgentError: If the category is not part of the domain, `_uncategorized` included
    """
    category_id = state.classifier_output.result.category_id
    category = domain_config.get_category(category_id)
    if category is None:
        raise AgentError(f"Unknown category: {category_id}")

    gap_output = state.gap_reasoning_output
    if gap_output and gap_output.result.gaps:
        gap_info = "Identified gaps: " + ", ".join(g.field for g in gap_output.result.gaps)
    else:
        gap_info = "No gaps were identified."

    header = (
        "You are a structuring agent. Extract structured knowledge from the user's input "
        f'for the "{category.label}" category.\n\n'
        f"Required fields: {', '.join(category.required_fields) or 'none'}\n"
        f"Optional fields: {', '.join(category.optional_fields) or 'none'}"
    )

    return f"{header}\n\n{gap_info}\n{_merge_block(state)}\n{OUTPUT_INSTRUCTIONS}"


def build_structuring_node(domain_config: DomainConfig, llm_client: LlmClient):
    """Create the structuring node for the pipeline graph."""

    async def structuring_node(state: PipelineState) -> dict:
        if state.classifier_output is None or not state.classifier_output.result.category_id:
            raise AgentError("Structuring requires classifier output with a category_id")

        classifier = state.classifier_output
        category_id = classifier.result.category_id
        logger.info(
            "Structuring knowledge entry",
            extra={"session_id": state.session_id, "category_id": category_id},
        )

        request = LlmRequest(
            system_prompt=build_structuring_prompt(domain_config, state),
            user_message=state.input.content,
        )
        result = await invoke_and_validate(llm_client, request, StructuredEntry, "Structuring")

        now = utc_now()
        previous = state.turn_context.previous_entry if state.turn_context else None

        gaps = state.gap_reasoning_output.result.gaps if state.gap_reasoning_output else []
        questions = (
            state.gap_reasoning_output.result.follow_up_questions
            if state.gap_reasoning_output
            else []
        )
        follow_up = None
        if gaps or questions:
            follow_up = FollowUp(
                gaps=[f"{g.field}: {g.description}" for g in gaps],
                suggested_questions=list(questions),
            )

        entry = KnowledgeEntry(
            id=previous.id if previous else str(uuid4()),
            category_id=category_id,
            subcategory_id=classifier.result.subcategory_id,
            title=result.title,
            content=result.content,
            source=KnowledgeSource(
                type="text",
                processing_details=ProcessingDetails(
                    extracted_text=state.input.content,
                    confidence=classifier.confidence,
                ),
            ),
            structured_data=result.structured_data,
            tags=result.tags,
            metadata=dict(state.input.metadata),
            follow_up=follow_up,
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )

        logger.info(
            "Structuring complete",
            extra={
                "session_id": state.session_id,
                "entry_id": entry.id,
                "is_complete": result.is_complete,
            },
        )
        return {
            "structuring_output": StructuringOutput(
                result=StructuringResult(
                    entry=entry,
                    is_complete=result.is_complete,
                    missing_fields=result.missing_fields,
                )
            )
        }

    return structuring_node
