"""Persona stage: answers the user in the configured voice."""

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import Gap, PersonaOutput, PersonaResult
from mycel.core.schemas_domain import PersonaConfig

logger = get_logger(__name__)

MAX_GAPS_IN_PROMPT = 3
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def select_top_gaps(gaps: list[Gap], limit: int = MAX_GAPS_IN_PROMPT) -> list[Gap]:
    """Highest-priority gaps first; sorted() is stable so ties keep their order."""
    return sorted(gaps, key=lambda g: PRIORITY_ORDER[g.priority])[:limit]


def build_persona_header(persona: PersonaConfig) -> str:
    """Voice parameters shared by the persona stage and the greeting chain."""
    lines = [
        persona.system_prompt_template,
        "",
        "## Your persona",
        f"- Name: {persona.name}",
        f"- Tonality: {persona.tonality}",
        f"- Formality: {persona.formality}",
        f"- Language: {persona.language}",
    ]
    if persona.address_form:
        lines.append(f"- Address the user as: {persona.address_form}")
    if persona.prompt_behavior.encourage_storytelling:
        lines.append("- Encourage the user to tell stories and share personal memories")
    return "\n".join(lines)


def build_persona_prompt(persona: PersonaConfig, state: PipelineState) -> str:
    gap_output = state.gap_reasoning_output
    gaps = gap_output.result.gaps if gap_output else []
    suggested = gap_output.result.follow_up_questions if gap_output else []
    max_questions = persona.prompt_behavior.max_follow_up_questions

    parts = [build_persona_header(persona), ""]

    top_gaps = select_top_gaps(gaps)
    if top_gaps:
        parts.append("## Missing information")
        parts.extend(f"- {g.field} ({g.priority}): {g.description}" for g in top_gaps)
        if suggested:
            parts.append("")
            parts.append("Suggested questions:")
            parts.extend(f"- {q}" for q in suggested)
        parts.append("")
        parts.append(
            f"Thank the user for what they shared and ask at most {max_questions} "
            "natural follow-up questions about the missing information."
        )
    else:
        parts.append(
            "Nothing is missing right now. Write a warm closing message that thanks the user "
            "and invites them to share more whenever they like. Do not ask questions."
        )

    turn_context = state.turn_context
    if turn_context and turn_context.is_follow_up and turn_context.asked_questions:
        parts.append("")
        parts.append("You already asked these questions. Do NOT repeat them:")
        parts.extend(f"- {q}" for q in turn_context.asked_questions)

    parts.append("")
    parts.append(
        "Respond with JSON: response (your reply to the user) and "
        f"follow_up_questions (array of at most {max_questions} strings)."
    )
    return "\n".join(parts)


def build_persona_node(persona_config: PersonaConfig, llm_client: LlmClient):
    """Create the persona node for the pipeline graph."""

    async def persona_node(state: PipelineState) -> dict:
        logger.info(
            "Generating persona response",
            extra={"session_id": state.session_id, "persona": persona_config.name},
        )

        request = LlmRequest(
            system_prompt=build_persona_prompt(persona_config, state),
            user_message=state.input.content,
        )
        result = await invoke_and_validate(llm_client, request, PersonaResult, "Persona")

        max_questions = persona_config.prompt_behavior.max_follow_up_questions
        result = PersonaResult(
            response=result.response,
            follow_up_questions=result.follow_up_questions[:max_questions],
        )

        logger.info(
            "Persona response complete",
            extra={
                "session_id": state.session_id,
                "question_count": len(result.follow_up_questions),
            },
        )
        return {"persona_output": PersonaOutput(result=result)}

    return persona_node
