"""Opening greeting for a new session."""

from mycel.agents.persona import build_persona_header
from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.schemas_agents import PersonaResult
from mycel.core.schemas_domain import DomainConfig, PersonaConfig

logger = get_logger(__name__)

GREETING_USER_MESSAGE = "Generate an opening greeting for a new conversation."


def build_greeting_prompt(persona: PersonaConfig, domain: DomainConfig) -> str:
    categories = "\n".join(f"- {c.label}: {c.description}" for c in domain.categories)
    storytelling = ""
    if persona.prompt_behavior.encourage_storytelling:
        storytelling = "- Invite the user to share stories or memories\n"

    return f"""{build_persona_header(persona)}

You are starting a NEW conversation. There is no user input yet.
Write a warm, inviting opening greeting that introduces you and asks one open-ended question.

Domain context ({domain.name}): {domain.description}
Knowledge categories:
{categories}

Rules:
- 1-3 sentences
- Ask ONE open-ended question inviting knowledge about any of the categories above
- Do not list the categories
{storytelling}
Respond in {persona.language}.

Respond with JSON: response (the greeting) and follow_up_questions (an empty array)."""


async def generate_greeting(
    persona: PersonaConfig,
    domain: DomainConfig,
    llm_client: LlmClient,
) -> str:
    """
    Generate the persona's opening line for a session with no turns yet.

    Raises:
        AgentError: If the model does not return a valid response
        LlmError: If the model backend fails
    """
    logger.info(
        "Generating session greeting",
        extra={"persona": persona.name, "domain": domain.name},
    )

    result = await invoke_and_validate(
        llm_client,
        LlmRequest(
            system_prompt=build_greeting_prompt(persona, domain),
            user_message=GREETING_USER_MESSAGE,
        ),
        PersonaResult,
        "Greeting",
    )
    return result.response
