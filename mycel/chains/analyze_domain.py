"""Turn a free-text domain description into a structured analysis with search queries."""

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.schemas_generation import DomainAnalysis

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a domain analysis expert. Given a description of a knowledge domain, analyze it.

1. domain_type: the kind of domain (e.g. "local community", "academic field", "hobbyist topic")
2. subject: the main subject
3. location: the location, if one is mentioned
4. language: the language of the description as an ISO 639-1 code (e.g. "de", "en")
5. intent: what the user wants (e.g. "document community knowledge", "collect expertise")
6. search_queries: 5-10 web search queries that reveal which categories and structured
   fields this domain needs

Search queries should:
- look for the kinds of information that exist in the domain
- look for taxonomies or groupings commonly used in the field
- be specific to the subject and location
- be written in the language of the description

Respond with JSON: domain_type, subject, location, language, intent, search_queries"""


async def analyze_domain(
    description: str,
    llm_client: LlmClient,
    language_hint: str | None = None,
) -> DomainAnalysis:
    logger.info("Analyzing domain description", extra={"description_length": len(description)})

    user_message = f'Domain description: "{description}"'
    if language_hint:
        user_message += f"\n\nLanguage hint: {language_hint}"

    analysis = await invoke_and_validate(
        llm_client,
        LlmRequest(system_prompt=SYSTEM_PROMPT, user_message=user_message),
        DomainAnalysis,
        "Domain analyzer",
    )

    logger.info(
        "Domain analysis complete",
        extra={
            "domain_type": analysis.domain_type,
            "subject": analysis.subject,
            "query_count": len(analysis.search_queries),
        },
    )
    return analysis
