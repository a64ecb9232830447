"""Extract web-verifiable factual claims from user input."""

from pydantic import BaseModel, Field

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.schemas_knowledge import ExtractedClaim

logger = get_logger(__name__)

MAX_CLAIMS = 5

SYSTEM_PROMPT = """You are a claim extraction agent. Extract factual claims from the user's input that can be checked with a web search.

Rules:
- Skip opinions, feelings and personal experiences
- Skip vague or subjective statements
- Only extract concrete facts: dates, names, locations, historical events, statistics
- Give each verifiable claim a concise search query
- Maximum 5 claims; return an empty array when there are none

Respond with JSON: {"claims": [{"claim": ..., "verifiable": true|false, "search_query": ...}]}"""


class ClaimExtraction(BaseModel):
    claims: list[ExtractedClaim] = Field(default_factory=list, max_length=MAX_CLAIMS)


async def extract_claims(user_input: str, llm_client: LlmClient) -> list[ExtractedClaim]:
    """Return only claims marked verifiable that come with a search query."""
    logger.info("Extracting verifiable claims", extra={"input_length": len(user_input)})

    result = await invoke_and_validate(
        llm_client,
        LlmRequest(system_prompt=SYSTEM_PROMPT, user_message=user_input),
        ClaimExtraction,
        "Claim extractor",
    )

    verifiable = [c for c in result.claims if c.verifiable and c.search_query]
    logger.info(
        "Claim extraction complete",
        extra={"total_claims": len(result.claims), "verifiable_claims": len(verifiable)},
    )
    return verifiable
