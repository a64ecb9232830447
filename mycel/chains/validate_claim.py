"""Check extracted claims against web search results."""

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.schemas_knowledge import ClaimStatus, ExtractedClaim, VerifiedClaim
from mycel.core.web_search import WebSearchClient
from mycel.db.search_cache import SearchCacheRepository

logger = get_logger(__name__)

MAX_SEARCH_CONTENT_CHARS = 2000

SYSTEM_PROMPT = """You are a fact-checking agent. Compare a user's claim with web search results.

- "verified": the results support the claim
- "contradicted": the results contradict the claim; put the correct information into evidence
- "unverifiable": the results do not say enough either way

Give a confidence between 0 and 1.

Respond with JSON: {"status": ..., "evidence": ..., "confidence": ...}"""


class VerificationResult(BaseModel):
    status: ClaimStatus
    evidence: str | None = None
    confidence: float = Field(..., ge=0, le=1)


@dataclass
class ClaimValidationResult:
    verified: list[VerifiedClaim] = field(default_factory=list)
    search_queries: list[str] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)


async def _search(
    claim: ExtractedClaim,
    web_search_client: WebSearchClient,
    search_cache: SearchCacheRepository,
) -> tuple[str, list[str]]:
    cached = await search_cache.get(claim.search_query)
    if cached is not None:
        logger.debug(f"Search cache hit for '{claim.search_query}'")
        return cached.content, list(cached.source_urls)

    logger.debug(f"Search cache miss for '{claim.search_query}', searching the web")
    result = await web_search_client.search(
        claim.search_query, context=f'Verifying claim: "{claim.claim}"'
    )
    await search_cache.set(claim.search_query, result.content, result.source_urls)
    return result.content, list(result.source_urls)


async def validate_claims(
    claims: list[ExtractedClaim],
    llm_client: LlmClient,
    web_search_client: WebSearchClient,
    search_cache: SearchCacheRepository,
    max_searches: int,
) -> ClaimValidationResult:
    """
    Validate up to `max_searches` claims. A claim whose search or check fails is
    recorded as unverifiable with confidence 0 instead of failing the batch.
    """
    outcome = ClaimValidationResult()

    for claim in claims[:max_searches]:
        if not claim.search_query:
            continue
        try:
            content, source_urls = await _search(claim, web_search_client, search_cache)
            outcome.search_queries.append(claim.search_query)
            outcome.source_urls.extend(source_urls)

            verification = await invoke_and_validate(
                llm_client,
                LlmRequest(
                    system_prompt=SYSTEM_PROMPT,
                    user_message=(
                        f'Claim: "{claim.claim}"\n\n'
                        f"Web search results:\n{content[:MAX_SEARCH_CONTENT_CHARS]}"
                    ),
                ),
                VerificationResult,
                "Claim validator",
            )
            outcome.verified.append(
                VerifiedClaim(
                    claim=claim.claim,
                    status=verification.status,
                    evidence=verification.evidence,
                    source_url=source_urls[0] if source_urls else None,
                    confidence=verification.confidence,
                )
            )
            logger.info(
                "Claim validated",
                extra={"status": verification.status, "confidence": verification.confidence},
            )
        except Exception as e:
            logger.warning(f"Claim validation failed, marking as unverifiable: {e}")
            outcome.verified.append(
                VerifiedClaim(claim=claim.claim, status="unverifiable", confidence=0.0)
            )

    # Unique, first-seen order
    outcome.source_urls = list(dict.fromkeys(outcome.source_urls))
    return outcome
