"""Draft a domain schema from a domain analysis and web research results."""

import json

from pydantic import Field

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import Category, DomainConfig
from mycel.core.schemas_generation import DomainAnalysis
from mycel.core.web_search import WebSearchResult

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are an expert knowledge engineer. Based on the domain analysis and any research results provided, create a domain schema for a knowledge collection system.

The schema must include:
1. name: machine-readable, lowercase with hyphens (e.g. "village-naugarten")
2. version: "1.0.0"
3. description: a human-readable description
4. categories: 3-8 categories covering the main areas of knowledge in the domain
5. ingestion: primary_language and supported_languages

For each category:
- id: short, lowercase, hyphenated (e.g. "local-history")
- label and description
- required_fields: essential structured data for the category
- optional_fields: nice-to-have structured data
- origin: "web_research" for categories derived from research
- source_urls: the URLs that informed the category

Categories should not overlap, should cover the domain well, and should not be too granular.

Respond with JSON matching the domain schema."""

HYBRID_INSTRUCTIONS = """

The user has already defined some categories. Keep every existing category exactly as it
is (same id, label, description and fields). You may add new categories based on the
research but never change or remove existing ones.

Existing categories to keep:
{existing}"""

NO_RESEARCH = "No web research was performed. Rely on the domain analysis."


class SynthesizedSchema(DomainConfig):
    categories: list[Category] = Field(..., min_length=1)


def build_synthesis_prompt(existing_categories: list[Category]) -> str:
    if not existing_categories:
        return SYSTEM_PROMPT
    existing = json.dumps([c.model_dump(exclude_none=True) for c in existing_categories], indent=2)
    return SYSTEM_PROMPT + HYBRID_INSTRUCTIONS.format(existing=existing)


def build_synthesis_message(
    analysis: DomainAnalysis,
    search_results: list[WebSearchResult],
    partial_schema: dict | None = None,
) -> str:
    if search_results:
        research = "\n\n".join(
            f'### Research: "{r.query}"\n{r.content}\nSources: {", ".join(r.source_urls)}'
            for r in search_results
        )
    else:
        research = NO_RESEARCH

    message = (
        "## Domain Analysis\n"
        f"- Type: {analysis.domain_type}\n"
        f"- Subject: {analysis.subject}\n"
        f"- Location: {analysis.location or 'not specified'}\n"
        f"- Language: {analysis.language}\n"
        f"- Intent: {analysis.intent}\n\n"
        f"## Web Research Results\n{research}"
    )
    if partial_schema:
        message += f"\n\n## Existing Partial Schema\n{json.dumps(partial_schema, indent=2)}"
    return message


async def synthesize_schema(
    analysis: DomainAnalysis,
    search_results: list[WebSearchResult],
    llm_client: LlmClient,
    partial_schema: dict | None = None,
    existing_categories: list[Category] | None = None,
) -> DomainConfig:
    logger.info(
        "Synthesizing domain schema",
        extra={"subject": analysis.subject, "search_result_count": len(search_results)},
    )

    result = await invoke_and_validate(
        llm_client,
        LlmRequest(
            system_prompt=build_synthesis_prompt(existing_categories or []),
            user_message=build_synthesis_message(analysis, search_results, partial_schema),
        ),
        SynthesizedSchema,
        "Schema synthesizer",
    )

    logger.info(
        "Schema synthesis complete",
        extra={"name": result.name, "category_count": len(result.categories)},
    )
    return DomainConfig.model_validate(result.model_dump())
