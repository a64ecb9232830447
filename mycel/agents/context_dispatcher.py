"""Context dispatcher stage: retrieves related knowledge by vector search."""

from mycel.core.embeddings import EmbeddingClient, build_input_embedding_text
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_agents import ContextDispatcherOutput, ContextDispatcherResult
from mycel.core.schemas_knowledge import UNCATEGORIZED, KnowledgeSearchResult
from mycel.db.knowledge import KnowledgeRepository

logger = get_logger(__name__)

CONTEXT_SEARCH_LIMIT = 15

NOT_CONFIGURED_SUMMARY = "No existing context available (vector search not configured)."
NO_RESULTS_SUMMARY = "No related knowledge found."
SAME_SESSION_HEADER = "[SAME_SESSION] Knowledge shared by this user earlier in this conversation:"
OTHER_SESSION_HEADER = "[OTHER_SESSION] Knowledge from other sources (NOT from this user):"


def _enrichment_marker(result: KnowledgeSearchResult) -> str:
    enrichment = result.entry.enrichment
    if enrichment is None or not enrichment.claims:
        return ""

    contradicted = [c for c in enrichment.claims if c.status == "contradicted"]
    if contradicted:
        disputes = "; ".join(
            f"{c.claim} [DISPUTED: {c.evidence or 'web sources disagree'}]" for c in contradicted
        )
        return f" | {disputes}"

    verified = sum(1 for c in enrichment.claims if c.status == "verified")
    if verified:
        return f" [{verified} claims VERIFIED]"
    return ""


def build_context_summary(results: list[KnowledgeSearchResult], session_id: str) -> str:
    """
    Render search results for downstream prompts, split into knowledge from the
    current session and knowledge from elsewhere.
    """
    if not results:
        return NO_RESULTS_SUMMARY

    same_session: list[str] = []
    other_session: list[str] = []
    for r in results:
        entry = r.entry
        category = f"[{entry.category_id}] " if entry.category_id != UNCATEGORIZED else ""
        line = (
            f"- {category}{entry.title} (relevance: {r.score:.2f}): "
            f"{entry.content}{_enrichment_marker(r)}"
        )
        if entry.session_id == session_id:
            same_session.append(line)
        else:
            other_session.append(line)

    sections = []
    if same_session:
        sections.append(SAME_SESSION_HEADER + "\n" + "\n".join(same_session))
    if other_session:
        sections.append(OTHER_SESSION_HEADER + "\n" + "\n".join(other_session))
    return "\n\n".join(sections)


def build_context_dispatcher_node(
    embedding_client: EmbeddingClient | None = None,
    knowledge_repository: KnowledgeRepository | None = None,
    domain_schema_id: str | None = None,
):
    """Create the context dispatcher node. Without both collaborators it returns no context."""

    async def context_dispatcher_node(state: PipelineState) -> dict:
        logger.info(
            "Dispatching context retrieval",
            extra={"session_id": state.session_id, "category_id": state.category_id},
        )

        if embedding_client is None or knowledge_repository is None:
            return {
                "context_dispatcher_output": ContextDispatcherOutput(
                    result=ContextDispatcherResult(
                        relevant_context=[], context_summary=NOT_CONFIGURED_SUMMARY
                    )
                )
            }

        results: list[KnowledgeSearchResult] = []
        try:
            text = build_input_embedding_text(state.input.content, state.category_id)
            embedding = await embedding_client.generate_embedding(text)
            results = await knowledge_repository.search_similar(
                domain_schema_id or "",
                embedding,
                limit=CONTEXT_SEARCH_LIMIT,
            )
            logger.info(
                "Vector search complete",
                extra={"session_id": state.session_id, "results_found": len(results)},
            )
        except Exception as e:
            logger.warning(
                f"Context retrieval failed, continuing without context: {e}",
                extra={"session_id": state.session_id},
            )
            results = []

        return {
            "context_dispatcher_output": ContextDispatcherOutput(
                result=ContextDispatcherResult(
                    relevant_context=results,
                    context_summary=build_context_summary(results, state.session_id),
                )
            )
        }

    return context_dispatcher_node
