"""Ask the model to name a new category for a cluster of uncategorized entries."""

from mycel.core.llm import LlmClient, LlmRequest, invoke_and_validate
from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_evolution import ClusterAnalysis, ClusterLabel

SAMPLE_ENTRIES = 5
SAMPLE_CONTENT_CHARS = 100

SYSTEM_PROMPT = """You are analyzing a cluster of related knowledge entries that don't fit any existing category.
Suggest a new category for these entries.

Existing categories: {existing}

Rules:
- category_id is lowercase kebab-case (e.g. "local-traditions")
- label is human-readable
- description explains what knowledge belongs in the category
- suggest 2-4 fields useful for entries in this category
- answer in the language of the entries

Respond with JSON: category_id, label, description, suggested_fields"""


async def label_cluster(
    cluster: ClusterAnalysis,
    domain_config: DomainConfig,
    llm_client: LlmClient,
) -> ClusterLabel:
    samples = "\n".join(
        f"- {e.title}: {e.content[:SAMPLE_CONTENT_CHARS]}"
        for e in cluster.entries[:SAMPLE_ENTRIES]
    )
    request = LlmRequest(
        system_prompt=SYSTEM_PROMPT.format(
            existing=", ".join(c.label for c in domain_config.categories)
        ),
        user_message=(
            f"Cluster keywords: {', '.join(cluster.top_keywords)}\n\nSample entries:\n{samples}"
        ),
    )
    return await invoke_and_validate(llm_client, request, ClusterLabel, "Pattern detector")
