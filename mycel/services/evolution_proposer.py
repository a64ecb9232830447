"""Turn detected patterns and field statistics into evolution proposals."""

from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_evolution import (
    ChangePrioritySpec,
    ClusterMetadata,
    EvolutionProposal,
    NewCategorySpec,
)
from mycel.core.schemas_knowledge import KnowledgeEntry
from mycel.db.evolution_proposals import EvolutionProposalRepository
from mycel.db.field_stats import FieldStatsRepository
from mycel.services.pattern_detector import detect_patterns

logger = get_logger(__name__)

MAX_CLUSTER_CONFIDENCE = 0.95
LOW_ANSWER_RATE_THRESHOLD = 0.1
MIN_ASKED_FOR_PRIORITY_CHANGE = 10


async def generate_proposals(
    domain_schema_id: str,
    uncategorized_entries: list[KnowledgeEntry],
    domain_config: DomainConfig,
    proposal_repository: EvolutionProposalRepository,
    field_stats_repository: FieldStatsRepository,
    llm_client: LlmClient,
) -> list[EvolutionProposal]:
    """
    Create and store pending proposals.

    - new_category: one per labelled cluster, confidence capped at 0.95
    - change_priority: one per required field asked at least 10 times with an answer
      rate under 10%, confidence 1 - answer_rate
    """
    proposals: list[EvolutionProposal] = []

    patterns = await detect_patterns(uncategorized_entries, domain_config, llm_client)
    for pattern in patterns:
        cluster, label = pattern.cluster, pattern.label
        proposal = await proposal_repository.create(
            EvolutionProposal(
                domain_schema_id=domain_schema_id,
                type="new_category",
                description=(
                    f'New category "{label.label}" discovered from '
                    f"{len(cluster.entries)} uncategorized entries"
                ),
                evidence=[e.id for e in cluster.entries],
                confidence=min(cluster.average_similarity, MAX_CLUSTER_CONFIDENCE),
                new_category=NewCategorySpec(
                    id=label.category_id,
                    label=label.label,
                    description=label.description,
                    suggested_fields=label.suggested_fields,
                ),
                cluster_metadata=ClusterMetadata(
                    centroid_entry_id=cluster.centroid_entry_id,
                    cluster_size=len(cluster.entries),
                    average_similarity=cluster.average_similarity,
                    top_keywords=cluster.top_keywords,
                ),
            )
        )
        proposals.append(proposal)
        logger.info(
            "Created new_category proposal",
            extra={"proposal_id": proposal.id, "category_id": label.category_id},
        )

    for stat in await field_stats_repository.get_by_domain(domain_schema_id):
        if stat.times_asked < MIN_ASKED_FOR_PRIORITY_CHANGE:
            continue
        if stat.answer_rate >= LOW_ANSWER_RATE_THRESHOLD:
            continue
        category = domain_config.get_category(stat.category_id)
        if category is None or stat.field_name not in category.required_fields:
            continue

        percent = round(stat.answer_rate * 100)
        proposal = await proposal_repository.create(
            EvolutionProposal(
                domain_schema_id=domain_schema_id,
                type="change_priority",
                description=(
                    f'Field "{stat.field_name}" in "{stat.category_id}" has a {percent}% answer '
                    f"rate ({stat.times_answered}/{stat.times_asked}). Consider making it optional."
                ),
                evidence=[],
                confidence=1.0 - stat.answer_rate,
                change_priority=ChangePrioritySpec(
                    target_category_id=stat.category_id,
                    field_name=stat.field_name,
                    answer_rate=stat.answer_rate,
                    reasoning=(
                        f"Only {percent}% of users could answer this after "
                        f"{stat.times_asked} asks."
                    ),
                ),
            )
        )
        proposals.append(proposal)
        logger.info(
            "Created change_priority proposal",
            extra={"proposal_id": proposal.id, "field": stat.field_name},
        )

    logger.info(
        f"Proposal generation complete: {len(proposals)} proposals",
        extra={"domain_schema_id": domain_schema_id},
    )
    return proposals
