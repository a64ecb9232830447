"""
Pattern detection over uncategorized knowledge entries.

Entries are grouped by greedy clustering on embedding similarity:
1. Take the first unclustered entry as centroid
2. Collect every unclustered entry whose similarity to it meets the threshold
3. Keep the group if it reaches the minimum size, otherwise drop the centroid
4. Repeat until too few entries remain

Clusters whose keywords already describe an existing category are skipped; the rest
are labelled by the model as candidate categories.
"""

import re
from collections import Counter
from dataclasses import dataclass

import numpy as np

from mycel.chains.label_cluster import label_cluster
from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_evolution import ClusterAnalysis, ClusterLabel
from mycel.core.schemas_knowledge import KnowledgeEntry
from mycel.core.similarity import pairwise_similarity

logger = get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8
DEFAULT_MIN_CLUSTER_SIZE = 3
TOP_KEYWORDS = 5
MIN_TERM_LENGTH = 3
MIN_OVERLAPPING_TERMS = 2


@dataclass(frozen=True)
class DetectedPattern:
    cluster: ClusterAnalysis
    label: ClusterLabel


def _top_keywords(entries: list[KnowledgeEntry]) -> list[str]:
    counts: Counter[str] = Counter()
    for entry in entries:
        counts.update(entry.tags)
        counts.update(entry.topic_keywords or [])
    return [kw for kw, _ in counts.most_common(TOP_KEYWORDS)]


def greedy_cluster(
    entries: list[KnowledgeEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    min_size: int = DEFAULT_MIN_CLUSTER_SIZE,
) -> list[ClusterAnalysis]:
    """Cluster entries that carry embeddings; entries without one are ignored."""
    embedded = [e for e in entries if e.embedding]
    if len(embedded) < min_size:
        return []

    similarities = pairwise_similarity([e.embedding for e in embedded])
    remaining = list(range(len(embedded)))
    clusters: list[ClusterAnalysis] = []

    while len(remaining) >= min_size:
        centroid = remaining[0]
        members = [centroid] + [
            i for i in remaining[1:] if similarities[centroid][i] >= threshold
        ]

        if len(members) < min_size:
            remaining.remove(centroid)
            continue

        pair_scores = [
            similarities[a][b] for pos, a in enumerate(members) for b in members[pos + 1 :]
        ]
        average = float(np.mean(pair_scores)) if pair_scores else 0.0

        cluster_entries = [embedded[i] for i in members]
        clusters.append(
            ClusterAnalysis(
                entries=cluster_entries,
                centroid_entry_id=embedded[centroid].id,
                average_similarity=average,
                top_keywords=_top_keywords(cluster_entries),
            )
        )
        remaining = [i for i in remaining if i not in members]

    return clusters


def overlaps_existing_category(top_keywords: list[str], domain_config: DomainConfig) -> bool:
    """True when at least two keywords match terms of one existing category."""
    for category in domain_config.categories:
        terms = [
            category.id.lower(),
            category.label.lower(),
            *re.split(r"\s+", category.description.lower()),
        ]
        terms = [t for t in terms if len(t) >= MIN_TERM_LENGTH]

        overlap = 0
        for keyword in top_keywords:
            if len(keyword) < MIN_TERM_LENGTH:
                continue
            kw = keyword.lower()
            if any(t == kw or kw in t or t in kw for t in terms):
                overlap += 1
        if overlap >= MIN_OVERLAPPING_TERMS:
            return True
    return False


async def detect_patterns(
    entries: list[KnowledgeEntry],
    domain_config: DomainConfig,
    llm_client: LlmClient,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    min_cluster_size: int = DEFAULT_MIN_CLUSTER_SIZE,
) -> list[DetectedPattern]:
    logger.info(
        "Detecting patterns in uncategorized entries",
        extra={"entry_count": len(entries), "threshold": similarity_threshold},
    )

    clusters = greedy_cluster(entries, similarity_threshold, min_cluster_size)
    logger.info(f"Found {len(clusters)} clusters")

    patterns = []
    for cluster in clusters:
        if overlaps_existing_category(cluster.top_keywords, domain_config):
            logger.info(
                "Skipping cluster that overlaps with existing category",
                extra={"top_keywords": cluster.top_keywords},
            )
            continue
        label = await label_cluster(cluster, domain_config, llm_client)
        patterns.append(DetectedPattern(cluster=cluster, label=label))

    logger.info(f"Pattern detection complete: {len(patterns)} candidate categories")
    return patterns
