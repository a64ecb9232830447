"""Embedding similarity helpers."""

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity


def similarity_to_many(query: list[float], embeddings: list[list[float]]) -> list[float]:
    """Cosine similarity of one query vector against each row of `embeddings`."""
    if not embeddings:
        return []
    matrix = np.array(embeddings)
    scores = cosine_similarity(np.array(query).reshape(1, -1), matrix)[0]
    return [float(s) for s in scores]


def pairwise_similarity(embeddings: list[list[float]]) -> np.ndarray:
    """Square matrix of cosine similarities between all embeddings."""
    return cosine_similarity(np.array(embeddings))
