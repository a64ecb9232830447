"""Embedding clients and embedding text builders."""

import asyncio
import hashlib
from typing import Any, Protocol

import numpy as np
from openai import OpenAI

from mycel.core.config import Settings, get_settings
from mycel.core.logging import get_logger
from mycel.core.schemas_knowledge import META_CATEGORY, UNCATEGORIZED, KnowledgeEntry

logger = get_logger(__name__)

EMBEDDING_DIMENSION = 768


class EmbeddingClient(Protocol):
    model_name: str

    async def generate_embedding(self, text: str) -> list[float]: ...

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingClient:
    """Embeddings from the OpenAI API, shortened to the configured dimension."""

    def __init__(self, settings: Settings | None = None, client: OpenAI | None = None):
        self.settings = settings or get_settings()
        self._client = client or OpenAI(api_key=self.settings.OPENAI_API_KEY)
        self.model_name = self.settings.EMBEDDING_MODEL

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a list of texts.

        Raises:
            ValueError: If a returned vector does not have EMBEDDING_DIM entries
        """
        if not texts:
            return []

        expected_dim = self.settings.EMBEDDING_DIM
        response = self._client.embeddings.create(
            model=self.model_name,
            input=texts,
            dimensions=expected_dim,
        )

        embeddings = []
        for i, item in enumerate(response.data):
            if len(item.embedding) != expected_dim:
                raise ValueError(
                    f"Embedding dimension mismatch for text {i}: "
                    f"expected {expected_dim}, got {len(item.embedding)}"
                )
            embeddings.append(item.embedding)

        logger.info(
            f"Generated {len(embeddings)} embeddings using {self.model_name}",
            extra={"model": self.model_name, "count": len(embeddings)},
        )
        return embeddings

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        return await asyncio.to_thread(self.embed_texts, texts)

    async def generate_embedding(self, text: str) -> list[float]:
        embeddings = await self.generate_embeddings([text])
        return embeddings[0]


class MockEmbeddingClient:
    """Deterministic unit vectors seeded from the text hash. Same text, same vector."""

    model_name = "mock-embedding"

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension

    def _vector(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vector = np.random.default_rng(seed).standard_normal(self.dimension)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    async def generate_embedding(self, text: str) -> list[float]:
        return self._vector(text)

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]


# =============================================================================
# Embedding text
# =============================================================================


def _is_filled(value: Any) -> bool:
    return value is not None and value != ""


def build_embedding_text(entry: KnowledgeEntry) -> str:
    """Text used to embed a stored entry: category, title, content, fields, tags."""
    parts: list[str] = []
    if entry.category_id and entry.category_id != UNCATEGORIZED:
        parts.append(entry.category_id)
    parts.append(entry.title)
    parts.append(entry.content)

    structured = [f"{k}: {v}" for k, v in entry.structured_data.items() if _is_filled(v)]
    if structured:
        parts.append(". ".join(structured))
    if entry.tags:
        parts.append(", ".join(entry.tags))

    return ". ".join(parts)


def build_input_embedding_text(content: str, category_id: str | None = None) -> str:
    """Text used to embed a user utterance for context retrieval."""
    if category_id and category_id not in (UNCATEGORIZED, META_CATEGORY):
        return f"{category_id}. {content}"
    return content
