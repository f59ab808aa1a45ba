"""Embedding abstractions and deterministic baseline implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from vector_mcp.config import EmbeddingConfig
from vector_mcp.errors import InvalidArgument

DEFAULT_EMBEDDING = "default"


class Embedder(ABC):
    """Embedder interface used by the backends."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used by default so instances work offline. Provider embeddings are
    selected per collection through `setup_database(embedding=...)`.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


def resolve_embedder(name: str, config: EmbeddingConfig) -> tuple[Embedder, int]:
    """Return the embedder and vector dimension for an embedding name.

    "default" means the configured provider. "hashing" is always available;
    "openai" goes through langchain-openai and needs OPENAI_API_KEY.
    """

    key = (name or DEFAULT_EMBEDDING).strip().lower()
    if key == DEFAULT_EMBEDDING:
        key = config.provider.lower()

    if key == "hashing":
        return HashingEmbedder(config.hashing_dimension), config.hashing_dimension
    if key == "openai":
        return _create_openai_embedder(config), config.vector_size
    raise InvalidArgument(
        f"unsupported embedding '{name}' (expected one of: default, hashing, openai)"
    )


def _create_openai_embedder(config: EmbeddingConfig) -> Any:
    from langchain_openai import OpenAIEmbeddings

    return OpenAIEmbeddings(model=config.model, dimensions=config.vector_size)
