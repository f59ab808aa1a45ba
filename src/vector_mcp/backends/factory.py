"""Maps a backend kind to the class that implements it."""

from __future__ import annotations

from collections.abc import Callable

from vector_mcp.backends.base import VectorDatabase
from vector_mcp.config import Settings
from vector_mcp.errors import UnsupportedBackend


def _create_memory(collection_name: str, settings: Settings) -> VectorDatabase:
    from vector_mcp.backends.memory import InMemoryVectorDatabase

    return InMemoryVectorDatabase(collection_name, embedding_config=settings.embedding)


def _create_qdrant(collection_name: str, settings: Settings) -> VectorDatabase:
    from vector_mcp.backends.qdrant import QdrantVectorDatabase

    return QdrantVectorDatabase(
        collection_name,
        qdrant_config=settings.qdrant,
        embedding_config=settings.embedding,
    )


BACKENDS: dict[str, Callable[[str, Settings], VectorDatabase]] = {
    "mock": _create_memory,
    "qdrant": _create_qdrant,
}


def supported_backends() -> list[str]:
    return list(BACKENDS)


def create_vector_database(db_type: str, collection_name: str, settings: Settings) -> VectorDatabase:
    factory = BACKENDS.get(db_type)
    if factory is None:
        raise UnsupportedBackend(
            f"unsupported vector database type: {db_type} "
            f"(supported: {', '.join(supported_backends())})"
        )
    return factory(collection_name, settings)
