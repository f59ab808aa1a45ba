"""In-memory backend registered under the `mock` kind."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import sqrt
from typing import Any

from vector_mcp.backends.base import VectorDatabase
from vector_mcp.backends.embedder import DEFAULT_EMBEDDING, Embedder, resolve_embedder
from vector_mcp.config import EmbeddingConfig
from vector_mcp.context import OperationContext
from vector_mcp.errors import InvalidArgument, NotFound
from vector_mcp.obs.logging import get_logger
from vector_mcp.obs.tracing import Timer
from vector_mcp.types import Document, SearchResult, WriteStats

logger = get_logger(__name__)


@dataclass(slots=True)
class _StoredDocument:
    document: Document
    embedding: list[float]


@dataclass(slots=True)
class _Collection:
    name: str
    embedding: str
    embedder: Embedder
    dimension: int
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    documents: dict[str, _StoredDocument] = field(default_factory=dict)


class InMemoryVectorDatabase(VectorDatabase):
    """Deterministic vector store used for tests and local prototyping.

    Documents live in insertion order, which is the listing order. Writing
    to a collection that was never set up provisions it with the default
    embedding.
    """

    db_type = "mock"

    def __init__(self, collection_name: str, embedding_config: EmbeddingConfig | None = None) -> None:
        super().__init__(collection_name)
        self._embedding_config = embedding_config or EmbeddingConfig()
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.RLock()
        self._closed = False

    def setup(self, ctx: OperationContext, embedding: str) -> bool:
        ctx.check()
        with self._lock:
            self._ensure_open()
            if self.collection_name in self._collections:
                return False
            self._collections[self.collection_name] = self._new_collection(
                self.collection_name, embedding
            )
        logger.info(
            "Set up in-memory collection",
            collection=self.collection_name,
            embedding=embedding,
        )
        return True

    def write_documents(self, ctx: OperationContext, documents: list[Document]) -> WriteStats:
        with Timer() as timer:
            ctx.check()
            with self._lock:
                self._ensure_open()
                collection = self._default_collection()
            embeddings = self._embed_missing(collection, documents)
            ctx.check()

            with self._lock:
                self._ensure_open()
                for document, embedding in zip(documents, embeddings, strict=True):
                    if not document.id:
                        document.id = str(uuid.uuid4())
                    collection.documents[document.id] = _StoredDocument(
                        document=document, embedding=embedding
                    )

        logger.info(
            "Wrote documents",
            collection=collection.name,
            count=len(documents),
        )
        return WriteStats(documents_written=len(documents), processing_time_ms=timer.elapsed_ms)

    def search(
        self,
        ctx: OperationContext,
        query: str,
        limit: int,
        collection_name: str | None = None,
    ) -> list[SearchResult]:
        ctx.check()
        with self._lock:
            self._ensure_open()
            collection = self._lookup(collection_name)
            if collection is None:
                return []
            stored = list(collection.documents.values())

        query_embedding = collection.embedder.embed_query(query)
        ranked = sorted(
            (
                SearchResult(
                    document=record.document,
                    score=_cosine_similarity(query_embedding, record.embedding),
                )
                for record in stored
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        return ranked[:limit]

    def list_documents(self, ctx: OperationContext, limit: int, offset: int) -> list[Document]:
        ctx.check()
        with self._lock:
            self._ensure_open()
            collection = self._collections.get(self.collection_name)
            if collection is None:
                return []
            documents = list(collection.documents.values())
        return [record.document for record in documents[offset : offset + limit]]

    def count_documents(self, ctx: OperationContext) -> int:
        ctx.check()
        with self._lock:
            self._ensure_open()
            collection = self._collections.get(self.collection_name)
            return 0 if collection is None else len(collection.documents)

    def delete_documents(self, ctx: OperationContext, document_ids: list[str]) -> None:
        ctx.check()
        with self._lock:
            self._ensure_open()
            collection = self._collections.get(self.collection_name)
            documents = {} if collection is None else collection.documents
            unique_ids = list(dict.fromkeys(document_ids))
            missing = [doc_id for doc_id in unique_ids if doc_id not in documents]
            if missing:
                raise NotFound(f"document '{missing[0]}' not found")
            for doc_id in unique_ids:
                del documents[doc_id]
        logger.info(
            "Deleted documents",
            collection=self.collection_name,
            count=len(unique_ids),
        )

    def list_collections(self, ctx: OperationContext) -> list[str]:
        ctx.check()
        with self._lock:
            self._ensure_open()
            return list(self._collections)

    def get_collection_info(self, ctx: OperationContext, collection_name: str) -> dict[str, Any]:
        ctx.check()
        with self._lock:
            self._ensure_open()
            collection = self._collections.get(collection_name)
            if collection is None:
                raise NotFound(f"collection '{collection_name}' not found")
            return {
                "name": collection.name,
                "backend": self.db_type,
                "embedding": collection.embedding,
                "dimension": collection.dimension,
                "document_count": len(collection.documents),
                "created_at": collection.created_at,
            }

    def delete_collection(self, ctx: OperationContext, collection_name: str) -> None:
        ctx.check()
        with self._lock:
            self._ensure_open()
            if self._collections.pop(collection_name, None) is None:
                raise NotFound(f"collection '{collection_name}' not found")
        logger.info("Deleted collection", collection=collection_name)

    def cleanup(self, ctx: OperationContext) -> None:
        ctx.check()
        with self._lock:
            self._collections.clear()
            self._closed = True

    def _new_collection(self, name: str, embedding: str) -> _Collection:
        embedder, dimension = resolve_embedder(embedding, self._embedding_config)
        return _Collection(name=name, embedding=embedding, embedder=embedder, dimension=dimension)

    def _default_collection(self) -> _Collection:
        collection = self._collections.get(self.collection_name)
        if collection is None:
            collection = self._new_collection(self.collection_name, DEFAULT_EMBEDDING)
            self._collections[self.collection_name] = collection
        return collection

    def _lookup(self, collection_name: str | None) -> _Collection | None:
        if not collection_name or collection_name == self.collection_name:
            return self._collections.get(self.collection_name)
        collection = self._collections.get(collection_name)
        if collection is None:
            raise NotFound(f"collection '{collection_name}' not found")
        return collection

    def _embed_missing(self, collection: _Collection, documents: list[Document]) -> list[list[float]]:
        pending = [doc.text for doc in documents if doc.vector is None]
        generated = iter(collection.embedder.embed_documents(pending) if pending else [])
        embeddings: list[list[float]] = []
        for document in documents:
            if document.vector is None:
                embeddings.append(list(next(generated)))
                continue
            if len(document.vector) != collection.dimension:
                raise InvalidArgument(
                    f"vector has dimension {len(document.vector)}, "
                    f"collection '{collection.name}' expects {collection.dimension}"
                )
            embeddings.append(list(document.vector))
        return embeddings

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("vector database has been cleaned up")


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
