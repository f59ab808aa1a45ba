"""Qdrant backend registered under the `qdrant` kind."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointIdsList, PointStruct, VectorParams

from vector_mcp.backends.base import VectorDatabase
from vector_mcp.backends.embedder import DEFAULT_EMBEDDING, Embedder, resolve_embedder
from vector_mcp.config import EmbeddingConfig, QdrantConfig
from vector_mcp.context import OperationContext
from vector_mcp.errors import InvalidArgument, NotFound
from vector_mcp.obs.logging import get_logger
from vector_mcp.obs.tracing import Timer
from vector_mcp.types import Document, SearchResult, WriteStats

logger = get_logger(__name__)


@dataclass(slots=True)
class _CollectionState:
    embedding: str
    embedder: Embedder
    dimension: int


class QdrantVectorDatabase(VectorDatabase):
    """Stores documents as Qdrant points with `url`/`text`/`metadata` payload.

    Point ids are UUID strings. Listing scrolls in point-id order, which is
    stable while the collection is not mutated.
    """

    db_type = "qdrant"

    def __init__(
        self,
        collection_name: str,
        qdrant_config: QdrantConfig | None = None,
        embedding_config: EmbeddingConfig | None = None,
        client: QdrantClient | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._config = qdrant_config or QdrantConfig()
        self._embedding_config = embedding_config or EmbeddingConfig()
        self._client = client or _connect(self._config)
        self._collections: dict[str, _CollectionState] = {}
        self._lock = threading.RLock()

    def setup(self, ctx: OperationContext, embedding: str) -> bool:
        ctx.check()
        with self._lock:
            if self._client.collection_exists(self.collection_name):
                return False
            self._create_collection(self.collection_name, embedding)
        logger.info(
            "Set up qdrant collection",
            collection=self.collection_name,
            embedding=embedding,
        )
        return True

    def write_documents(self, ctx: OperationContext, documents: list[Document]) -> WriteStats:
        with Timer() as timer:
            ctx.check()
            with self._lock:
                if not self._client.collection_exists(self.collection_name):
                    self._create_collection(self.collection_name, DEFAULT_EMBEDDING)
                state = self._state_for(self.collection_name)

            for document in documents:
                if document.vector is not None and len(document.vector) != state.dimension:
                    raise InvalidArgument(
                        f"vector has dimension {len(document.vector)}, "
                        f"collection '{self.collection_name}' expects {state.dimension}"
                    )
            ids = [document.id or str(uuid.uuid4()) for document in documents]
            point_ids = [_point_id(doc_id) for doc_id in ids]

            pending = [doc.text for doc in documents if doc.vector is None]
            generated = iter(state.embedder.embed_documents(pending) if pending else [])
            points: list[PointStruct] = []
            for document, point_id in zip(documents, point_ids, strict=True):
                vector = document.vector if document.vector is not None else next(generated)
                points.append(
                    PointStruct(
                        id=point_id,
                        vector=list(vector),
                        payload={
                            "url": document.url,
                            "text": document.text,
                            "metadata": dict(document.metadata),
                        },
                    )
                )
            ctx.check()

            with self._lock:
                self._client.upsert(
                    collection_name=self.collection_name, points=points, wait=True
                )
            for document, doc_id in zip(documents, ids, strict=True):
                document.id = doc_id

        logger.info(
            "Wrote documents",
            collection=self.collection_name,
            count=len(points),
        )
        return WriteStats(documents_written=len(points), processing_time_ms=timer.elapsed_ms)

    def search(
        self,
        ctx: OperationContext,
        query: str,
        limit: int,
        collection_name: str | None = None,
    ) -> list[SearchResult]:
        ctx.check()
        target = collection_name or self.collection_name
        with self._lock:
            if not self._client.collection_exists(target):
                if target == self.collection_name:
                    return []
                raise NotFound(f"collection '{target}' not found")
            embedder = self._state_for(target).embedder

        query_vector = embedder.embed_query(query)
        ctx.check()
        with self._lock:
            response = self._client.query_points(
                collection_name=target,
                query=query_vector,
                limit=limit,
                with_payload=True,
            )
        hits = [
            SearchResult(document=_to_document(point), score=float(point.score))
            for point in response.points
        ]
        return sorted(hits, key=lambda item: item.score, reverse=True)

    def list_documents(self, ctx: OperationContext, limit: int, offset: int) -> list[Document]:
        ctx.check()
        with self._lock:
            if not self._client.collection_exists(self.collection_name):
                return []
            points, _ = self._client.scroll(
                collection_name=self.collection_name,
                limit=offset + limit,
                with_payload=True,
                with_vectors=False,
            )
        return [_to_document(point) for point in points[offset : offset + limit]]

    def count_documents(self, ctx: OperationContext) -> int:
        ctx.check()
        with self._lock:
            if not self._client.collection_exists(self.collection_name):
                return 0
            return self._client.count(collection_name=self.collection_name, exact=True).count

    def delete_documents(self, ctx: OperationContext, document_ids: list[str]) -> None:
        ctx.check()
        document_ids = list(dict.fromkeys(document_ids))
        point_ids = [_point_id(doc_id, lookup=True) for doc_id in document_ids]
        with self._lock:
            if not self._client.collection_exists(self.collection_name):
                raise NotFound(f"document '{document_ids[0]}' not found")
            found = {
                str(point.id)
                for point in self._client.retrieve(
                    collection_name=self.collection_name,
                    ids=point_ids,
                    with_payload=False,
                    with_vectors=False,
                )
            }
            for doc_id, point_id in zip(document_ids, point_ids, strict=True):
                if point_id not in found:
                    raise NotFound(f"document '{doc_id}' not found")
            self._client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=point_ids),
                wait=True,
            )
        logger.info(
            "Deleted documents",
            collection=self.collection_name,
            count=len(point_ids),
        )

    def list_collections(self, ctx: OperationContext) -> list[str]:
        ctx.check()
        with self._lock:
            response = self._client.get_collections()
        return [collection.name for collection in response.collections]

    def get_collection_info(self, ctx: OperationContext, collection_name: str) -> dict[str, Any]:
        ctx.check()
        with self._lock:
            if not self._client.collection_exists(collection_name):
                raise NotFound(f"collection '{collection_name}' not found")
            info = self._client.get_collection(collection_name)
            count = self._client.count(collection_name=collection_name, exact=True).count
            state = self._collections.get(collection_name)
            embedding = DEFAULT_EMBEDDING if state is None else state.embedding

        vectors = info.config.params.vectors
        status = getattr(info.status, "value", info.status)
        return {
            "name": collection_name,
            "backend": self.db_type,
            "embedding": embedding,
            "dimension": getattr(vectors, "size", None),
            "document_count": count,
            "status": str(status),
        }

    def delete_collection(self, ctx: OperationContext, collection_name: str) -> None:
        ctx.check()
        with self._lock:
            if not self._client.collection_exists(collection_name):
                raise NotFound(f"collection '{collection_name}' not found")
            self._client.delete_collection(collection_name)
            self._collections.pop(collection_name, None)
        logger.info("Deleted collection", collection=collection_name)

    def cleanup(self, ctx: OperationContext) -> None:
        ctx.check()
        with self._lock:
            self._client.close()
            self._collections.clear()

    def _create_collection(self, name: str, embedding: str) -> _CollectionState:
        embedder, dimension = resolve_embedder(embedding, self._embedding_config)
        self._client.create_collection(
            collection_name=name,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )
        state = _CollectionState(embedding=embedding, embedder=embedder, dimension=dimension)
        self._collections[name] = state
        return state

    def _state_for(self, name: str) -> _CollectionState:
        # Collections created outside this instance use the default embedding
        # and the vector size Qdrant reports for them.
        state = self._collections.get(name)
        if state is None:
            embedder, dimension = resolve_embedder(DEFAULT_EMBEDDING, self._embedding_config)
            vectors = self._client.get_collection(name).config.params.vectors
            size = getattr(vectors, "size", None)
            state = _CollectionState(
                embedding=DEFAULT_EMBEDDING,
                embedder=embedder,
                dimension=size if isinstance(size, int) else dimension,
            )
            self._collections[name] = state
        return state


def _connect(config: QdrantConfig) -> QdrantClient:
    if config.url:
        return QdrantClient(url=config.url, api_key=config.api_key, timeout=int(config.timeout))
    return QdrantClient(location=config.location)


def _point_id(document_id: str, *, lookup: bool = False) -> str:
    try:
        return str(uuid.UUID(document_id))
    except ValueError as exc:
        if lookup:
            raise NotFound(f"document '{document_id}' not found") from exc
        raise InvalidArgument(f"document id '{document_id}' is not a UUID") from exc


def _to_document(point: Any) -> Document:
    payload = point.payload or {}
    return Document(
        id=str(point.id),
        url=str(payload.get("url", "")),
        text=str(payload.get("text", "")),
        metadata=dict(payload.get("metadata") or {}),
    )
