"""Capability interface every vector database backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from vector_mcp.context import OperationContext
from vector_mcp.obs.tracing import Timer
from vector_mcp.types import Document, SearchResult, WriteStats

SNIPPET_LENGTH = 100


class VectorDatabase(ABC):
    """Base class for backends registered as named instances.

    Methods receive the caller's `OperationContext` and must stop with the
    context's error once it is cancelled or expired. Failures are raised as
    exceptions; handlers translate them for the wire.
    """

    db_type: str = ""

    def __init__(self, collection_name: str) -> None:
        self._collection_name = collection_name

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @abstractmethod
    def setup(self, ctx: OperationContext, embedding: str) -> bool:
        """Create the target collection; returns False if it already existed."""

    @abstractmethod
    def write_documents(self, ctx: OperationContext, documents: list[Document]) -> WriteStats:
        """Insert documents, assigning ids to those without one."""

    @abstractmethod
    def search(
        self,
        ctx: OperationContext,
        query: str,
        limit: int,
        collection_name: str | None = None,
    ) -> list[SearchResult]:
        """Return at most `limit` hits in non-increasing score order."""

    @abstractmethod
    def list_documents(self, ctx: OperationContext, limit: int, offset: int) -> list[Document]:
        """Page through the target collection in a stable order."""

    @abstractmethod
    def count_documents(self, ctx: OperationContext) -> int:
        """Number of documents in the target collection."""

    @abstractmethod
    def delete_documents(self, ctx: OperationContext, document_ids: list[str]) -> None:
        """Delete documents by id; unknown ids raise `NotFound`."""

    @abstractmethod
    def list_collections(self, ctx: OperationContext) -> list[str]:
        """Names of all collections known to this instance."""

    @abstractmethod
    def get_collection_info(self, ctx: OperationContext, collection_name: str) -> dict[str, Any]:
        """Describe one collection; unknown names raise `NotFound`."""

    @abstractmethod
    def delete_collection(self, ctx: OperationContext, collection_name: str) -> None:
        """Drop a collection and its documents."""

    @abstractmethod
    def cleanup(self, ctx: OperationContext) -> None:
        """Release connections and in-memory state."""

    def write_document(self, ctx: OperationContext, document: Document) -> WriteStats:
        with Timer() as timer:
            stats = self.write_documents(ctx, [document])
        stats.processing_time_ms = timer.elapsed_ms
        return stats

    def delete_document(self, ctx: OperationContext, document_id: str) -> None:
        self.delete_documents(ctx, [document_id])

    def query(
        self,
        ctx: OperationContext,
        query: str,
        limit: int,
        collection_name: str | None = None,
    ) -> dict[str, Any]:
        """Search, then summarize the hits for a natural-language caller."""

        target = collection_name or self.collection_name
        results = self.search(ctx, query, limit, collection_name)
        lines = [f"Found {len(results)} relevant documents for query '{query}':"]
        for rank, hit in enumerate(results, start=1):
            lines.append(
                f"{rank}. {_truncate(hit.document.text, SNIPPET_LENGTH)} (Score: {hit.score:.2f})"
            )
        return {
            "query": query,
            "collection": target,
            "results": [
                {
                    "id": hit.document.id,
                    "url": hit.document.url,
                    "text": hit.document.text,
                    "score": hit.score,
                    "metadata": dict(hit.document.metadata),
                }
                for hit in results
            ],
            "summary": "\n".join(lines),
        }


def _truncate(text: str, max_length: int) -> str:
    text = text.replace("\n", " ")
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
