"""Built-in vector database tools exposed over MCP."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

from vector_mcp.backends.base import VectorDatabase
from vector_mcp.backends.factory import create_vector_database, supported_backends
from vector_mcp.config import DEFAULT_COLLECTION, Settings
from vector_mcp.context import OperationContext
from vector_mcp.errors import BackendFailure, OperationTimeout, VectorMCPError
from vector_mcp.mcp.instances import InstanceRegistry
from vector_mcp.mcp.registry import ToolRegistry, ToolSpec
from vector_mcp.obs.logging import get_logger
from vector_mcp.types import Document

logger = get_logger(__name__)

NO_DATABASES_MESSAGE = "No vector databases are currently active"


class _ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DatabaseInput(_ToolInput):
    db_name: StrictStr = Field(min_length=1, description="Name of the vector database instance")


class CreateDatabaseInput(DatabaseInput):
    db_type: StrictStr = Field(min_length=1, description="Type of vector database to create")
    collection_name: StrictStr = Field(
        default=DEFAULT_COLLECTION, min_length=1, description="Name of the collection to use"
    )


class ListDatabasesInput(_ToolInput):
    pass


class SetupDatabaseInput(DatabaseInput):
    embedding: StrictStr = Field(
        default="default", description="Embedding model to use for the collection"
    )


class DocumentInput(_ToolInput):
    url: StrictStr = Field(description="URL of the document")
    text: StrictStr = Field(description="Text content of the document")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata for the document"
    )
    vector: list[StrictFloat] | None = Field(
        default=None, description="Pre-computed vector embedding (optional)"
    )

    def to_document(self) -> Document:
        return Document(
            url=self.url,
            text=self.text,
            metadata=dict(self.metadata),
            vector=None if self.vector is None else list(self.vector),
        )


class WriteDocumentInput(DatabaseInput, DocumentInput):
    pass


class WriteDocumentsInput(DatabaseInput):
    documents: list[DocumentInput] = Field(
        min_length=1, description="Documents to write; all are validated before any is stored"
    )


class QueryInput(DatabaseInput):
    query: StrictStr = Field(min_length=1, description="The query string to search for")
    limit: StrictInt = Field(default=5, ge=1, description="Maximum number of results to consider")
    collection_name: StrictStr | None = Field(
        default=None, description="Optional collection name to search in"
    )


class ListDocumentsInput(DatabaseInput):
    limit: StrictInt = Field(default=10, ge=1, description="Maximum number of documents to return")
    offset: StrictInt = Field(default=0, ge=0, description="Number of documents to skip")


class DeleteDocumentInput(DatabaseInput):
    document_id: StrictStr = Field(min_length=1, description="Document ID to delete")


class DeleteDocumentsInput(DatabaseInput):
    document_ids: list[StrictStr] = Field(min_length=1, description="Document IDs to delete")


class CollectionInput(DatabaseInput):
    collection_name: StrictStr | None = Field(
        default=None, description="Collection name (defaults to the instance's collection)"
    )


@contextmanager
def _backend_call(operation: str, db_name: str) -> Iterator[None]:
    try:
        yield
    except VectorMCPError:
        raise
    except Exception as exc:
        raise BackendFailure(
            f"failed to {operation} for vector database '{db_name}': {exc}"
        ) from exc


def register_builtin_tools(
    registry: ToolRegistry,
    instances: InstanceRegistry,
    settings: Settings,
) -> None:
    """Register the vector database tool set.

    Tools:
    - `create_vector_database` / `list_databases` / `setup_database` / `cleanup`:
      instance lifecycle.
    - `write_document` / `write_documents`: inserts with optional vectors.
    - `query` / `search`: similarity search, summarized or raw.
    - `list_documents` / `count_documents` / `delete_document` / `delete_documents`.
    - `list_collections` / `get_collection_info` / `delete_collection`.
    """

    def _create(ctx: OperationContext, data: CreateDatabaseInput) -> str:
        collection = data.collection_name
        ctx.check()
        with _backend_call("create backend", data.db_name):
            instances.create(
                data.db_name,
                lambda: create_vector_database(data.db_type, collection, settings),
            )
        return (
            f"Successfully created {data.db_type} vector database "
            f"'{data.db_name}' with collection '{collection}'"
        )

    def _list_databases(ctx: OperationContext, data: ListDatabasesInput) -> Any:
        snapshot = instances.enumerate()
        if not snapshot:
            return NO_DATABASES_MESSAGE

        databases: list[dict[str, Any]] = []
        for db_name, db in snapshot.items():
            try:
                count = db.count_documents(ctx)
            except OperationTimeout:
                raise
            except Exception as exc:
                logger.warning("Failed to count documents", db_name=db_name, error=str(exc))
                count = -1
            databases.append(
                {
                    "name": db_name,
                    "type": db.db_type,
                    "collection": db.collection_name,
                    "document_count": count,
                }
            )
        return {"databases": databases}

    def _setup(ctx: OperationContext, data: SetupDatabaseInput) -> str:
        db = instances.get(data.db_name)
        with _backend_call("set up collection", data.db_name):
            created = db.setup(ctx, data.embedding)
        if not created:
            return (
                f"Collection '{db.collection_name}' already exists in "
                f"{db.db_type} vector database '{data.db_name}'"
            )
        return (
            f"Successfully set up {db.db_type} vector database '{data.db_name}' "
            f"with embedding '{data.embedding}'"
        )

    def _write_one(ctx: OperationContext, data: WriteDocumentInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        document = data.to_document()
        with _backend_call("write document", data.db_name):
            stats = db.write_document(ctx, document)
        return {
            "status": "ok",
            "message": "Wrote 1 document",
            "document_id": document.id,
            "write_stats": stats.to_dict(),
        }

    def _write_many(ctx: OperationContext, data: WriteDocumentsInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        documents = [item.to_document() for item in data.documents]
        with _backend_call("write documents", data.db_name):
            stats = db.write_documents(ctx, documents)
        return {
            "status": "ok",
            "message": f"Wrote {stats.documents_written} documents",
            "document_ids": [document.id for document in documents],
            "write_stats": stats.to_dict(),
        }

    def _query(ctx: OperationContext, data: QueryInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("query", data.db_name):
            return db.query(ctx, data.query, data.limit, data.collection_name)

    def _search(ctx: OperationContext, data: QueryInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("search", data.db_name):
            hits = db.search(ctx, data.query, data.limit, data.collection_name)
        return {"results": [hit.to_dict() for hit in hits], "count": len(hits)}

    def _list_documents(ctx: OperationContext, data: ListDocumentsInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("list documents", data.db_name):
            documents = db.list_documents(ctx, data.limit, data.offset)
        return {
            "documents": [document.to_dict() for document in documents],
            "count": len(documents),
        }

    def _count(ctx: OperationContext, data: DatabaseInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("count documents", data.db_name):
            return {"count": db.count_documents(ctx)}

    def _delete_one(ctx: OperationContext, data: DeleteDocumentInput) -> str:
        db = instances.get(data.db_name)
        with _backend_call("delete document", data.db_name):
            db.delete_document(ctx, data.document_id)
        return (
            f"Successfully deleted document '{data.document_id}' "
            f"from vector database '{data.db_name}'"
        )

    def _delete_many(ctx: OperationContext, data: DeleteDocumentsInput) -> str:
        db = instances.get(data.db_name)
        with _backend_call("delete documents", data.db_name):
            db.delete_documents(ctx, list(data.document_ids))
        return (
            f"Successfully deleted {len(data.document_ids)} documents "
            f"from vector database '{data.db_name}'"
        )

    def _list_collections(ctx: OperationContext, data: DatabaseInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("list collections", data.db_name):
            collections = db.list_collections(ctx)
        return {"collections": collections, "count": len(collections)}

    def _collection_info(ctx: OperationContext, data: CollectionInput) -> dict[str, Any]:
        db = instances.get(data.db_name)
        with _backend_call("get collection info", data.db_name):
            return db.get_collection_info(ctx, data.collection_name or db.collection_name)

    def _delete_collection(ctx: OperationContext, data: CollectionInput) -> str:
        db = instances.get(data.db_name)
        collection = data.collection_name or db.collection_name
        with _backend_call("delete collection", data.db_name):
            db.delete_collection(ctx, collection)
        return (
            f"Successfully deleted collection '{collection}' "
            f"from vector database '{data.db_name}'"
        )

    def _cleanup(ctx: OperationContext, data: DatabaseInput) -> str:
        def _release(db: VectorDatabase) -> None:
            with _backend_call("clean up", data.db_name):
                db.cleanup(ctx)
            # The caller already got a Timeout once the deadline passed; keep
            # the instance registered.
            ctx.check()

        instances.discard(data.db_name, _release)
        return f"Successfully cleaned up and removed vector database '{data.db_name}'"

    db_types = ", ".join(supported_backends())
    specs = [
        ToolSpec(
            name="create_vector_database",
            description=f"Create a new vector database instance ({db_types}).",
            args_schema=CreateDatabaseInput,
            handler=_create,
            timeout_category="create_database",
            tags=("lifecycle",),
        ),
        ToolSpec(
            name="list_databases",
            description="List all available vector database instances.",
            args_schema=ListDatabasesInput,
            handler=_list_databases,
            timeout_category="list_databases",
            tags=("lifecycle",),
        ),
        ToolSpec(
            name="setup_database",
            description="Set up a vector database and create its collection.",
            args_schema=SetupDatabaseInput,
            handler=_setup,
            timeout_category="setup_database",
            tags=("lifecycle",),
        ),
        ToolSpec(
            name="write_document",
            description="Write a single document to a vector database.",
            args_schema=WriteDocumentInput,
            handler=_write_one,
            timeout_category="write_single",
            tags=("documents", "write"),
        ),
        ToolSpec(
            name="write_documents",
            description="Write multiple documents to a vector database in one batch.",
            args_schema=WriteDocumentsInput,
            handler=_write_many,
            timeout_category="write_bulk",
            tags=("documents", "write"),
        ),
        ToolSpec(
            name="query",
            description="Query a vector database using natural language.",
            args_schema=QueryInput,
            handler=_query,
            timeout_category="query",
            tags=("search",),
        ),
        ToolSpec(
            name="search",
            description="Run a similarity search and return scored documents.",
            args_schema=QueryInput,
            handler=_search,
            timeout_category="query",
            tags=("search",),
        ),
        ToolSpec(
            name="list_documents",
            description="List documents from a vector database.",
            args_schema=ListDocumentsInput,
            handler=_list_documents,
            timeout_category="list_documents",
            tags=("documents",),
        ),
        ToolSpec(
            name="count_documents",
            description="Get the current count of documents in a collection.",
            args_schema=DatabaseInput,
            handler=_count,
            timeout_category="count_documents",
            tags=("documents",),
        ),
        ToolSpec(
            name="delete_document",
            description="Delete a single document from a vector database.",
            args_schema=DeleteDocumentInput,
            handler=_delete_one,
            timeout_category="delete",
            tags=("documents", "delete"),
        ),
        ToolSpec(
            name="delete_documents",
            description="Delete multiple documents from a vector database.",
            args_schema=DeleteDocumentsInput,
            handler=_delete_many,
            timeout_category="delete",
            tags=("documents", "delete"),
        ),
        ToolSpec(
            name="list_collections",
            description="List the collections of a vector database.",
            args_schema=DatabaseInput,
            handler=_list_collections,
            timeout_category="list_collections",
            tags=("collections",),
        ),
        ToolSpec(
            name="get_collection_info",
            description="Describe a collection of a vector database.",
            args_schema=CollectionInput,
            handler=_collection_info,
            timeout_category="list_collections",
            tags=("collections",),
        ),
        ToolSpec(
            name="delete_collection",
            description="Delete a collection and all of its documents.",
            args_schema=CollectionInput,
            handler=_delete_collection,
            timeout_category="delete",
            tags=("collections", "delete"),
        ),
        ToolSpec(
            name="cleanup",
            description="Clean up resources and close connections for a vector database.",
            args_schema=DatabaseInput,
            handler=_cleanup,
            timeout_category="cleanup",
            tags=("lifecycle",),
        ),
    ]
    for spec in specs:
        registry.register(spec)
