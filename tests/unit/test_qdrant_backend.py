import pytest

from vector_mcp.backends.qdrant import QdrantVectorDatabase
from vector_mcp.config import EmbeddingConfig, QdrantConfig
from vector_mcp.context import OperationContext
from vector_mcp.errors import InvalidArgument, NotFound
from vector_mcp.types import Document


def _ctx() -> OperationContext:
    return OperationContext(timeout=10.0, label="test")


def _db() -> QdrantVectorDatabase:
    return QdrantVectorDatabase(
        "Docs",
        qdrant_config=QdrantConfig(location=":memory:"),
        embedding_config=EmbeddingConfig(hashing_dimension=64),
    )


def test_setup_write_search_and_count() -> None:
    db = _db()

    assert db.setup(_ctx(), "hashing") is True
    assert db.setup(_ctx(), "hashing") is False
    db.write_documents(
        _ctx(),
        [
            Document(url="a", text="encrypt customer data at rest", metadata={"source": "policy"}),
            Document(url="b", text="quarterly sales report"),
        ],
    )

    hits = db.search(_ctx(), "encrypt customer data at rest", limit=5)

    assert db.count_documents(_ctx()) == 2
    assert hits[0].document.url == "a"
    assert hits[0].document.metadata == {"source": "policy"}
    assert [hit.score for hit in hits] == sorted((hit.score for hit in hits), reverse=True)
    db.cleanup(_ctx())


def test_list_and_delete_documents() -> None:
    db = _db()
    db.write_documents(_ctx(), [Document(url=f"u{i}", text=f"doc {i}") for i in range(3)])

    listed = db.list_documents(_ctx(), limit=10, offset=0)
    db.delete_document(_ctx(), listed[0].id)

    assert len(listed) == 3
    assert db.list_documents(_ctx(), limit=10, offset=5) == []
    assert db.count_documents(_ctx()) == 2
    with pytest.raises(NotFound):
        db.delete_document(_ctx(), listed[0].id)
    with pytest.raises(NotFound):
        db.delete_document(_ctx(), "not-a-uuid")
    db.cleanup(_ctx())


def test_non_uuid_ids_rejected_on_write() -> None:
    db = _db()

    with pytest.raises(InvalidArgument):
        db.write_document(_ctx(), Document(url="u", text="t", id="doc-1"))
    db.cleanup(_ctx())


def test_collection_introspection() -> None:
    db = _db()
    db.setup(_ctx(), "default")

    info = db.get_collection_info(_ctx(), "Docs")

    assert db.list_collections(_ctx()) == ["Docs"]
    assert info["dimension"] == 64
    assert info["document_count"] == 0
    with pytest.raises(NotFound):
        db.get_collection_info(_ctx(), "Missing")
    db.delete_collection(_ctx(), "Docs")
    assert db.list_collections(_ctx()) == []
    db.cleanup(_ctx())


def test_supplied_vectors_must_match_dimension() -> None:
    db = _db()
    documents = [
        Document(url="ok", text="fine"),
        Document(url="bad", text="wrong size", vector=[0.1, 0.2]),
    ]

    with pytest.raises(InvalidArgument) as excinfo:
        db.write_documents(_ctx(), documents)

    assert "expects 64" in str(excinfo.value)
    assert all(document.id == "" for document in documents)
    assert db.count_documents(_ctx()) == 0
    db.write_document(_ctx(), Document(url="v", text="given", vector=[1.0] + [0.0] * 63))
    assert db.count_documents(_ctx()) == 1
    db.cleanup(_ctx())


def test_delete_with_repeated_id_removes_it_once() -> None:
    db = _db()
    db.write_documents(_ctx(), [Document(url="a", text="first"), Document(url="b", text="second")])
    target = db.list_documents(_ctx(), limit=10, offset=0)[0]

    db.delete_documents(_ctx(), [target.id, target.id])

    assert db.count_documents(_ctx()) == 1
    db.cleanup(_ctx())
