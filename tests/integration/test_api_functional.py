import asyncio
import threading
import time
from typing import Any

from fastapi.testclient import TestClient

from vector_mcp.api.main import ToolCallRequest, call_until_disconnected, create_app
from vector_mcp.config import MCPConfig, Settings


def _client(**mcp: Any) -> TestClient:
    return TestClient(create_app(Settings(mcp=MCPConfig(**mcp))))


def _call(client: TestClient, name: str, **arguments: Any):
    return client.post("/mcp/tools/call", json={"name": name, "arguments": arguments})


def test_health_and_tool_listing() -> None:
    with _client() as client:
        health = client.get("/health")
        listing = client.get("/mcp/tools/list")

    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["vector_databases"] == 0
    assert "T" in health.json()["timestamp"]
    assert listing.status_code == 200
    names = [tool["name"] for tool in listing.json()["tools"]]
    assert "create_vector_database" in names
    assert "cleanup" in names


def test_write_count_delete_cleanup_scenario() -> None:
    with _client() as client:
        created = _call(client, "create_vector_database", db_name="db1", db_type="mock")
        assert created.status_code == 200
        assert created.json() == {
            "result": "Successfully created mock vector database 'db1' with collection 'MaestroDocs'"
        }

        written = _call(client, "write_document", db_name="db1", url="u", text="hello world")
        assert written.status_code == 200
        document_id = written.json()["result"]["document_id"]
        assert written.json()["result"]["write_stats"]["documents_written"] == 1

        assert _call(client, "count_documents", db_name="db1").json() == {"result": {"count": 1}}
        assert client.get("/health").json()["vector_databases"] == 1

        deleted = _call(client, "delete_document", db_name="db1", document_id=document_id)
        assert deleted.status_code == 200
        assert _call(client, "count_documents", db_name="db1").json() == {"result": {"count": 0}}

        cleaned = _call(client, "cleanup", db_name="db1")
        assert cleaned.status_code == 200
        assert "Successfully cleaned up" in cleaned.json()["result"]

        after = _call(client, "count_documents", db_name="db1")
        assert after.status_code == 500
        assert "not found" in after.json()["error"]
        assert client.get("/health").json()["vector_databases"] == 0


def test_query_returns_ranked_summary() -> None:
    with _client() as client:
        _call(client, "create_vector_database", db_name="docs", db_type="mock", collection_name="Kb")
        _call(client, "setup_database", db_name="docs")
        _call(
            client,
            "write_documents",
            db_name="docs",
            documents=[
                {"url": "a", "text": "encrypt customer data at rest"},
                {"url": "b", "text": "team offsite agenda"},
                {"url": "c", "text": "customer data must be encrypted"},
            ],
        )

        response = _call(client, "query", db_name="docs", query="encrypt customer data at rest", limit=2)

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["collection"] == "Kb"
    assert len(result["results"]) == 2
    assert result["results"][0]["url"] == "a"
    assert result["results"][0]["score"] >= result["results"][1]["score"]
    assert result["summary"].startswith("Found 2 relevant documents")


def test_list_databases_reports_counts() -> None:
    with _client() as client:
        empty = _call(client, "list_databases")
        _call(client, "create_vector_database", db_name="db1", db_type="mock")
        _call(client, "write_document", db_name="db1", url="u", text="t")
        listed = _call(client, "list_databases")

    assert empty.json() == {"result": "No vector databases are currently active"}
    assert listed.json()["result"]["databases"] == [
        {"name": "db1", "type": "mock", "collection": "MaestroDocs", "document_count": 1}
    ]


def test_failures_use_flat_status_by_default() -> None:
    with _client() as client:
        unknown_db = _call(client, "query", db_name="ghost", query="anything")
        unsupported = _call(client, "create_vector_database", db_name="x", db_type="faiss")
        _call(client, "create_vector_database", db_name="dup", db_type="mock")
        duplicate = _call(client, "create_vector_database", db_name="dup", db_type="mock")
        invalid = _call(client, "create_vector_database", db_name="y")

    assert unknown_db.status_code == 500
    assert "not found" in unknown_db.json()["error"]
    assert unsupported.status_code == 500
    assert "unsupported vector database type: faiss" in unsupported.json()["error"]
    assert duplicate.status_code == 500
    assert duplicate.json() == {"error": "vector database 'dup' already exists"}
    assert invalid.status_code == 500
    assert "db_type is required" in invalid.json()["error"]


def test_status_by_error_kind_refines_codes() -> None:
    with _client(status_by_error_kind=True) as client:
        unknown_db = _call(client, "count_documents", db_name="ghost")
        unsupported = _call(client, "create_vector_database", db_name="x", db_type="faiss")
        _call(client, "create_vector_database", db_name="dup", db_type="mock")
        duplicate = _call(client, "create_vector_database", db_name="dup", db_type="mock")

    assert unknown_db.status_code == 404
    assert unsupported.status_code == 400
    assert duplicate.status_code == 409


def test_unknown_tool_and_malformed_requests() -> None:
    with _client() as client:
        unknown = _call(client, "nonexistent_tool")
        malformed = client.post(
            "/mcp/tools/call",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        missing_name = client.post("/mcp/tools/call", json={"arguments": {}})

    assert unknown.status_code == 404
    assert unknown.text == "Tool 'nonexistent_tool' not found"
    assert malformed.status_code == 400
    assert malformed.text == "Invalid JSON"
    assert missing_name.status_code == 400


def test_bulk_write_is_all_or_nothing() -> None:
    with _client() as client:
        _call(client, "create_vector_database", db_name="db1", db_type="mock")
        bad_type = _call(
            client,
            "write_documents",
            db_name="db1",
            documents=[{"url": "a", "text": "ok"}, {"url": "b", "text": "bad", "vector": ["x"]}],
        )
        bad_dimension = _call(
            client,
            "write_documents",
            db_name="db1",
            documents=[{"url": "a", "text": "ok"}, {"url": "b", "text": "bad", "vector": [0.5, 0.5]}],
        )
        empty = _call(client, "write_documents", db_name="db1", documents=[])
        count = _call(client, "count_documents", db_name="db1")

    assert bad_type.status_code == 500
    assert "documents.1.vector.0" in bad_type.json()["error"]
    assert bad_dimension.status_code == 500
    assert "dimension" in bad_dimension.json()["error"]
    assert empty.status_code == 500
    assert count.json() == {"result": {"count": 0}}


def test_pagination_through_http() -> None:
    with _client() as client:
        _call(client, "create_vector_database", db_name="db1", db_type="mock")
        _call(
            client,
            "write_documents",
            db_name="db1",
            documents=[{"url": f"u{i}", "text": f"doc {i}"} for i in range(4)],
        )
        page = _call(client, "list_documents", db_name="db1", limit=2, offset=1)
        past_end = _call(client, "list_documents", db_name="db1", offset=10)

    assert [doc["url"] for doc in page.json()["result"]["documents"]] == ["u1", "u2"]
    assert past_end.json()["result"] == {"documents": [], "count": 0}


def test_stuck_backend_call_times_out() -> None:
    with _client(timeouts={"query": 0.1}) as client:
        app = client.app
        _call(client, "create_vector_database", db_name="slow", db_type="mock")
        db = app.state.instances.get("slow")

        def _stuck_search(ctx, query, limit, collection_name=None):
            ctx.wait(10.0)
            return []

        db.search = _stuck_search
        response = _call(client, "query", db_name="slow", query="anything")

    assert response.status_code == 500
    assert "error" in response.json()


def test_hung_cleanup_keeps_other_instances_available() -> None:
    gate = threading.Event()
    with _client(timeouts={"cleanup": 0.2}) as client:
        instances = client.app.state.instances
        _call(client, "create_vector_database", db_name="hung", db_type="mock")
        _call(client, "create_vector_database", db_name="other", db_type="mock")
        instances.get("hung").cleanup = lambda ctx: gate.wait(5.0)

        cleanup = _call(client, "cleanup", db_name="hung")
        started = time.monotonic()
        health = client.get("/health")
        other = _call(client, "count_documents", db_name="other")
        closing = _call(client, "count_documents", db_name="hung")
        elapsed = time.monotonic() - started

        gate.set()
        deadline = time.monotonic() + 2.0
        while "hung" not in instances and time.monotonic() < deadline:
            time.sleep(0.02)
        restored = "hung" in instances

    assert cleanup.status_code == 500
    assert "timed out" in cleanup.json()["error"]
    assert elapsed < 1.0
    assert health.status_code == 200
    assert health.json()["vector_databases"] == 1
    assert other.json() == {"result": {"count": 0}}
    assert "being cleaned up" in closing.json()["error"]
    assert restored


def test_client_disconnect_cancels_tool_call() -> None:
    app = create_app(Settings())
    dispatcher = app.state.dispatcher
    dispatcher.call("create_vector_database", {"db_name": "slow", "db_type": "mock"})
    db = app.state.instances.get("slow")

    def _stuck_search(ctx, query, limit, collection_name=None):
        ctx.wait(10.0)
        return []

    db.search = _stuck_search
    started = time.monotonic()

    async def _disconnected() -> bool:
        return time.monotonic() - started > 0.2

    outcome = asyncio.run(
        call_until_disconnected(
            dispatcher,
            ToolCallRequest(name="query", arguments={"db_name": "slow", "query": "anything"}),
            _disconnected,
        )
    )
    elapsed = time.monotonic() - started
    dispatcher.shutdown()

    assert outcome.error_kind == "Timeout"
    assert "client disconnected" in (outcome.error or "") or "cancelled" in (outcome.error or "")
    assert elapsed < 2.0
