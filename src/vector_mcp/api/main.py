"""FastAPI entrypoint for the health and MCP tool endpoints."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from vector_mcp.config import Settings, load_settings
from vector_mcp.context import OperationContext
from vector_mcp.errors import NotFound
from vector_mcp.mcp.dispatch import Dispatcher, ToolResult
from vector_mcp.mcp.instances import InstanceRegistry
from vector_mcp.mcp.registry import ToolRegistry
from vector_mcp.mcp.tools import register_builtin_tools
from vector_mcp.obs.logging import get_logger, setup_logging

logger = get_logger(__name__)

_DISCONNECT_POLL_S = 0.1

_STATUS_BY_KIND = {
    "InvalidArgument": 400,
    "UnsupportedBackend": 400,
    "NotFound": 404,
    "AlreadyExists": 409,
    "BackendFailure": 502,
    "Timeout": 504,
}


class ToolCallRequest(BaseModel):
    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build an application that owns its own tool and instance registries."""

    settings = settings or load_settings()
    instances = InstanceRegistry()
    registry = ToolRegistry()
    register_builtin_tools(registry, instances, settings)
    registry.seal()
    dispatcher = Dispatcher(registry, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting vector MCP server",
            version=settings.version,
            tools=len(registry),
        )
        yield
        _release_all(instances, settings)
        dispatcher.shutdown()
        logger.info("Server shutdown complete")

    app = FastAPI(title="Vector MCP Server", version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.instances = instances
    app.state.registry = registry
    app.state.dispatcher = dispatcher

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        return PlainTextResponse("Invalid JSON", status_code=400)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "vector_databases": len(instances),
        }

    @app.get("/mcp/tools/list")
    def tools_list() -> dict[str, Any]:
        return {"tools": registry.describe()}

    @app.post("/mcp/tools/call", response_model=None)
    async def tools_call(
        request: ToolCallRequest, http_request: Request
    ) -> JSONResponse | PlainTextResponse:
        outcome = await call_until_disconnected(
            dispatcher, request, http_request.is_disconnected
        )
        return _render(outcome, settings)

    return app


async def call_until_disconnected(
    dispatcher: Dispatcher,
    request: ToolCallRequest,
    is_disconnected: Callable[[], Awaitable[bool]],
) -> ToolResult:
    """Run a tool call on the threadpool, cancelling it if the client goes away."""

    parent = OperationContext(label="http")
    call = asyncio.ensure_future(
        run_in_threadpool(dispatcher.call, request.name, request.arguments, parent=parent)
    )
    while not call.done():
        if await is_disconnected():
            parent.cancel("client disconnected")
            logger.info("Client disconnected; cancelling tool call", tool=request.name)
            break
        await asyncio.wait({call}, timeout=_DISCONNECT_POLL_S)
    return await call


def _render(outcome: ToolResult, settings: Settings) -> JSONResponse | PlainTextResponse:
    if outcome.ok:
        return JSONResponse(outcome.to_envelope())
    if outcome.error_kind == "ToolNotFound":
        return PlainTextResponse(outcome.error or "Tool not found", status_code=404)
    status_code = 500
    if settings.mcp.status_by_error_kind:
        status_code = _STATUS_BY_KIND.get(outcome.error_kind or "", 500)
    return JSONResponse(outcome.to_envelope(), status_code=status_code)


def _release_all(instances: InstanceRegistry, settings: Settings) -> None:
    for name in instances.names():
        try:
            db = instances.remove(name)
        except NotFound:
            continue
        try:
            db.cleanup(OperationContext(timeout=settings.get_timeout("cleanup"), label="shutdown"))
        except Exception as exc:
            logger.warning("Failed to clean up vector database", name=name, error=str(exc))


def run() -> None:
    """Console entrypoint: load settings, configure logging, serve."""

    import uvicorn

    settings = load_settings()
    setup_logging(settings.logging.level, settings.logging.format)
    logger.info(
        "Starting Vector MCP Server",
        version=settings.version,
        host=settings.server.host,
        port=settings.server.port,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


app = create_app()
