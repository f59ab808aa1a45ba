"""Dispatch engine: resolve, validate, execute under a deadline, wrap."""

from __future__ import annotations

import json
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any

from langchain_core.tools import StructuredTool, ToolException
from pydantic import ValidationError

from vector_mcp.config import Settings
from vector_mcp.context import OperationContext
from vector_mcp.errors import (
    BackendFailure,
    InvalidArgument,
    OperationCancelled,
    OperationTimeout,
    VectorMCPError,
)
from vector_mcp.mcp.registry import ToolRegistry, ToolSpec
from vector_mcp.obs.logging import get_logger
from vector_mcp.obs.tracing import Timer, ToolTrace

logger = get_logger(__name__)

# Upper bound on how long the waiting thread sleeps before re-checking the
# caller's context for cancellation.
_POLL_INTERVAL_S = 0.05


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool call, ready to be rendered as an envelope."""

    tool: str
    result: Any = None
    error: str | None = None
    error_kind: str | None = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_envelope(self) -> dict[str, Any]:
        if self.ok:
            return {"result": self.result}
        return {"error": self.error}


class Dispatcher:
    """Runs registered tools with per-category timeouts.

    Handlers execute on a bounded worker pool. The calling thread waits for
    the handler until the operation's deadline; past it the operation's
    context is cancelled and a `Timeout` failure is returned without waiting
    further. No call is ever retried.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        settings: Settings,
        *,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.mcp.max_workers,
            thread_name_prefix="vector-mcp-tool",
        )
        self._observer: Callable[[ToolTrace], None] | None = None

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool call."""
        self._observer = observer

    def timeout_for(self, spec: ToolSpec) -> float:
        return self.settings.get_timeout(spec.timeout_category)

    def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        parent: OperationContext | None = None,
    ) -> ToolResult:
        payload = dict(arguments or {})
        with Timer() as timer:
            try:
                result = self._execute(name, payload, parent)
            except VectorMCPError as exc:
                outcome = ToolResult(tool=name, error=exc.message, error_kind=exc.kind)
            else:
                outcome = ToolResult(tool=name, result=result)
        outcome.latency_ms = timer.elapsed_ms
        self._record(name, payload, outcome)
        return outcome

    def shutdown(self, *, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def as_langchain_tools(self) -> list[StructuredTool]:
        """Export every tool as a LangChain tool routed through this dispatcher."""
        tools: list[StructuredTool] = []
        for spec in self.registry.specs():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec.name),
                    tags=list(spec.tags),
                )
            )
        return tools

    def _build_function(self, name: str) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            outcome = self.call(name, kwargs)
            if not outcome.ok:
                raise ToolException(outcome.error)
            if isinstance(outcome.result, str):
                return outcome.result
            return json.dumps(outcome.result, default=str)

        return _callable

    def _execute(
        self,
        name: str,
        payload: dict[str, Any],
        parent: OperationContext | None,
    ) -> Any:
        spec = self.registry.resolve(name)
        try:
            request = spec.parse(payload)
        except ValidationError as exc:
            raise InvalidArgument(_describe_validation_error(exc)) from exc

        timeout = self.timeout_for(spec)
        base = parent or OperationContext.background()
        ctx = base.child(timeout, label=name)
        ctx.check()

        future = self._executor.submit(spec.handler, ctx, request)
        try:
            return self._await(future, ctx, timeout)
        except OperationTimeout:
            ctx.cancel("timed out")
            future.cancel()
            raise
        except VectorMCPError:
            raise
        except Exception as exc:
            raise BackendFailure(f"tool '{name}' failed: {exc}") from exc

    def _await(self, future: Future[Any], ctx: OperationContext, timeout: float) -> Any:
        while True:
            wait_for = min(ctx.remaining(), _POLL_INTERVAL_S)
            try:
                return future.result(timeout=wait_for)
            except FuturesTimeoutError:
                pass
            if ctx.cancelled:
                raise OperationCancelled(f"operation '{ctx.label}' cancelled by caller")
            if ctx.expired:
                raise OperationTimeout(
                    f"operation '{ctx.label}' timed out after {timeout:g}s"
                )

    def _record(self, name: str, payload: dict[str, Any], outcome: ToolResult) -> None:
        if outcome.ok:
            logger.info("Tool call completed", tool=name, latency_ms=round(outcome.latency_ms, 3))
        else:
            logger.error(
                "Tool execution failed",
                tool=name,
                error_kind=outcome.error_kind,
                error=outcome.error,
                latency_ms=round(outcome.latency_ms, 3),
            )
        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=name,
                    input_payload=payload,
                    status="ok" if outcome.ok else "error",
                    latency_ms=outcome.latency_ms,
                    error_kind=outcome.error_kind,
                )
            )


def _describe_validation_error(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        if error.get("type") == "missing":
            messages.append(f"{field} is required")
        else:
            messages.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "invalid arguments: " + "; ".join(messages)
