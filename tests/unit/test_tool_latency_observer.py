from pydantic import BaseModel

from vector_mcp.config import Settings
from vector_mcp.context import OperationContext
from vector_mcp.mcp.dispatch import Dispatcher
from vector_mcp.mcp.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    text: str


def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()

    def _handler(ctx: OperationContext, data: EchoInput) -> str:
        return data.text.upper()

    registry.register(
        ToolSpec(
            name="echo",
            description="uppercase",
            args_schema=EchoInput,
            handler=_handler,
        )
    )
    dispatcher = Dispatcher(registry, Settings())

    observed = []
    dispatcher.set_observer(observed.append)
    outcome = dispatcher.call("echo", {"text": "hello"})
    failed = dispatcher.call("echo", {})
    dispatcher.set_observer(None)
    dispatcher.shutdown()

    assert outcome.result == "HELLO"
    assert len(observed) == 2
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].status == "ok"
    assert observed[0].latency_ms >= 0.0
    assert not failed.ok
    assert observed[1].status == "error"
    assert observed[1].error_kind == "InvalidArgument"
