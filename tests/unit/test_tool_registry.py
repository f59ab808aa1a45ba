import pytest
from pydantic import BaseModel, Field, ValidationError

from vector_mcp.context import OperationContext
from vector_mcp.errors import ToolNotFound
from vector_mcp.mcp.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    value: int = Field(ge=1, description="positive value")


def _echo_spec(name: str = "echo") -> ToolSpec:
    def _handler(ctx: OperationContext, data: EchoInput) -> str:
        return str(data.value)

    return ToolSpec(
        name=name,
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
    )


def test_tool_spec_validation() -> None:
    spec = _echo_spec()

    assert spec.handler(OperationContext.background(), spec.parse({"value": 3})) == "3"

    with pytest.raises(ValidationError):
        spec.parse({"value": 0})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    spec = _echo_spec()

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


def test_sealed_registry_rejects_registration() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec("first"))
    registry.seal()

    with pytest.raises(RuntimeError):
        registry.register(_echo_spec("second"))
    assert registry.names() == ["first"]


def test_resolve_unknown_tool() -> None:
    registry = ToolRegistry()

    with pytest.raises(ToolNotFound) as excinfo:
        registry.resolve("nope")
    assert excinfo.value.kind == "ToolNotFound"
    assert str(excinfo.value) == "Tool 'nope' not found"


def test_describe_is_stable_and_strips_titles() -> None:
    registry = ToolRegistry()
    for name in ("b_tool", "a_tool", "c_tool"):
        registry.register(_echo_spec(name))

    described = registry.describe()

    assert [item["name"] for item in described] == ["b_tool", "a_tool", "c_tool"]
    schema = described[0]["inputSchema"]
    assert "title" not in schema
    assert schema["required"] == ["value"]
    assert schema["properties"]["value"] == {
        "type": "integer",
        "minimum": 1,
        "description": "positive value",
    }
    assert "a_tool" in registry
    assert len(registry) == 3
