"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vector_mcp.context import OperationContext
from vector_mcp.errors import ToolNotFound

ToolHandler = Callable[[OperationContext, Any], Any]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(min_length=1)
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    timeout_category: str = "tool_call"
    tags: tuple[str, ...] = ()

    def parse(self, payload: dict[str, Any]) -> BaseModel:
        return self.args_schema.model_validate(payload)

    @property
    def input_schema(self) -> dict[str, Any]:
        return _strip_titles(self.args_schema.model_json_schema())

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """Stores tool specs; sealed once startup registration is finished."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._sealed = False

    def register(self, spec: ToolSpec) -> None:
        if self._sealed:
            raise RuntimeError(f"Tool registry is sealed; cannot register {spec.name}")
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def seal(self) -> None:
        self._sealed = True

    def resolve(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise ToolNotFound(f"Tool '{name}' not found")
        return spec

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def describe(self) -> list[dict[str, Any]]:
        return [spec.describe() for spec in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def _strip_titles(schema: Any) -> Any:
    # Pydantic adds a "title" to every node; MCP clients only need the shape.
    if isinstance(schema, dict):
        return {
            key: _strip_titles(value)
            for key, value in schema.items()
            if not (key == "title" and isinstance(value, str))
        }
    if isinstance(schema, list):
        return [_strip_titles(item) for item in schema]
    return schema
