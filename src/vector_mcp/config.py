"""Configuration models for the vector MCP server."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_COLLECTION = "MaestroDocs"

DEFAULT_CONFIG_PATHS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
    Path("/etc/vector-mcp/config.yaml"),
)


class ServerConfig(BaseModel):
    """HTTP listener settings."""

    host: str = "localhost"
    port: int = Field(default=8030, ge=1, le=65535)


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "console"] = "json"


class EmbeddingConfig(BaseModel):
    """Configures how text is turned into vectors when none is supplied."""

    provider: str = "hashing"
    model: str = "text-embedding-3-small"
    vector_size: int = Field(default=1536, ge=1)
    hashing_dimension: int = Field(default=256, ge=8)


class QdrantConfig(BaseModel):
    """Connection settings for the `qdrant` backend.

    When `url` is unset each instance gets its own in-process store at
    `location` (":memory:" by default).
    """

    url: str | None = None
    location: str = ":memory:"
    api_key: str | None = None
    timeout: float = Field(default=10.0, gt=0.0)


def _default_timeouts() -> dict[str, float]:
    return {
        "query": 30.0,
        "write_single": 60.0,
        "write_bulk": 900.0,
        "delete": 60.0,
        "setup_database": 60.0,
        "cleanup": 30.0,
    }


class MCPConfig(BaseModel):
    """Tool dispatch settings.

    `timeouts` maps an operation category to seconds; categories that are not
    listed use `tool_timeout`.
    """

    tool_timeout: float = Field(default=15.0, gt=0.0)
    timeouts: dict[str, float] = Field(default_factory=_default_timeouts)
    max_workers: int = Field(default=16, ge=1)
    status_by_error_kind: bool = False

    def get_timeout(self, category: str) -> float:
        timeout = self.timeouts.get(category)
        if timeout is None or timeout <= 0:
            return self.tool_timeout
        return timeout


class Settings(BaseSettings):
    """Application settings.

    Priority, highest first: environment (`VECTOR_MCP_` prefix, `__` between
    nested keys), `.env`, then values loaded from YAML by `load_settings`.
    """

    model_config = SettingsConfigDict(
        env_prefix="VECTOR_MCP_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    version: str = "0.1.0"
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def get_timeout(self, category: str) -> float:
        return self.mcp.get_timeout(category)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from an optional YAML file plus the environment.

    An explicit `path` must exist. Without one, `VECTOR_MCP_CONFIG` and then
    `DEFAULT_CONFIG_PATHS` are tried; finding no file is not an error.
    """

    config_path = _resolve_config_path(path)
    data: dict[str, Any] = {}
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")
        data = loaded
    return Settings(**data)


def _resolve_config_path(path: str | Path | None) -> Path | None:
    if path is not None:
        explicit = Path(path)
        if not explicit.is_file():
            raise FileNotFoundError(f"Config file not found: {explicit}")
        return explicit

    env_path = os.getenv("VECTOR_MCP_CONFIG")
    if env_path:
        return _resolve_config_path(env_path)

    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.is_file():
            return candidate
    return None
