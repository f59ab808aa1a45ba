"""Vector MCP server package."""

from .config import Settings, load_settings

__all__ = ["Settings", "load_settings"]
