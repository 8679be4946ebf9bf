"""Top-level package for the Devin MCP server."""

from __future__ import annotations

from typing import Any


def build_mcp_server() -> Any:
    """Lazily import and build the FastMCP server to keep package import cheap."""
    from .app import build_mcp_server as _build_mcp_server
    return _build_mcp_server()

__all__ = ["build_mcp_server"]
