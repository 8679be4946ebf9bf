"""Command-line interface for running and inspecting the Devin MCP server."""

from __future__ import annotations

import asyncio
import inspect
import os
import sys
from dataclasses import replace
from typing import Any, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from . import rich_logger
from .app import build_mcp_server
from .config import ConfigurationError, Settings, clear_settings_cache, get_settings, validate_settings
from .http import build_http_app, configure_logging

console = Console()

app = typer.Typer(help="Devin coding-agent bridge exposed as an MCP server.", invoke_without_command=True)


@app.callback()
def _app_callback(ctx: typer.Context) -> None:
    """Default to ``serve-stdio`` when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        serve_stdio()


def _validated_settings() -> Settings:
    settings = get_settings()
    try:
        validate_settings(settings)
    except ConfigurationError as exc:
        rich_logger.log_error(str(exc), missing=exc.missing)
        raise typer.Exit(code=1) from exc
    return settings


@app.command("serve-stdio")
def serve_stdio() -> None:
    """Run the MCP server over stdio transport.

    stdout carries the MCP protocol, so tool panels and the banner are
    disabled and all logging goes to stderr.
    """
    os.environ["TOOLS_LOG_ENABLED"] = "false"
    os.environ["LOG_RICH_ENABLED"] = "false"
    clear_settings_cache()

    settings = _validated_settings()
    configure_logging(settings, stream=sys.stderr, force=True)

    print(f"Devin MCP ({settings.devin.org_name}) - starting stdio transport...", file=sys.stderr)
    server = build_mcp_server(settings)
    server.run(transport="stdio")


@app.command("serve-http")
def serve_http(
    host: Optional[str] = typer.Option(None, help="Host interface for HTTP transport. Defaults to HTTP_HOST setting."),
    port: Optional[int] = typer.Option(None, help="Port for HTTP transport. Defaults to HTTP_PORT setting."),
    path: Optional[str] = typer.Option(None, help="HTTP path where the MCP endpoint is exposed."),
) -> None:
    """Run the MCP server over the Streamable HTTP transport."""
    settings = _validated_settings()
    resolved_host = host or settings.http.host
    resolved_port = port or settings.http.port
    resolved_path = path or settings.http.path
    if path:
        settings = replace(settings, http=replace(settings.http, path=resolved_path))

    rich_logger.display_startup_banner(settings, resolved_host, resolved_port, resolved_path)

    server = build_mcp_server(settings)
    http_app = build_http_app(settings, server)
    # Tests monkeypatch uvicorn.run without the 'ws' parameter
    kwargs: dict[str, Any] = {"host": resolved_host, "port": resolved_port, "log_level": "info"}
    if "ws" in inspect.signature(uvicorn.run).parameters:
        kwargs["ws"] = "none"
    uvicorn.run(http_app, **kwargs)


@app.command("config")
def show_config() -> None:
    """Print the effective configuration with secrets masked."""
    settings = get_settings()
    table = Table(title="Devin MCP configuration", show_lines=False)
    table.add_column("Section", style="cyan")
    table.add_column("Key")
    table.add_column("Value")
    for section, values in rich_logger.settings_overview(settings).items():
        for key, value in values.items():
            table.add_row(section, key, rich_logger.mask_secret(key, value))
    console.print(table)
    try:
        validate_settings(settings)
    except ConfigurationError as exc:
        console.print(f"[yellow]{exc}[/]")


@app.command("tools")
def list_tools() -> None:
    """List the tools the server exposes and their required parameters."""
    settings = _validated_settings()
    server = build_mcp_server(settings)
    tools = asyncio.run(server.list_tools())
    table = Table(title="Tools", show_lines=False)
    table.add_column("Name", style="cyan")
    table.add_column("Required")
    for tool in tools:
        required = (tool.parameters or {}).get("required") or []
        table.add_row(tool.name, ", ".join(required) or "-")
    console.print(table)
