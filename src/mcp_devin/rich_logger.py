"""Rich-based console logging for MCP tool calls and server startup.

Panels go to stderr so they never interleave with the stdio transport. Tool
panels are gated by ``TOOLS_LOG_ENABLED`` and the startup banner by
``LOG_RICH_ENABLED``.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from rich import box
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

console = Console(stderr=True, soft_wrap=True)

_SENSITIVE_MARKERS = ("token", "secret", "password", "api_key")


@dataclass
class ToolCallContext:
    """Context information for a tool call."""

    tool_name: str
    kwargs: dict[str, Any]
    session_id: Optional[str] = None
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    result: Any = None
    error: Optional[Exception] = None
    success: bool = True
    _created_at: datetime = field(default_factory=datetime.now)

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time else time.perf_counter()
        return (end - self.start_time) * 1000

    @property
    def timestamp(self) -> str:
        return self._created_at.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _safe_json_format(data: Any, max_length: int = 2000) -> str:
    """Format data as JSON with truncation."""
    json_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
    if len(json_str) > max_length:
        json_str = json_str[:max_length] + "\n... (truncated)"
    return json_str


def _create_syntax_panel(title: str, content: str, *, border_style: str = "cyan") -> Panel:
    syntax = Syntax(content, "json", theme="monokai", line_numbers=False, word_wrap=True, background_color="default")
    return Panel(syntax, title=f"[bold]{title}[/bold]", border_style=border_style, box=box.ROUNDED, padding=(0, 1))


def _duration_style(duration_ms: float) -> str:
    if duration_ms < 100:
        return "bold bright_green"
    if duration_ms < 1000:
        return "bold yellow"
    return "bold red"


def _create_summary_table(ctx: ToolCallContext) -> Table:
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1), show_edge=False)
    table.add_column("Key", style="bold bright_yellow", width=12)
    table.add_column("Value", style="white", overflow="fold")

    table.add_row("Tool", f"[bold bright_green]{ctx.tool_name}[/bold bright_green]")
    table.add_row("Started", f"[dim]{ctx.timestamp}[/dim]")
    if ctx.session_id:
        table.add_row("Session", f"[bright_cyan]{escape(ctx.session_id)}[/bright_cyan]")
    if ctx.end_time:
        style = _duration_style(ctx.duration_ms)
        table.add_row("Duration", f"[{style}]{ctx.duration_ms:.2f}ms[/{style}]")
        if ctx.success:
            table.add_row("Status", "[bold bright_green]SUCCESS[/bold bright_green]")
        else:
            error_msg = str(ctx.error) if ctx.error else "Unknown error"
            table.add_row("Status", "[bold bright_red]FAILED[/bold bright_red]")
            table.add_row("Error", f"[red]{escape(error_msg[:200])}[/red]")
    return table


def _create_result_display(ctx: ToolCallContext) -> Panel:
    if ctx.error:
        error_info: dict[str, Any] = {
            "error_type": type(ctx.error).__name__,
            "error_message": str(ctx.error),
        }
        # ToolExecutionError carries a category and structured data
        if hasattr(ctx.error, "error_type"):
            error_info["error_category"] = ctx.error.error_type
        if hasattr(ctx.error, "data"):
            error_info["error_data"] = ctx.error.data
        return _create_syntax_panel("Error Details", _safe_json_format(error_info), border_style="bright_red")
    return _create_syntax_panel("Result", _safe_json_format(ctx.result), border_style="bright_green")


def log_tool_call_start(ctx: ToolCallContext) -> None:
    """Log the start of a tool call with its parameters."""
    components: list[RenderableType] = [Rule(style="bright_blue"), _create_summary_table(ctx)]
    if ctx.kwargs:
        components.append(_create_syntax_panel("Input Parameters", _safe_json_format(ctx.kwargs), border_style="bright_blue"))
    console.print(
        Panel(
            Group(*components),
            title="[bold bright_white on bright_blue]MCP TOOL CALL STARTED[/bold bright_white on bright_blue]",
            border_style="bright_blue",
            box=box.DOUBLE,
            padding=(1, 2),
        )
    )


def log_tool_call_end(ctx: ToolCallContext) -> None:
    """Log the end of a tool call with its result or error."""
    if not ctx.end_time:
        ctx.end_time = time.perf_counter()
    if ctx.success:
        title = "[bold bright_white on bright_green]MCP TOOL CALL COMPLETED[/bold bright_white on bright_green]"
        border_style = "bright_green"
    else:
        title = "[bold bright_white on bright_red]MCP TOOL CALL FAILED[/bold bright_white on bright_red]"
        border_style = "bright_red"
    components: list[RenderableType] = [_create_summary_table(ctx), Text(), _create_result_display(ctx)]
    console.print(Panel(Group(*components), title=title, border_style=border_style, box=box.DOUBLE, padding=(1, 2)))


def log_error(message: str, error: Optional[Exception] = None, **kwargs: Any) -> None:
    """Log an error message with Rich formatting."""
    console.print(Text(f"ERROR {message}", style="bold bright_red"))
    if error or kwargs:
        error_data = kwargs.copy()
        if error:
            error_data["error_type"] = type(error).__name__
            error_data["error_message"] = str(error)
        console.print(_create_syntax_panel("Error Details", _safe_json_format(error_data, max_length=500), border_style="bright_red"))


def mask_secret(key: str, value: Any) -> str:
    if any(marker in key.lower() for marker in _SENSITIVE_MARKERS):
        return "[dim red]********[/dim red]" if value else "[dim]not set[/dim]"
    return escape(str(value))


def create_startup_panel(config: dict[str, Any]) -> Panel:
    """Create the startup panel showing configuration, with secrets masked."""
    tree = Tree("[bold bright_white]Devin MCP Server[/bold bright_white]")
    for section, values in config.items():
        branch = tree.add(f"[bold bright_cyan]{section}[/bold bright_cyan]")
        if isinstance(values, dict):
            for key, value in values.items():
                branch.add(f"[bright_yellow]{key}[/bright_yellow]: [white]{mask_secret(key, value)}[/white]")
        else:
            branch.add(f"[white]{escape(str(values))}[/white]")
    return Panel(
        tree,
        title="[bold bright_white on bright_blue]Server Configuration[/bold bright_white on bright_blue]",
        border_style="bright_blue",
        box=box.DOUBLE,
        padding=(1, 2),
    )


def settings_overview(settings: Any) -> dict[str, dict[str, Any]]:
    """Flatten settings into display sections."""
    return {
        "devin": {
            "org_name": settings.devin.org_name,
            "base_url": settings.devin.base_url,
            "api_key": settings.devin.api_key,
            "timeout_seconds": settings.devin.timeout_seconds or "none",
        },
        "slack": {
            "enabled": settings.slack.enabled,
            "default_channel": settings.slack.default_channel or "not set",
            "bot_token": settings.slack.bot_token,
            "devin_user_name": settings.slack.devin_user_name,
        },
        "logging": {
            "level": settings.log_level,
            "json": settings.log_json_enabled,
            "tool_panels": settings.tools_log_enabled,
        },
    }


def display_startup_banner(settings: Any, host: str, port: int, path: str) -> None:
    """Print the startup banner for the HTTP transport."""
    if not settings.log_rich_enabled:
        return
    overview: dict[str, Any] = {"server": {"endpoint": f"http://{host}:{port}{path}", "environment": settings.environment}}
    overview.update(settings_overview(settings))
    console.print(create_startup_panel(overview))
