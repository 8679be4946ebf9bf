"""Application factory for the Devin MCP server."""

from __future__ import annotations

import enum
import inspect
import logging
import time
from collections.abc import Mapping
from contextlib import suppress
from functools import wraps
from typing import Any, Callable, Optional, Union

import httpx
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from slack_sdk.errors import SlackApiError

from . import rich_logger
from .config import Settings, get_settings, validate_settings
from .devin import DevinClient
from .slack import ChannelNotFoundError, SlackBridge
from .utils import normalize_session_id, with_session_ids

logger = logging.getLogger(__name__)


class ToolName(str, enum.Enum):
    """The closed set of tools this server exposes."""

    CREATE_SESSION = "create_devin_session"
    GET_SESSION = "get_devin_session"
    SEND_MESSAGE = "send_message_to_session"
    LIST_SESSIONS = "list_devin_sessions"
    ORGANIZATION_INFO = "get_organization_info"


class ToolExecutionError(ToolError):
    """Error surfaced to the MCP client as an ``isError`` result."""

    def __init__(
        self,
        error_type: str,
        message: str,
        *,
        recoverable: bool = True,
        data: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.recoverable = recoverable
        self.data = data or {}

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "type": self.error_type,
                "message": str(self),
                "recoverable": self.recoverable,
                "data": self.data,
            }
        }


def _record_tool_error(tool_name: str, exc: Exception) -> None:
    logger.warning(
        "tool_error",
        extra={
            "tool": tool_name,
            "error": type(exc).__name__,
            "error_message": str(exc),
        },
    )


def _require(name: str, value: Any) -> None:
    """Reject a missing or blank required argument before any outbound call."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ToolExecutionError(
            "MISSING_ARGUMENT",
            f"Error: {name} is required",
            data={"argument": name},
        )


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    return {"data": value}


def _slack_error_code(exc: SlackApiError) -> str:
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            code = response.get("error")
        except AttributeError:
            code = None
        if code:
            return str(code)
    return str(exc)


def _translate_exception(tool_name: str, action: str, exc: Exception) -> ToolExecutionError:
    """Map an exception raised inside a tool to the error envelope it should produce."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text
        return ToolExecutionError(
            "UPSTREAM_HTTP_ERROR",
            f"Error {action}: {status} - {body}",
            recoverable=status >= 500 or status == 429,
            data={"tool": tool_name, "status": status, "body": body},
        )
    if isinstance(exc, httpx.HTTPError):
        return ToolExecutionError(
            "UPSTREAM_CONNECTION_ERROR",
            f"Error {action}: {type(exc).__name__}: {exc}",
            data={"tool": tool_name, "error_detail": str(exc)},
        )
    if isinstance(exc, ChannelNotFoundError):
        return ToolExecutionError(
            "CHANNEL_NOT_FOUND",
            f"Error {action}: {exc}",
            data={"tool": tool_name, "channel": exc.channel},
        )
    if isinstance(exc, SlackApiError):
        code = _slack_error_code(exc)
        return ToolExecutionError(
            "SLACK_API_ERROR",
            f"Error {action}: Slack API error ({code})",
            data={"tool": tool_name, "slack_error": code},
        )
    return ToolExecutionError(
        "UNHANDLED_EXCEPTION",
        f"Unexpected error: {exc}",
        recoverable=False,
        data={"tool": tool_name, "original_error": type(exc).__name__, "error_detail": str(exc)},
    )


def _instrument_tool(
    tool_name: ToolName,
    *,
    action: str,
    settings: Settings,
    session_arg: Optional[str] = None,
) -> Callable[[Any], Any]:
    """Wrap a tool so every failure leaves it as a ToolExecutionError.

    ``action`` completes the error prefix, e.g. ``"creating session"`` yields
    ``Error creating session: 404 - {...}``.
    """
    name = tool_name.value

    def decorator(func: Any) -> Any:
        signature = inspect.signature(func)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind_partial(*args, **kwargs)
            log_ctx = None
            if settings.tools_log_enabled:
                try:
                    clean_kwargs = {k: v for k, v in bound.arguments.items() if k != "ctx"}
                    session_value = bound.arguments.get(session_arg) if session_arg else None
                    log_ctx = rich_logger.ToolCallContext(
                        tool_name=name,
                        kwargs=clean_kwargs,
                        session_id=str(session_value) if session_value else None,
                        start_time=time.perf_counter(),
                    )
                    rich_logger.log_tool_call_start(log_ctx)
                except Exception:
                    # Console logging must not break tool execution
                    log_ctx = None

            result = None
            error: Optional[Exception] = None
            try:
                result = await func(*args, **kwargs)
            except ToolExecutionError as exc:
                _record_tool_error(name, exc)
                error = exc
                raise
            except Exception as exc:
                _record_tool_error(name, exc)
                wrapped_exc = _translate_exception(name, action, exc)
                error = wrapped_exc
                raise wrapped_exc from exc
            finally:
                if log_ctx is not None:
                    try:
                        log_ctx.end_time = time.perf_counter()
                        log_ctx.result = result
                        log_ctx.error = error
                        log_ctx.success = error is None
                        rich_logger.log_tool_call_end(log_ctx)
                    except Exception:
                        pass
            return result

        # Preserve annotations so FastMCP can infer output schema
        with suppress(Exception):
            wrapper.__annotations__ = getattr(func, "__annotations__", {})
        return wrapper

    return decorator


def build_mcp_server(
    settings: Optional[Settings] = None,
    *,
    devin: Optional[DevinClient] = None,
    slack: Optional[SlackBridge] = None,
) -> FastMCP:
    """Create and configure the FastMCP server instance.

    ``devin`` and ``slack`` default to clients built from ``settings``; tests
    pass their own. With ``SLACK_ENABLED=false`` no Slack bridge is used and
    all Slack-specific behaviour is skipped.
    """
    settings = settings or get_settings()
    validate_settings(settings)
    devin_client = devin if devin is not None else DevinClient(settings.devin)
    bridge: Optional[SlackBridge] = None
    if settings.slack.enabled:
        bridge = slack if slack is not None else SlackBridge(settings.slack)

    instructions = (
        f"Devin coding-agent bridge for the '{settings.devin.org_name}' organization. "
        "Create Devin sessions, inspect and list them, and send follow-up messages. "
        "Session ids are accepted with or without the 'devin-' prefix."
    )
    if bridge is not None:
        instructions += " New sessions are announced in Slack as an @Devin mention."

    mcp = FastMCP(name=f"devin-{settings.devin.org_name}", instructions=instructions)

    async def _ctx_info_safe(ctx: Context, message: str) -> None:
        try:
            await ctx.info(message)
        except Exception:
            # Context may not be available outside of a request; ignore logging
            return

    async def _session_history(session_id: str) -> Optional[dict[str, Any]]:
        """Best-effort fetch of a session's message history; None on failure."""
        try:
            return _as_mapping(await devin_client.get_session_messages(session_id))
        except Exception as exc:
            logger.warning(
                "session_history_unavailable",
                extra={"session_id": session_id, "error": type(exc).__name__, "error_message": str(exc)},
            )
            return None

    @mcp.tool(
        name=ToolName.CREATE_SESSION.value,
        description=(
            "Create a new Devin session for code development and post the task to Slack as an @Devin mention. "
            "Write the prompt in the same language the user is using."
        ),
    )
    @_instrument_tool(ToolName.CREATE_SESSION, action="creating session", settings=settings)
    async def create_devin_session(
        ctx: Context,
        prompt: str,
        machine_snapshot_id: Optional[str] = None,
        max_acu: Optional[Union[int, float]] = None,
        idempotent: bool = False,
        slack_channel: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Start a Devin session for ``prompt``.

        Parameters
        ----------
        prompt : str
            Task description for Devin.
        machine_snapshot_id : str, optional
            Machine snapshot to boot the session from.
        max_acu : int, optional
            Compute limit override.
        idempotent : bool
            Reuse a matching existing session instead of creating a new one.
        slack_channel : str, optional
            Channel id or name to announce the task in; defaults to SLACK_DEFAULT_CHANNEL.

        Returns
        -------
        dict
            { session_id, original_session_id, url, organization, is_new_session,
              slack_message_ts?, slack_channel? }
        """
        _require("prompt", prompt)
        channel = None
        if bridge is not None:
            channel = slack_channel or bridge.default_channel
            _require("slack_channel", channel)
        await _ctx_info_safe(ctx, "Creating Devin session.")
        session = _as_mapping(
            await devin_client.create_session(
                prompt,
                idempotent=bool(idempotent),
                machine_snapshot_id=machine_snapshot_id,
                max_acu=max_acu,
            )
        )
        raw_id = str(session.get("session_id") or "")
        payload: dict[str, Any] = {
            "session_id": normalize_session_id(raw_id),
            "original_session_id": raw_id,
            "url": session.get("url"),
            "organization": settings.devin.org_name,
            "is_new_session": session.get("is_new_session"),
        }
        if bridge is not None and channel:
            text = await bridge.mention_text(prompt)
            payload["slack_message_ts"] = await bridge.send_message(channel, text)
            payload["slack_channel"] = channel
        return payload

    @mcp.tool(
        name=ToolName.GET_SESSION.value,
        description="Get information about an existing Devin session and optionally fetch its message history.",
    )
    @_instrument_tool(ToolName.GET_SESSION, action="getting session", settings=settings, session_arg="session_id")
    async def get_devin_session(
        ctx: Context,
        session_id: str,
        fetch_slack_info: bool = False,
    ) -> dict[str, Any]:
        """Return the session record; ``fetch_slack_info`` merges in ``messages`` when available."""
        _require("session_id", session_id)
        data = _as_mapping(await devin_client.get_session(session_id))
        if bridge is not None and fetch_slack_info:
            history = await _session_history(session_id)
            if history is not None and "messages" in history:
                data["messages"] = history["messages"]
        return with_session_ids(data)

    @mcp.tool(
        name=ToolName.SEND_MESSAGE.value,
        description="Send a message to an existing Devin session and optionally to the associated Slack thread.",
    )
    @_instrument_tool(ToolName.SEND_MESSAGE, action="sending message", settings=settings, session_arg="session_id")
    async def send_message_to_session(
        ctx: Context,
        session_id: str,
        message: str,
        slack_channel: Optional[str] = None,
        slack_thread_ts: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Deliver ``message`` to a Devin session.

        Any 2xx answer from Devin counts as delivered, including an empty body.
        When both ``slack_channel`` and ``slack_thread_ts`` are given the same
        text is relayed into that thread, but only after Devin accepted it.
        """
        _require("session_id", session_id)
        _require("message", message)
        response_data = await devin_client.send_message(session_id, message)
        slack_response: Optional[dict[str, Any]] = None
        if bridge is not None and slack_channel and slack_thread_ts:
            message_ts = await bridge.send_message(slack_channel, message, slack_thread_ts)
            slack_response = {
                "channel": slack_channel,
                "thread_ts": slack_thread_ts,
                "message_ts": message_ts,
            }
        await _ctx_info_safe(ctx, f"Message delivered to session {normalize_session_id(session_id)}.")
        return {
            "status": "Message sent successfully",
            "success": True,
            "response_data": response_data or {},
            "slack_response": slack_response,
        }

    @mcp.tool(name=ToolName.LIST_SESSIONS.value, description="List all Devin sessions")
    @_instrument_tool(ToolName.LIST_SESSIONS, action="listing sessions", settings=settings)
    async def list_devin_sessions(
        ctx: Context,
        limit: Optional[Union[int, float]] = None,
        offset: Optional[Union[int, float]] = None,
    ) -> dict[str, Any]:
        data = _as_mapping(await devin_client.list_sessions(limit=limit, offset=offset))
        sessions = data.get("sessions")
        if bridge is not None and isinstance(sessions, list):
            data["sessions"] = [with_session_ids(item) if isinstance(item, Mapping) else item for item in sessions]
        return data

    @mcp.tool(
        name=ToolName.ORGANIZATION_INFO.value,
        description="Get information about the current Devin organization",
    )
    @_instrument_tool(ToolName.ORGANIZATION_INFO, action="getting organization info", settings=settings)
    async def get_organization_info(ctx: Context) -> dict[str, Any]:
        return {
            "name": settings.devin.org_name,
            "base_url": settings.devin.base_url,
        }

    return mcp
