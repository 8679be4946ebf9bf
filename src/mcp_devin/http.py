"""HTTP transport helpers wrapping FastMCP with FastAPI."""

from __future__ import annotations

import contextlib
import hmac
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, Optional, TextIO, cast

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from .app import build_mcp_server
from .config import ConfigurationError, Settings, validate_settings

__all__ = ["BearerAuthMiddleware", "build_http_app", "configure_logging"]

_LOGGING_CONFIGURED = False


def configure_logging(settings: Settings, *, stream: Optional[TextIO] = None, force: bool = False) -> None:
    """Initialize structlog and stdlib logging formatting.

    Everything goes to stderr by default: stdout belongs to the stdio transport.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED and not force:
        return
    target = stream or sys.stderr
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if settings.log_json_enabled:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(key_order=["event", "path", "status"]))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=target),
        cache_logger_on_first_use=True,
    )

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=target,
    )

    # Suppress verbose MCP library logging for stateless HTTP sessions
    logging.getLogger("mcp.server.streamable_http").setLevel(logging.WARNING)
    logging.getLogger("mcp.server.lowlevel.server").setLevel(logging.WARNING)
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _LOGGING_CONFIGURED = True


class BearerAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: FastAPI, token: str, allow_localhost: bool = False) -> None:
        super().__init__(app)
        self._token = token
        self._allow_localhost = allow_localhost

    @staticmethod
    def _is_localhost(host: str) -> bool:
        """Check if host is a localhost address, including IPv4-mapped IPv6."""
        if not host:
            return False
        if host in {"127.0.0.1", "::1", "localhost"}:
            return True
        return bool(host.lower().startswith("::ffff:") and host[7:] == "127.0.0.1")

    @staticmethod
    def _has_forwarded_headers(request: Request) -> bool:
        """Detect proxy-forwarded headers to avoid trusting localhost behind proxies."""
        headers = request.headers
        return any(
            name in headers
            for name in ("x-forwarded-for", "x-forwarded-proto", "x-forwarded-host", "forwarded")
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.method == "OPTIONS":
            return await call_next(request)
        if request.url.path.startswith("/health/"):
            return await call_next(request)
        client_host = request.client.host if request.client else ""
        if self._allow_localhost and self._is_localhost(client_host) and not self._has_forwarded_headers(request):
            return await call_next(request)
        auth_header = request.headers.get("Authorization", "")
        # Constant-time comparison
        if not hmac.compare_digest(auth_header, f"Bearer {self._token}"):
            return JSONResponse({"detail": "Unauthorized"}, status_code=status.HTTP_401_UNAUTHORIZED)
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.perf_counter()
        response = await call_next(request)
        structlog.get_logger("http").info(
            "request",
            method=request.method,
            path=request.url.path,
            status=getattr(response, "status_code", 0),
            duration_ms=int((time.perf_counter() - start) * 1000),
            client_ip=request.client.host if request.client else "-",
        )
        return response


def _mount_path(settings: Settings) -> str:
    mount_base = settings.http.path or "/mcp"
    if not mount_base.startswith("/"):
        mount_base = "/" + mount_base
    return mount_base.rstrip("/") or "/"


def build_http_app(settings: Settings, server: Optional[FastMCP] = None) -> FastAPI:
    configure_logging(settings)
    if server is None:
        server = build_mcp_server(settings)

    mcp_http_app = server.http_app(path="/", stateless_http=True, json_response=True)

    @asynccontextmanager
    async def lifespan_context(app: FastAPI):
        # The mounted MCP app owns a task group that must be started by its lifespan
        async with mcp_http_app.lifespan(mcp_http_app):
            yield

    fastapi_app = FastAPI(lifespan=lifespan_context)
    app_any = cast(Any, fastapi_app)

    if settings.http.request_log_enabled:
        app_any.add_middleware(RequestLoggingMiddleware)
    if settings.http.bearer_token:
        app_any.add_middleware(
            BearerAuthMiddleware,
            token=settings.http.bearer_token,
            allow_localhost=settings.http.allow_localhost_unauthenticated,
        )

    @fastapi_app.get("/health/liveness")
    async def liveness() -> JSONResponse:
        return JSONResponse({"status": "alive"})

    @fastapi_app.get("/health/readiness")
    async def readiness() -> JSONResponse:
        try:
            validate_settings(settings)
        except ConfigurationError as exc:
            with contextlib.suppress(Exception):
                structlog.get_logger("health").error("readiness_error", error=str(exc))
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return JSONResponse(
            {
                "status": "ready",
                "organization": settings.devin.org_name,
                "slack_enabled": settings.slack.enabled,
            }
        )

    fastapi_app.mount(_mount_path(settings), mcp_http_app)
    return fastapi_app
