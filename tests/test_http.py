from __future__ import annotations

from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from mcp_devin.config import clear_settings_cache, get_settings
from mcp_devin.http import BearerAuthMiddleware, build_http_app


def _rpc(method: str, params: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": "1", "method": method, "params": params}


@pytest.mark.asyncio
async def test_liveness_and_readiness(settings, make_server):
    app = build_http_app(settings, make_server(settings))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        live = await client.get("/health/liveness")
        ready = await client.get("/health/readiness")
    assert live.status_code == 200
    assert live.json() == {"status": "alive"}
    assert ready.status_code == 200
    assert ready.json() == {"status": "ready", "organization": "Acme", "slack_enabled": True}


@pytest.mark.asyncio
async def test_unauthorized_without_token(isolated_env, monkeypatch, make_server):
    monkeypatch.setenv("HTTP_BEARER_TOKEN", "secret-token")
    monkeypatch.setenv("HTTP_ALLOW_LOCALHOST_UNAUTHENTICATED", "false")
    clear_settings_cache()
    settings = get_settings()
    app = build_http_app(settings, make_server(settings))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        denied = await client.post(settings.http.path, json=_rpc("tools/list", {}))
        wrong = await client.post(
            settings.http.path,
            headers={"Authorization": "Bearer nope"},
            json=_rpc("tools/list", {}),
        )
        health = await client.get("/health/liveness")
    assert denied.status_code == 401
    assert wrong.status_code == 401
    assert health.status_code == 200


def test_localhost_detection():
    assert BearerAuthMiddleware._is_localhost("127.0.0.1")
    assert BearerAuthMiddleware._is_localhost("::1")
    assert BearerAuthMiddleware._is_localhost("::ffff:127.0.0.1")
    assert not BearerAuthMiddleware._is_localhost("10.0.0.5")
    assert not BearerAuthMiddleware._is_localhost("")
