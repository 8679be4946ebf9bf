"""Async client for the Devin coding-agent REST API.

Thin wrapper over httpx: one ``AsyncClient`` per call scope, bearer auth,
``raise_for_status`` on every response. Callers see ``httpx.HTTPStatusError``
for non-2xx answers and other ``httpx.HTTPError`` subclasses for transport
failures. Nothing is retried.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

import httpx
import structlog

from .config import DevinSettings
from .utils import normalize_session_id, response_body

_logger = structlog.get_logger(__name__)


class DevinClient:
    def __init__(self, settings: DevinSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        # httpx needs a trailing slash on base_url so relative paths append instead of replacing
        async with httpx.AsyncClient(
            base_url=f"{self._settings.base_url}/",
            headers=self._headers(),
            timeout=httpx.Timeout(self._settings.timeout_seconds),
            transport=self._transport,
        ) as client:
            yield client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)
        _logger.debug("devin.request", method=method, path=path, status=response.status_code)
        response.raise_for_status()
        return response

    async def create_session(
        self,
        prompt: str,
        *,
        idempotent: bool = False,
        machine_snapshot_id: Optional[str] = None,
        max_acu: Optional[Union[int, float]] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"prompt": prompt, "idempotent": idempotent}
        if machine_snapshot_id:
            body["machine_snapshot_id"] = machine_snapshot_id
        if max_acu:
            body["max_acu"] = max_acu
        response = await self._request("POST", "session", json=body)
        return response_body(response)

    async def get_session(self, session_id: str) -> Any:
        response = await self._request("GET", f"session/{normalize_session_id(session_id)}")
        return response_body(response)

    async def get_session_messages(self, session_id: str) -> Any:
        response = await self._request("GET", f"session/{normalize_session_id(session_id)}/message")
        return response_body(response)

    async def send_message(self, session_id: str, message: str) -> Any:
        """Post a message to a session; any 2xx, including an empty body, is success."""
        response = await self._request(
            "POST",
            f"session/{normalize_session_id(session_id)}/message",
            json={"message": message},
        )
        return response_body(response)

    async def list_sessions(
        self,
        *,
        limit: Optional[Union[int, float]] = None,
        offset: Optional[Union[int, float]] = None,
    ) -> Any:
        params: dict[str, Union[int, float]] = {}
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset
        response = await self._request("GET", "session", params=params)
        return response_body(response)
