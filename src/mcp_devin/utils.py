"""Utility helpers for the Devin MCP service."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Final

import httpx

SESSION_ID_PREFIX: Final[str] = "devin-"

# Slack public channel ids look like "C0123ABCD"
CHANNEL_ID_RE: Final[re.Pattern[str]] = re.compile(r"^C[A-Z0-9]{8,}$")


def normalize_session_id(session_id: str) -> str:
    """Strip a single leading ``devin-`` prefix from a session id."""
    if session_id.startswith(SESSION_ID_PREFIX):
        return session_id[len(SESSION_ID_PREFIX):]
    return session_id


def with_session_ids(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy carrying the normalized id and the raw one side by side.

    Payloads without a ``session_id`` are copied unchanged.
    """
    data = dict(payload)
    raw = data.get("session_id")
    if raw:
        data["original_session_id"] = raw
        data["session_id"] = normalize_session_id(str(raw))
    return data


def is_channel_id(value: str) -> bool:
    return bool(CHANNEL_ID_RE.match(value))


def strip_channel_marker(name: str) -> str:
    """Drop one leading ``#`` from a human channel name."""
    return name[1:] if name.startswith("#") else name


def response_body(response: httpx.Response) -> Any:
    """Decode a response body: JSON when possible, ``{}`` when empty, text otherwise."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text
