"""Slack side of the bridge: channel resolution, posting, bot-identity lookup."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from .config import SlackSettings
from .utils import is_channel_id, strip_channel_marker

logger = logging.getLogger(__name__)

_PAGE_SIZE = 200


class ChannelNotFoundError(LookupError):
    def __init__(self, channel: str):
        super().__init__(f"Channel not found: {channel}")
        self.channel = channel


def _next_cursor(response: Any) -> Optional[str]:
    metadata = response.get("response_metadata") or {}
    cursor = metadata.get("next_cursor") if isinstance(metadata, dict) else None
    return cursor or None


class SlackBridge:
    """Posts Devin traffic into Slack on behalf of the bot token."""

    def __init__(self, settings: SlackSettings, client: Optional[AsyncWebClient] = None) -> None:
        self._settings = settings
        self._client = client if client is not None else AsyncWebClient(token=settings.bot_token)

    @property
    def default_channel(self) -> Optional[str]:
        return self._settings.default_channel

    async def _iter_channels(self) -> AsyncIterator[dict[str, Any]]:
        cursor: Optional[str] = None
        while True:
            kwargs: dict[str, Any] = {"limit": _PAGE_SIZE}
            if cursor:
                kwargs["cursor"] = cursor
            response = await self._client.conversations_list(**kwargs)
            for channel in response.get("channels") or []:
                yield channel
            cursor = _next_cursor(response)
            if not cursor:
                return

    async def _iter_members(self) -> AsyncIterator[dict[str, Any]]:
        cursor: Optional[str] = None
        while True:
            kwargs: dict[str, Any] = {"limit": _PAGE_SIZE}
            if cursor:
                kwargs["cursor"] = cursor
            response = await self._client.users_list(**kwargs)
            for member in response.get("members") or []:
                yield member
            cursor = _next_cursor(response)
            if not cursor:
                return

    async def resolve_channel_id(self, channel_name_or_id: str) -> str:
        """Return the canonical channel id for a name (``#`` optional) or an id.

        Canonical ids are returned as-is without touching the Slack API.
        """
        if is_channel_id(channel_name_or_id):
            return channel_name_or_id

        name = strip_channel_marker(channel_name_or_id)
        try:
            async for channel in self._iter_channels():
                if channel.get("name") == name and channel.get("id"):
                    return str(channel["id"])
        except SlackApiError as exc:
            logger.error(
                "slack.channel_lookup_failed",
                extra={"channel": channel_name_or_id, "error": exc.response.get("error") if exc.response else str(exc)},
            )
            raise
        raise ChannelNotFoundError(channel_name_or_id)

    async def send_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        """Post ``text`` to ``channel`` (optionally in a thread) and return the message ts."""
        channel_id = await self.resolve_channel_id(channel)
        kwargs: dict[str, Any] = {"channel": channel_id, "text": text}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        response = await self._client.chat_postMessage(**kwargs)
        return str(response["ts"])

    def _is_devin_member(self, member: dict[str, Any]) -> bool:
        display = self._settings.devin_user_name
        profile = member.get("profile") or {}
        return (
            member.get("name") == display.lower()
            or member.get("real_name") == display
            or profile.get("display_name") == display
        )

    async def find_bot_user_id(self) -> Optional[str]:
        """Best-effort lookup of the Devin bot user; failures yield None."""
        try:
            async for member in self._iter_members():
                if self._is_devin_member(member) and member.get("id"):
                    return str(member["id"])
        except Exception as exc:
            logger.warning("slack.bot_lookup_failed", extra={"error": str(exc)})
        return None

    async def mention_text(self, prompt: str) -> str:
        user_id = await self.find_bot_user_id()
        if user_id:
            return f"<@{user_id}> {prompt}"
        return f"@{self._settings.devin_user_name} {prompt}"
