"""Minimal client for a locally running ``mcp-devin serve-http`` instance.

It shows the calls an MCP client typically makes:

1. Listing the available tools.
2. Reading the organization the server is bound to.
3. Starting a session and following up with a message.

Uses the same ``fastmcp.Client`` the test-suite relies on.
"""

from __future__ import annotations

import asyncio
import json
import sys

from fastmcp import Client

SERVER_URL = "http://127.0.0.1:8080/mcp/"


async def main(prompt: str) -> None:
    async with Client(SERVER_URL) as client:
        tools = await client.list_tools()
        print("==> Tools:", ", ".join(tool.name for tool in tools))

        org = await client.call_tool("get_organization_info", {})
        print(f"==> Organization: {org.data['name']} ({org.data['base_url']})")

        created = await client.call_tool("create_devin_session", {"prompt": prompt})
        session_id = created.data["session_id"]
        print(f"==> Session {session_id}: {created.data.get('url')}")

        reply = await client.call_tool(
            "send_message_to_session",
            {"session_id": session_id, "message": "Please post a short plan before you start."},
        )
        print(json.dumps(reply.data, indent=2))


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "Summarize the open TODOs in this repository"))
