"""MCP protocol binding: exposes the tool dispatcher through the SDK's low-level server."""

from typing import Any, Dict, List

import mcp.types as types
from mcp.server.lowlevel import Server

from .tools import ToolDispatcher

SERVER_NAME = "joke-server"
SERVER_VERSION = "1.0.0"


def build_mcp_server(dispatcher: ToolDispatcher) -> Server:
    """Create the MCP server with tools/list and tools/call bound to ``dispatcher``.

    Exceptions raised by the dispatcher are turned into tool-call error results
    by the SDK; they never end the session.
    """
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [descriptor.to_mcp_tool() for descriptor in dispatcher.list_tools()]

    @server.call_tool()
    async def call_tool(
        name: str, arguments: Dict[str, Any] | None
    ) -> List[types.TextContent]:
        return await dispatcher.call_tool(name, arguments)

    return server
