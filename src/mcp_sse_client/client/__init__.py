"""MCP client module."""

from mcp_sse_client.client.provider import ClientProvider, get_mcp_tools
from mcp_sse_client.client.session import SseClientSession

__all__ = ["ClientProvider", "SseClientSession", "get_mcp_tools"]
