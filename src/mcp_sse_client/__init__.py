"""A client for Model Context Protocol servers that speak the HTTP+SSE transport.

## Example

```python
from mcp_sse_client import ClientProvider, get_mcp_tools

async with ClientProvider() as provider:
    tools = await get_mcp_tools(provider)
    client = await provider.get_client()
    result = await client.call_tool("echo", {"message": "hi"})
```

The server URL comes from `MCP_SERVER_URL` (environment or `.env`).
"""

from .client.config import ClientSettings, load_settings
from .client.provider import ClientProvider, get_mcp_tools
from .client.reconnect import ReconnectPolicy
from .client.session import SseClientSession
from .shared.exceptions import ErrorKind, McpError, classify_error
from .types import (
    CallToolResult,
    ErrorData,
    Implementation,
    InitializeResult,
    JSONRPCRequest,
    ListToolsResult,
    Tool,
    ToolInputSchema,
)

__all__ = [
    "CallToolResult",
    "ClientProvider",
    "ClientSettings",
    "ErrorData",
    "ErrorKind",
    "Implementation",
    "InitializeResult",
    "JSONRPCRequest",
    "ListToolsResult",
    "McpError",
    "ReconnectPolicy",
    "SseClientSession",
    "Tool",
    "ToolInputSchema",
    "classify_error",
    "get_mcp_tools",
    "load_settings",
]
