"""Utilities for creating standardized httpx AsyncClient instances."""

from typing import Any, Protocol

import httpx

__all__ = ["DEFAULT_HEADERS", "McpHttpClientFactory", "create_mcp_http_client"]

# Headers every request to the server carries.
DEFAULT_HEADERS: dict[str, str] = {
    "Accept-Language": "*",
    "User-Agent": "node",
}


class McpHttpClientFactory(Protocol):
    def __call__(self, **kwargs: Any) -> httpx.AsyncClient: ...


def create_mcp_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create a standardized httpx AsyncClient with MCP defaults.

    This function provides common defaults used by the SSE transport:
    - follow_redirects=True
    - Default timeout of 30 seconds if not specified
    - `Accept-Language: *` and `User-Agent: node` headers, merged with any
      headers passed in

    Args:
        Any keyword argument supported by httpx.AsyncClient (e.g. headers,
        timeout, auth, verify, transport).

    Returns:
        Configured httpx.AsyncClient instance with MCP defaults.

    Note:
        The returned AsyncClient must be used as a context manager to ensure
        proper cleanup of connections.

    Examples:
        async with create_mcp_http_client() as client:
            response = await client.get("http://localhost:3000/sse")

        # In tests, route requests to an in-process handler
        async with create_mcp_http_client(transport=httpx.MockTransport(handler)) as client:
            ...
    """
    headers = {**DEFAULT_HEADERS, **(kwargs.pop("headers", None) or {})}
    default_kwargs: dict[str, Any] = {
        "follow_redirects": True,
        "timeout": httpx.Timeout(30.0),
    }
    default_kwargs.update(kwargs)
    return httpx.AsyncClient(headers=headers, **default_kwargs)
