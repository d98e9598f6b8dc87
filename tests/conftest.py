from collections.abc import AsyncGenerator

import httpx
import pytest

from mcp_sse_client.client.config import ClientSettings
from mcp_sse_client.client.session import SseClientSession
from mcp_sse_client.shared.exceptions import McpError
from tests.test_helpers import BASE_URL, FakeSseServer


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_server() -> FakeSseServer:
    return FakeSseServer()


@pytest.fixture
async def http_client(fake_server: FakeSseServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=fake_server.transport) as client:
        yield client


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(
        server_url=BASE_URL,
        connect_timeout=2,
        init_timeout=2,
        request_timeout=2,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.1,
    )


@pytest.fixture
def reported_errors() -> list[McpError]:
    return []


@pytest.fixture
async def session(
    settings: ClientSettings,
    http_client: httpx.AsyncClient,
    reported_errors: list[McpError],
) -> AsyncGenerator[SseClientSession, None]:
    async with SseClientSession(settings, http_client=http_client, on_error=reported_errors.append) as session:
        yield session
