import json

import anyio
import httpx
import pytest

from mcp_sse_client.client.sse import SseTransport, StreamHandle, decode_message, extract_session_id
from mcp_sse_client.shared.exceptions import ErrorKind, McpError
from mcp_sse_client.types import InboundMessage, JSONRPCNotification, JSONRPCRequest, JSONRPCResultResponse
from tests.test_helpers import BASE_URL, FakeSseServer, wait_until


class Recorder:
    def __init__(self) -> None:
        self.messages: list[InboundMessage] = []
        self.errors: list[McpError] = []

    def on_message(self, handle: StreamHandle, message: InboundMessage) -> None:
        self.messages.append(message)

    def on_error(self, handle: StreamHandle, error: McpError) -> None:
        self.errors.append(error)


@pytest.fixture
def transport(http_client: httpx.AsyncClient) -> SseTransport:
    return SseTransport(BASE_URL, http_client, timeout=2)


@pytest.mark.parametrize(
    ("endpoint", "expected"),
    [
        ("/message?sessionId=abc", "abc"),
        ("http://testserver/message?sessionId=abc&x=1", "abc"),
        ("message?other=1", None),
    ],
)
def test_extract_session_id(endpoint: str, expected: str | None) -> None:
    assert extract_session_id(endpoint, BASE_URL) == expected


def test_decode_message_variants() -> None:
    assert isinstance(decode_message('{"jsonrpc": "2.0", "id": 1, "result": {}}'), JSONRPCResultResponse)
    notification = decode_message('{"jsonrpc": "2.0", "method": "notifications/tools/list_changed"}')
    assert isinstance(notification, JSONRPCNotification)


@pytest.mark.parametrize("data", ["not json", '{"jsonrpc": "2.0", "id": 1}', "[]"])
def test_decode_message_drops_malformed(data: str) -> None:
    assert decode_message(data) is None


@pytest.mark.anyio
async def test_open_waits_for_endpoint(transport: SseTransport, fake_server: FakeSseServer) -> None:
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        assert handle.state == "connecting"

        assert await handle.wait_for_session_id(2) == "session-1"
        assert handle.is_open
        handle.close()

    request = fake_server.sse_requests[0]
    assert request.url == "http://testserver/sse"
    assert request.headers["Accept"] == "text/event-stream"
    assert request.headers["Accept-Language"] == "*"
    assert request.headers["User-Agent"] == "node"
    assert handle.session_id is None
    assert handle.state == "closed"
    assert recorder.errors == []


@pytest.mark.anyio
async def test_post_sends_request_to_message_endpoint(transport: SseTransport, fake_server: FakeSseServer) -> None:
    text = await transport.post("abc", JSONRPCRequest(id=7, method="tools/list"))

    assert text == "Accepted"
    request = fake_server.post_requests[0]
    assert request.url.path == "/message"
    assert request.url.params["sessionId"] == "abc"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Accept"] == "*/*"
    assert request.headers["User-Agent"] == "node"
    assert json.loads(request.content) == {"jsonrpc": "2.0", "id": 7, "method": "tools/list"}


@pytest.mark.anyio
async def test_messages_are_delivered_and_malformed_ones_skipped(
    transport: SseTransport, fake_server: FakeSseServer
) -> None:
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        await handle.wait_for_session_id(2)

        fake_server.connection.send_event("message", "{broken")
        fake_server.connection.send_event("ping", "")
        fake_server.connection.send_message({"jsonrpc": "2.0", "id": 3, "result": {"ok": True}})
        await wait_until(lambda: len(recorder.messages) == 1)
        handle.close()

    message = recorder.messages[0]
    assert isinstance(message, JSONRPCResultResponse)
    assert message.id == 3
    assert recorder.errors == []


@pytest.mark.anyio
async def test_endpoint_without_session_id_is_ignored(transport: SseTransport, fake_server: FakeSseServer) -> None:
    fake_server.send_endpoint = False
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        await wait_until(lambda: handle.is_open)
        fake_server.connection.send_event("endpoint", "/message")
        fake_server.connection.send_event("endpoint", "/message?sessionId=late")
        fake_server.connection.send_event("endpoint", "/message?sessionId=again")

        assert await handle.wait_for_session_id(2) == "late"
        await anyio.sleep(0.05)
        assert handle.session_id == "late"
        handle.close()


@pytest.mark.anyio
async def test_missing_endpoint_times_out(transport: SseTransport, fake_server: FakeSseServer) -> None:
    fake_server.send_endpoint = False
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        with pytest.raises(McpError) as exc_info:
            await handle.wait_for_session_id(0.1)
        handle.close()

    assert exc_info.value.kind is ErrorKind.TIMEOUT
    assert exc_info.value.message == "Connection timeout after 0.1 seconds"


@pytest.mark.anyio
async def test_server_closing_stream_reports_connection_error(
    transport: SseTransport, fake_server: FakeSseServer
) -> None:
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        await handle.wait_for_session_id(2)
        fake_server.disconnect()
        await wait_until(lambda: len(recorder.errors) == 1)

    error = recorder.errors[0]
    assert error.kind is ErrorKind.CONNECTION
    assert error.message == "SSE stream closed by server"
    assert handle.closed
    assert handle.session_id is None


@pytest.mark.anyio
async def test_refused_stream_fails_the_endpoint_wait(transport: SseTransport, fake_server: FakeSseServer) -> None:
    fake_server.refuse_connections = True
    recorder = Recorder()

    async with anyio.create_task_group() as tg:
        handle = transport.open(tg, recorder.on_message, recorder.on_error)
        with pytest.raises(McpError) as exc_info:
            await handle.wait_for_session_id(2)

    assert exc_info.value.kind is ErrorKind.CONNECTION
    assert exc_info.value.message.startswith("SSE connection error:")
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
    assert recorder.errors == [exc_info.value]
