"""
Client transport for the MCP HTTP+SSE protocol.

The server pushes everything on one long-lived `GET {base}/sse` stream: first
an `endpoint` event carrying the session id, then JSON-RPC messages. Requests
travel the other way as short `POST {base}/message?sessionId=...` calls which
the server acknowledges with the literal text `Accepted`.
"""

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse

import anyio
import httpx
from anyio.abc import TaskGroup
from httpx_sse import aconnect_sse
from pydantic import ValidationError

from mcp_sse_client.shared.exceptions import ErrorKind, McpError, classify_error
from mcp_sse_client.types import InboundMessage, InboundMessageAdapter, JSONRPCRequest

logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Accept": "text/event-stream",
    "Accept-Language": "*",
    "User-Agent": "node",
}

POST_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "*/*",
    "Accept-Language": "*",
    "User-Agent": "node",
}

MessageHandler = Callable[["StreamHandle", InboundMessage], None]
StreamErrorHandler = Callable[["StreamHandle", McpError], None]


def extract_session_id(endpoint: str, base_url: str) -> str | None:
    """Resolve an `endpoint` event payload against the base URL and read its sessionId."""
    endpoint_url = urljoin(base_url, endpoint)
    values = parse_qs(urlparse(endpoint_url).query).get("sessionId")
    return values[0] if values else None


def decode_message(data: str) -> InboundMessage | None:
    """Decode one `message` event.

    A malformed message is logged and dropped; it must never break the stream.
    """
    try:
        return InboundMessageAdapter.validate_json(data)
    except ValidationError as exc:
        error = classify_error(exc, "SSE message")
        logger.warning(f"Failed to parse message ({error.kind.value} {error.code}): {data!r}")
        return None


class StreamHandle:
    """One server-push connection and the session id it carries.

    The session id is only valid while the handle is open; closing the handle
    discards it and wakes anyone waiting for the endpoint event.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self.session_id: str | None = None
        self.error: McpError | None = None
        self._opened = False
        self._closed = False
        self._endpoint_received = anyio.Event()
        self._cancel_scope = anyio.CancelScope()

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> str:
        if self._closed:
            return "closed"
        return "open" if self._opened else "connecting"

    async def wait_for_session_id(self, timeout: float) -> str:
        """Wait for the endpoint event and return the session id it carried.

        Raises:
            McpError: `timeout` if no endpoint event arrives in time, or the
                `connection` error that closed the stream first.
        """
        with anyio.move_on_after(timeout):
            await self._endpoint_received.wait()

        if self.session_id is not None:
            return self.session_id
        if self.error is not None:
            raise self.error
        if self._closed:
            raise McpError.create(ErrorKind.CONNECTION, "SSE stream closed before endpoint event", source="SSE stream")
        raise McpError.create(
            ErrorKind.TIMEOUT,
            f"Connection timeout after {timeout:g} seconds",
            source="SSE endpoint",
        )

    def close(self, reason: McpError | None = None) -> None:
        """Close the stream. Safe to call more than once.

        `reason`, if given, is the error anyone still waiting for the endpoint
        fails with.
        """
        if reason is not None and self.error is None:
            self.error = reason
        self._closed = True
        self.session_id = None
        self._cancel_scope.cancel()
        self._endpoint_received.set()

    def _set_session_id(self, session_id: str) -> None:
        self.session_id = session_id
        self._endpoint_received.set()


class SseTransport:
    """Opens stream handles and posts requests for one server."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        timeout: float = 30,
        sse_read_timeout: float = 60 * 5,
    ) -> None:
        """
        Args:
            base_url: Server base URL; `/sse` and `/message` are appended to it
            http_client: Client used for both the stream and the POSTs
            timeout: HTTP timeout in seconds for connecting and posting
            sse_read_timeout: How long to wait for a new event before the
                stream is considered dead
        """
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._timeout = timeout
        self._sse_read_timeout = sse_read_timeout

    @property
    def sse_url(self) -> str:
        return f"{self.base_url}/sse"

    @property
    def message_url(self) -> str:
        return f"{self.base_url}/message"

    def open(
        self,
        task_group: TaskGroup,
        on_message: MessageHandler,
        on_error: StreamErrorHandler,
    ) -> StreamHandle:
        """Start a new stream in `task_group` and return its handle.

        The handle starts out connecting. Failure to establish the stream, or
        the stream ending later, is reported to `on_error` as a `connection`
        error unless the handle was closed deliberately.
        """
        handle = StreamHandle(self.sse_url)
        task_group.start_soon(self._read_stream, handle, on_message, on_error)
        return handle

    async def post(self, session_id: str, request: JSONRPCRequest) -> str:
        """POST a request and return the server's acknowledgement text."""
        body: dict[str, Any] = request.model_dump(by_alias=True, mode="json")
        if body.get("params") is None:
            body.pop("params", None)

        logger.debug(f"Sending message {request.id}: {body}")
        response = await self._client.post(
            self.message_url,
            params={"sessionId": session_id},
            json=body,
            headers=POST_HEADERS,
            timeout=self._timeout,
        )
        logger.debug(f"HTTP response for message {request.id}: {response.status_code} {response.text!r}")
        return response.text

    async def _read_stream(
        self,
        handle: StreamHandle,
        on_message: MessageHandler,
        on_error: StreamErrorHandler,
    ) -> None:
        error: McpError | None = None
        with handle._cancel_scope:  # type: ignore[reportPrivateUsage]
            try:
                logger.info(f"Connecting to SSE endpoint: {handle.url}")
                async with aconnect_sse(
                    self._client,
                    "GET",
                    handle.url,
                    headers=SSE_HEADERS,
                    timeout=httpx.Timeout(self._timeout, read=self._sse_read_timeout),
                ) as event_source:
                    event_source.response.raise_for_status()
                    handle._opened = True  # type: ignore[reportPrivateUsage]
                    logger.debug("SSE connection established")

                    async for sse in event_source.aiter_sse():
                        logger.debug(f"Received SSE event: {sse.event} {sse.data!r}")
                        match sse.event:
                            case "endpoint":
                                self._handle_endpoint(handle, sse.data)
                            case "message":
                                message = decode_message(sse.data)
                                if message is not None:
                                    on_message(handle, message)
                            case _:
                                logger.warning(f"Unknown SSE event: {sse.event}")

                error = McpError.create(ErrorKind.CONNECTION, "SSE stream closed by server", source="SSE stream")
            except Exception as exc:
                error = McpError.create(ErrorKind.CONNECTION, f"SSE connection error: {exc}", source="SSE stream")
                error.__cause__ = exc

        if handle.closed or error is None:
            logger.debug(f"SSE stream {handle.url} closed")
            return

        logger.debug(f"SSE stream failed: {error}")
        handle.close(error)
        on_error(handle, error)

    def _handle_endpoint(self, handle: StreamHandle, data: str) -> None:
        if handle.session_id is not None:
            logger.debug(f"Ignoring repeated endpoint event: {data}")
            return

        session_id = extract_session_id(data, self.base_url)
        if session_id is None:
            logger.warning(f"Endpoint event without sessionId: {data}")
            return

        logger.info(f"Received endpoint URL: {urljoin(self.base_url, data)}")
        handle._set_session_id(session_id)  # type: ignore[reportPrivateUsage]
