import logging
import weakref
from collections.abc import Callable
from contextlib import AsyncExitStack
from types import TracebackType
from typing import Any

import anyio
import httpx
from anyio.abc import TaskGroup
from pydantic import ValidationError
from typing_extensions import Self

from mcp_sse_client.client.config import ClientSettings
from mcp_sse_client.client.reconnect import ReconnectPolicy
from mcp_sse_client.client.sse import SseTransport, StreamHandle
from mcp_sse_client.shared._exception_utils import exit_task_group
from mcp_sse_client.shared._httpx_utils import McpHttpClientFactory, create_mcp_http_client
from mcp_sse_client.shared.exceptions import ErrorKind, McpError, classify_error
from mcp_sse_client.shared.pending import PendingRequestTable
from mcp_sse_client.types import (
    ACCEPTED,
    CallToolResult,
    InboundMessage,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCNotification,
    JSONRPCRequest,
    ListToolsResult,
    Tool,
)

logger = logging.getLogger(__name__)

ErrorObserver = Callable[[McpError], None]


class SseClientSession:
    """
    A client session with an MCP server over the HTTP+SSE transport.

    The session negotiates a connection on first use (stream, endpoint event,
    `initialize`), correlates requests with the responses pushed on the stream,
    and reconnects with capped exponential backoff when the stream fails.

    This class is an async context manager; the stream reader and the
    reconnection timer run in a task group owned by the session.

    Example:
        async with SseClientSession(load_settings()) as session:
            tools = await session.list_tools()
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        on_error: ErrorObserver | None = None,
        reconnect_policy: ReconnectPolicy | None = None,
        httpx_client_factory: McpHttpClientFactory = create_mcp_http_client,
    ) -> None:
        """
        Args:
            settings: Server URL, client identity and deadlines
            http_client: Client to use for all HTTP traffic. When omitted the
                session creates one and closes it on exit.
            on_error: Called once with every classified error the session
                reports. Exceptions it raises are logged and ignored.
            reconnect_policy: Overrides the policy derived from `settings`
            httpx_client_factory: Builds the HTTP client when `http_client` is
                not given
        """
        self._settings = settings
        self._http_client = http_client
        self._httpx_client_factory = httpx_client_factory
        self._on_error = on_error
        self._policy = reconnect_policy or settings.reconnect_policy

        self._transport: SseTransport | None = None
        self._task_group: TaskGroup | None = None
        self._exit_stack = AsyncExitStack()

        self._stream: StreamHandle | None = None
        self._ready = False
        self._connected_at: float | None = None
        self._server_info: InitializeResult | None = None
        self._pending = PendingRequestTable()
        self._attempt_count = 0
        self._closing = False
        self._connect_lock = anyio.Lock()
        self._reconnect_scope: anyio.CancelScope | None = None
        self._handled_errors: weakref.WeakSet[McpError] = weakref.WeakSet()

        logger.debug(
            f"Creating new client instance for {settings.server_url} "
            f"as {settings.client_name}/{settings.client_version}"
        )

    async def __aenter__(self) -> Self:
        http_client = self._http_client
        if http_client is None:
            http_client = await self._exit_stack.enter_async_context(self._httpx_client_factory())
        self._transport = SseTransport(
            self._settings.server_url,
            http_client,
            timeout=self._settings.connect_timeout,
            sse_read_timeout=self._settings.sse_read_timeout,
        )
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        await self.close()
        task_group = self._task_group
        self._task_group = None
        try:
            if task_group is not None:
                # The stream reader never finishes on its own, so exiting
                # must cancel it rather than wait for it.
                task_group.cancel_scope.cancel()
                return await exit_task_group(task_group, exc_type, exc_val, exc_tb)
            return None
        finally:
            await self._exit_stack.aclose()

    @property
    def session_id(self) -> str | None:
        return self._stream.session_id if self._stream is not None else None

    @property
    def attempt_count(self) -> int:
        """Number of connection negotiations started by this session."""
        return self._attempt_count

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_connected(self) -> bool:
        return self._ready and self._stream is not None and self._stream.is_open

    @property
    def server_info(self) -> InitializeResult | None:
        return self._server_info

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_scope is not None

    async def ensure_connection(self) -> None:
        """Connect and initialize unless a ready session already exists."""
        self._require_transport()
        try:
            await self._ensure_connection()
        except Exception as exc:
            error = self._handle_error(exc, "ensure_connection")
            if error is exc:
                raise
            raise error from exc

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a request and wait for its result.

        Connects first if needed. Raises a classified `McpError` on any failure.
        """
        logger.debug(f"Sending {method}: {params}")
        self._require_transport()
        try:
            await self._ensure_connection()
            return await self._send_request(
                method,
                params,
                session_id=self._require_session_id(),
                timeout=self._settings.request_timeout,
            )
        except Exception as exc:
            error = self._handle_error(exc, f"send_request({method})")
            if error is exc:
                raise
            raise error from exc

    async def list_tools(self) -> list[Tool]:
        """Fetch the server's tool catalog."""
        logger.debug("Fetching tools list")
        result = await self.call("tools/list")
        try:
            tools = ListToolsResult.model_validate(result).tools
        except ValidationError as exc:
            raise self._handle_error(exc, "list_tools") from exc
        logger.debug(f"Received tools: {[tool.name for tool in tools]}")
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        """Invoke a tool by name."""
        result = await self.call("tools/call", {"name": name, "arguments": arguments or {}})
        try:
            return CallToolResult.model_validate(result)
        except ValidationError as exc:
            raise self._handle_error(exc, f"call_tool({name})") from exc

    def report_error(self, exc: BaseException, context: str) -> McpError:
        """Classify and report a failure observed outside the session.

        The error goes through the same logging, observer and recovery path as
        the session's own failures, and is returned for the caller to raise.
        """
        return self._handle_error(exc, context)

    async def close(self) -> None:
        """Shut the session down deliberately.

        Cancels any scheduled reconnection, closes the stream and fails every
        pending request. The session can still be used afterwards; the next
        call connects on demand.
        """
        self._closing = True
        try:
            self._cancel_reconnect()
            if self._stream is not None:
                logger.debug(
                    f"Closing connection (session {self.session_id}, {len(self._pending)} pending requests)"
                )
            error = McpError.create(ErrorKind.CONNECTION, "Connection closed", source="close")
            # Shutdown is not a failure: callers still see the error but it is
            # neither reported nor recovered from.
            self._handled_errors.add(error)
            self._teardown(error)
        finally:
            self._closing = False

    async def _ensure_connection(self) -> None:
        if self.is_connected:
            logger.debug("Reusing existing connection")
            return

        async with self._connect_lock:
            # Another caller may have finished the handshake while we waited
            if self.is_connected:
                logger.debug("Reusing connection negotiated by a concurrent caller")
                return
            await self._negotiate()

    async def _negotiate(self) -> None:
        transport = self._require_transport()
        task_group = self._require_task_group()

        if self._stream is not None:
            logger.debug("Closing existing connection")
            self._teardown(McpError.create(ErrorKind.CONNECTION, "Connection reset", source="connection"))

        self._attempt_count += 1
        logger.debug(f"Attempt {self._attempt_count} to connect to {self._settings.server_url}")

        stream = transport.open(task_group, self._on_stream_message, self._on_stream_error)
        self._stream = stream
        try:
            session_id = await stream.wait_for_session_id(self._settings.connect_timeout)
            logger.debug(f"Got session ID: {session_id}")
            self._server_info = await self._initialize(session_id)
        except BaseException:
            stream.close()
            if self._stream is stream:
                self._stream = None
            raise

        self._ready = True
        self._connected_at = anyio.current_time()
        logger.info(f"Connected to MCP server {self._settings.server_url} (session {session_id})")

    async def _initialize(self, session_id: str) -> InitializeResult:
        params = InitializeRequestParams(clientInfo=self._settings.client_info)
        timeout = self._settings.init_timeout
        try:
            with anyio.fail_after(timeout):
                result = await self._send_request(
                    "initialize",
                    params.model_dump(by_alias=True, mode="json"),
                    session_id=session_id,
                    timeout=None,
                )
                if not result.get("protocolVersion"):
                    # Neither a result we understand nor an error: keep waiting
                    # until the initialization deadline fails the handshake.
                    logger.warning(f"Initialize response without protocolVersion: {result}")
                    await anyio.sleep_forever()
        except TimeoutError:
            raise McpError.create(
                ErrorKind.TIMEOUT,
                f"Initialization response timeout after {timeout:g} seconds",
                source="initialize",
            ) from None

        logger.debug(f"Initialization succeeded: {result}")
        return InitializeResult.model_validate(result)

    async def _send_request(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        session_id: str,
        timeout: float | None,
    ) -> dict[str, Any]:
        # Register before sending so a fast response always finds its entry
        pending = self._pending.new_request(method)
        request = JSONRPCRequest(id=pending.id, method=method, params=params)
        try:
            text = await self._require_transport().post(session_id, request)
            if text != ACCEPTED:
                raise McpError.create(
                    ErrorKind.PROTOCOL,
                    f"Unexpected response: {text}",
                    source=f"send_request({method})",
                )
            return await pending.wait(timeout)
        finally:
            self._pending.remove(pending.id)
            pending.close()

    def _on_stream_message(self, stream: StreamHandle, message: InboundMessage) -> None:
        if stream is not self._stream:
            logger.debug("Dropping message from a stale stream")
            return

        if isinstance(message, JSONRPCNotification):
            logger.debug(f"Received notification: {message.method}")
            return

        if self._pending.resolve(message):
            logger.debug(f"Handled message {message.id}, {len(self._pending)} handlers remaining")
        else:
            logger.debug(f"No handler found for message {message.id}")

    def _on_stream_error(self, stream: StreamHandle, error: McpError) -> None:
        if stream is not self._stream:
            return

        drained = self._pending.drain(error)
        logger.debug(f"Rejected {drained} pending requests due to stream failure")
        if self._ready:
            self._handle_error(error, "SSE")
        # Otherwise a negotiation is waiting on this stream and raises the error itself

    def _handle_error(self, exc: BaseException, context: str) -> McpError:
        """Classify, log and report an error, recovering from connection failures.

        Each error is handled once; handling it again, or a copy of it made
        for another waiter, returns it unchanged.
        """
        error = classify_error(exc, context)
        if error in self._handled_errors or error.__cause__ in self._handled_errors:
            return error
        self._handled_errors.add(error)

        self._log_error(error, context)

        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("Error in user error handler")

        if error.kind is ErrorKind.CONNECTION and not self._closing:
            self._handle_connection_error(error)

        return error

    def _handle_connection_error(self, error: McpError) -> None:
        healthy_for = None
        if self._connected_at is not None:
            healthy_for = anyio.current_time() - self._connected_at

        self._teardown(error)

        if self._policy.should_reset(healthy_for):
            logger.debug(f"Connection was healthy for {healthy_for:.1f}s, resetting reconnection budget")
            self._attempt_count = 1

        attempt = max(self._attempt_count, 1)
        if not self._policy.should_retry(attempt) or self._task_group is None:
            logger.info(f"Not reconnecting after {self._attempt_count} connection attempts")
            return

        delay = self._policy.delay_for(attempt)
        logger.debug(f"Scheduling reconnection attempt in {delay * 1000:.0f}ms")
        self._schedule_reconnect(delay)

    def _teardown(self, error: McpError) -> None:
        if self._stream is not None:
            self._stream.close(error)
            self._stream = None
        self._ready = False
        self._connected_at = None

        drained = self._pending.drain(error)
        if drained:
            logger.debug(f"Cleared {drained} pending handlers")

    def _schedule_reconnect(self, delay: float) -> None:
        self._cancel_reconnect()
        scope = anyio.CancelScope()
        self._reconnect_scope = scope
        self._require_task_group().start_soon(self._reconnect_after, delay, scope)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_scope is not None:
            self._reconnect_scope.cancel()
            self._reconnect_scope = None

    async def _reconnect_after(self, delay: float, scope: anyio.CancelScope) -> None:
        with scope:
            try:
                await anyio.sleep(delay)
                if self._closing:
                    return
                try:
                    await self._ensure_connection()
                except Exception as exc:
                    self._handle_error(exc, "reconnect")
            finally:
                if self._reconnect_scope is scope:
                    self._reconnect_scope = None

    def _log_error(self, error: McpError, context: str) -> None:
        logger.error(f"MCP client error in {context}: [{error.kind.value} {error.code}] {error.message}")
        logger.debug(
            f"Error details: source={error.source!r} data={error.data!r} "
            f"stream={self._stream.state if self._stream is not None else 'no connection'} "
            f"session_id={self.session_id} pending={self._pending.ids()} "
            f"attempts={self._attempt_count}"
        )

    def _require_transport(self) -> SseTransport:
        if self._transport is None:
            raise RuntimeError("SseClientSession must be used as an async context manager")
        return self._transport

    def _require_task_group(self) -> TaskGroup:
        if self._task_group is None:
            raise RuntimeError("SseClientSession must be used as an async context manager")
        return self._task_group

    def _require_session_id(self) -> str:
        session_id = self.session_id
        if session_id is None:
            raise McpError.create(ErrorKind.CONNECTION, "No active session", source="connection")
        return session_id
