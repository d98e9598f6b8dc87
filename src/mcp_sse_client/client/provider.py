"""Composition root for the client session.

Applications normally talk to one MCP server through one session. Instead of a
hidden module-level singleton, the application owns a `ClientProvider` (for
example in its lifespan) and passes it to whatever needs the server's tools.
The session is created lazily on first use and lives in a background task of
the provider, so it can be requested from any task and is torn down when the
provider exits.
"""

import logging
from types import TracebackType

import anyio
import httpx
from anyio.abc import TaskGroup, TaskStatus
from typing_extensions import Self

from mcp_sse_client.client.config import ClientSettings, load_settings
from mcp_sse_client.client.session import ErrorObserver, SseClientSession
from mcp_sse_client.shared._exception_utils import exit_task_group
from mcp_sse_client.shared.exceptions import ErrorKind, McpError
from mcp_sse_client.types import Tool
from mcp_sse_client.utilities.logging import configure_logging

logger = logging.getLogger(__name__)


def log_integration_errors(error: McpError) -> None:
    """Default error observer: surface failures in the model-integration layer."""
    if error.kind is ErrorKind.INTEGRATION:
        logger.error(f"Model integration error: {error.message} (code={error.code}, data={error.data!r})")


class ClientProvider:
    """Lazily creates and owns the application's single `SseClientSession`.

    Example:
        async with ClientProvider() as provider:
            tools = await get_mcp_tools(provider)
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        on_error: ErrorObserver | None = log_integration_errors,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._on_error = on_error
        self._client: SseClientSession | None = None
        self._task_group: TaskGroup | None = None
        self._shutdown: anyio.Event | None = None
        self._stopped: anyio.Event | None = None
        self._lock = anyio.Lock()

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        await self.aclose()
        task_group = self._task_group
        self._task_group = None
        if task_group is None:
            return None
        return await exit_task_group(task_group, exc_type, exc_val, exc_tb)

    @property
    def settings(self) -> ClientSettings:
        if self._settings is None:
            self._settings = load_settings()
        return self._settings

    async def get_client(self) -> SseClientSession:
        """Return the session, creating it on first use.

        Raises:
            RuntimeError: If the server URL is not configured, or the provider
                is not being used as an async context manager.
        """
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                if self._task_group is None:
                    raise RuntimeError("ClientProvider must be used as an async context manager")
                settings = self.settings
                configure_logging("DEBUG" if settings.debug else "INFO")
                self._client = await self._task_group.start(self._maintain_session, settings)
        return self._client

    async def aclose(self) -> None:
        """Close the session, if one was created, and wait for it to shut down."""
        self._client = None
        shutdown, stopped = self._shutdown, self._stopped
        self._shutdown = self._stopped = None
        if shutdown is not None and stopped is not None:
            shutdown.set()
            await stopped.wait()

    async def _maintain_session(
        self,
        settings: ClientSettings,
        *,
        task_status: TaskStatus[SseClientSession] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        shutdown = self._shutdown = anyio.Event()
        stopped = self._stopped = anyio.Event()
        try:
            async with SseClientSession(settings, http_client=self._http_client, on_error=self._on_error) as session:
                logger.debug(f"Session started for {settings.server_url}")
                task_status.started(session)
                await shutdown.wait()
                logger.debug(f"Session for {settings.server_url} shutting down")
        finally:
            stopped.set()


async def get_mcp_tools(provider: ClientProvider) -> list[Tool]:
    """List the tools of the provider's server."""
    client = await provider.get_client()
    return await client.list_tools()
