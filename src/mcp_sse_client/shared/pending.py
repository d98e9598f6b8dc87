"""Bookkeeping for requests that have been sent but not yet answered.

The table is owned by exactly one session. All of its operations are
synchronous, so an insert, a removal or a full drain can never interleave with
another task on the event loop.
"""

import logging
from dataclasses import dataclass
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_sse_client.shared.exceptions import ErrorKind, McpError
from mcp_sse_client.types import JSONRPCErrorResponse, JSONRPCResponse, JSONRPCResultResponse, RequestId

logger = logging.getLogger(__name__)

PendingItem = JSONRPCResultResponse | JSONRPCErrorResponse | McpError


@dataclass
class PendingRequest:
    """One outstanding call, completed at most once through a one-slot stream."""

    id: int
    method: str
    send_stream: MemoryObjectSendStream[PendingItem]
    receive_stream: MemoryObjectReceiveStream[PendingItem]

    async def wait(self, timeout: float | None) -> dict[str, Any]:
        """Wait for the response and return its `result`.

        Raises:
            McpError: `protocol` if the server answered with an error,
                `timeout` if the deadline elapsed, or whatever error the
                request was failed with when the session was torn down.
        """
        try:
            with anyio.fail_after(timeout):
                item = await self.receive_stream.receive()
        except TimeoutError:
            logger.debug(f"Timeout for message {self.id}")
            raise McpError.create(
                ErrorKind.TIMEOUT,
                f"Response timeout after {timeout:g} seconds",
                source=f"request({self.method})",
            ) from None
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise McpError.create(
                ErrorKind.CONNECTION,
                "Connection closed",
                source=f"request({self.method})",
            ) from None

        if isinstance(item, McpError):
            raise item.copy() from item
        if isinstance(item, JSONRPCErrorResponse):
            logger.debug(f"Error response for message {self.id}: {item.error}")
            raise McpError.from_error_data(item.error, source=f"response({self.method})")
        logger.debug(f"Success response for message {self.id}")
        return item.result

    def close(self) -> None:
        self.send_stream.close()
        self.receive_stream.close()


class PendingRequestTable:
    """Maps request ids to their PendingRequest and hands out new ids.

    Ids start at 0 and increase by one for every request; they are never
    reused for the lifetime of the table.
    """

    _next_id: int
    _requests: dict[RequestId, PendingRequest]

    def __init__(self) -> None:
        self._next_id = 0
        self._requests = {}

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._requests

    @property
    def next_id(self) -> int:
        return self._next_id

    def ids(self) -> list[RequestId]:
        return list(self._requests)

    def new_request(self, method: str) -> PendingRequest:
        """Allocate the next id and register a PendingRequest for it."""
        request_id = self._next_id
        self._next_id = request_id + 1

        send_stream, receive_stream = anyio.create_memory_object_stream[PendingItem](1)
        pending = PendingRequest(request_id, method, send_stream, receive_stream)
        self._requests[request_id] = pending
        return pending

    def resolve(self, message: JSONRPCResponse) -> bool:
        """Complete the request matching `message.id`, removing it from the table.

        Returns False when no request with that id is pending.
        """
        if message.id is None:
            return False
        pending = self._requests.pop(message.id, None)
        if pending is None:
            return False
        self._complete(pending, message)
        return True

    def remove(self, request_id: RequestId) -> bool:
        """Forget a request without completing it."""
        pending = self._requests.pop(request_id, None)
        if pending is None:
            return False
        pending.send_stream.close()
        return True

    def drain(self, error: McpError) -> int:
        """Fail every pending request with `error` and clear the table.

        Each waiter raises its own copy of `error`, chained to it.
        """
        drained = list(self._requests.values())
        self._requests.clear()
        for pending in drained:
            self._complete(pending, error)
        return len(drained)

    @staticmethod
    def _complete(pending: PendingRequest, item: PendingItem) -> None:
        try:
            pending.send_stream.send_nowait(item)
        except (anyio.WouldBlock, anyio.BrokenResourceError, anyio.ClosedResourceError):
            # The caller already stopped waiting for this request
            logger.debug(f"Dropped completion for message {pending.id}")
        finally:
            pending.send_stream.close()
