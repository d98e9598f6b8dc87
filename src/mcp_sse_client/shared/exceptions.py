import json
from enum import Enum

import httpx
from pydantic import ValidationError

from mcp_sse_client.types import (
    CONNECTION_ERROR,
    INTEGRATION_ERROR,
    INTERNAL_ERROR,
    NETWORK_ERROR,
    PARSE_ERROR,
    TIMEOUT_ERROR,
    ErrorData,
)


class ErrorKind(str, Enum):
    """Classification of a client-side failure."""

    CONNECTION = "connection"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE = "parse"
    INTEGRATION = "integration"


ERROR_CODES: dict[ErrorKind, int] = {
    ErrorKind.TIMEOUT: TIMEOUT_ERROR,
    ErrorKind.NETWORK: NETWORK_ERROR,
    ErrorKind.PARSE: PARSE_ERROR,
    ErrorKind.CONNECTION: CONNECTION_ERROR,
    ErrorKind.INTEGRATION: INTEGRATION_ERROR,
    ErrorKind.PROTOCOL: INTERNAL_ERROR,
}

INTEGRATION_KEYWORDS = ("integration", "sdk")


class McpError(Exception):
    """Exception raised for any classified MCP client failure.

    Every error that leaves the client carries a `kind` from the taxonomy and a
    numeric `code`. Errors reported by the peer keep the code the peer sent;
    errors observed locally use the fixed code for their kind.

    Attributes:
        error: The ErrorData describing the failure
        kind: The failure classification
        source: Free-text context describing where the failure was observed
    """

    error: ErrorData
    kind: ErrorKind
    source: str | None

    def __init__(self, error: ErrorData, kind: ErrorKind = ErrorKind.PROTOCOL, source: str | None = None):
        super().__init__(error.message)
        self.error = error
        self.kind = kind
        self.source = source

    @classmethod
    def create(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        source: str | None = None,
        data: object | None = None,
    ) -> "McpError":
        """Build an error whose code is the fixed code for `kind`."""
        return cls(ErrorData(code=ERROR_CODES[kind], message=message, data=data), kind=kind, source=source)

    @classmethod
    def from_error_data(cls, error: ErrorData, *, source: str | None = None) -> "McpError":
        """Build a protocol error from an error response sent by the server."""
        return cls(error, kind=ErrorKind.PROTOCOL, source=source)

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def data(self) -> object | None:
        return self.error.data

    def copy(self) -> "McpError":
        """Return a new error with the same data, caused by this one.

        An error failing several waiters is raised once per waiter, and every
        raise extends the traceback of the instance being raised.
        """
        error = type(self)(self.error, kind=self.kind, source=self.source)
        error.__cause__ = self
        return error

    def __repr__(self) -> str:
        return f"McpError(kind={self.kind.value!r}, code={self.code}, message={self.message!r}, source={self.source!r})"


def _kind_from_exception(exc: BaseException, message: str) -> ErrorKind | None:
    if isinstance(exc, TimeoutError | httpx.TimeoutException) or "timeout" in message:
        return ErrorKind.TIMEOUT
    if isinstance(exc, httpx.TransportError) or "network" in message or "fetch" in message:
        return ErrorKind.NETWORK
    if isinstance(exc, json.JSONDecodeError | ValidationError) or "parse" in message:
        return ErrorKind.PARSE
    return None


def _kind_from_context(context: str) -> ErrorKind:
    if "SSE" in context or "connection" in context.lower():
        return ErrorKind.CONNECTION
    if any(keyword in context.lower() for keyword in INTEGRATION_KEYWORDS):
        return ErrorKind.INTEGRATION
    return ErrorKind.PROTOCOL


def classify_error(exc: BaseException, context: str) -> McpError:
    """Classify an arbitrary exception into the client error taxonomy.

    An `McpError` is returned unchanged: errors are classified where they are
    first observed and never rewritten. Anything else is classified by its
    type or message, then by the context it was raised in, and wrapped in
    a new `McpError` chained to the original exception.

    Args:
        exc: The exception to classify
        context: Where the exception was observed (e.g. "SSE stream",
            "send_request(tools/list)", "integration: tool conversion")

    Returns:
        The classified error
    """
    if isinstance(exc, McpError):
        return exc

    message = str(exc) or exc.__class__.__name__
    kind = _kind_from_exception(exc, message.lower()) or _kind_from_context(context)

    error = McpError.create(kind, message, source=context)
    error.__cause__ = exc
    return error
