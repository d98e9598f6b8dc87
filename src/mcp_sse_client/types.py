"""Wire types for the MCP HTTP+SSE transport.

Outbound messages are plain JSON-RPC requests. Inbound messages pushed on the
event stream are decoded into a closed set of variants: a successful response,
an error response, or a server notification. Anything else is a decode error.
"""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

JSONRPC_VERSION: Final[str] = "2.0"
PROTOCOL_VERSION: Final[str] = "2024-11-05"

# JSON-RPC / MCP error codes used by the client taxonomy.
TIMEOUT_ERROR: Final[int] = -32000
NETWORK_ERROR: Final[int] = -32001
CONNECTION_ERROR: Final[int] = -32002
INTEGRATION_ERROR: Final[int] = -32099
PARSE_ERROR: Final[int] = -32700
INTERNAL_ERROR: Final[int] = -32603

ACCEPTED: Final[str] = "Accepted"

RequestId = Annotated[int, Field(strict=True)] | str


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse
InboundMessage = JSONRPCResultResponse | JSONRPCErrorResponse | JSONRPCNotification

InboundMessageAdapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


class Implementation(BaseModel):
    """Describes the name and version of an MCP implementation."""

    model_config = ConfigDict(extra="allow")

    name: str
    version: str


class ClientCapabilities(BaseModel):
    """Capabilities the client declares during initialization.

    The client declares every capability group as an empty object.
    """

    model_config = ConfigDict(extra="allow")

    prompts: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, Any] = Field(default_factory=dict)
    tools: dict[str, Any] = Field(default_factory=dict)


class InitializeRequestParams(BaseModel):
    """Parameters for the `initialize` request."""

    protocolVersion: str = PROTOCOL_VERSION
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    clientInfo: Implementation


class InitializeResult(BaseModel):
    """Result the server sends in response to `initialize`."""

    model_config = ConfigDict(extra="allow")

    protocolVersion: str
    capabilities: dict[str, Any] = Field(default_factory=dict)
    serverInfo: Implementation | None = None
    instructions: str | None = None


class ToolInputSchema(BaseModel):
    """JSON schema describing the parameters a tool accepts.

    Unknown keys are kept so the schema can be forwarded verbatim.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    additionalProperties: bool | dict[str, Any] | None = None
    schema_: str | None = Field(default=None, alias="$schema")

    def to_wire(self) -> dict[str, Any]:
        """Return the schema with only the keys the server sent, plus `type`."""
        return {"type": self.type, **self.model_dump(by_alias=True, mode="json", exclude_unset=True)}


class Tool(BaseModel):
    """Definition for a tool the client can call."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    inputSchema: ToolInputSchema = Field(default_factory=ToolInputSchema)

    def to_wire(self) -> dict[str, Any]:
        """Return the tool exactly as the server described it."""
        wire = self.model_dump(by_alias=True, mode="json", exclude_unset=True, exclude={"inputSchema"})
        wire["inputSchema"] = self.inputSchema.to_wire()
        return wire


class ListToolsResult(BaseModel):
    """The server's response to a tools/list request."""

    model_config = ConfigDict(extra="allow")

    tools: list[Tool]


class CallToolResult(BaseModel):
    """The server's response to a tool call."""

    model_config = ConfigDict(extra="allow")

    content: list[dict[str, Any]] = Field(default_factory=list)
    isError: bool = False
