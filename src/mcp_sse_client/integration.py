"""
Helpers that hand an MCP tool catalog to a chat model.

Tool names and input schemas are forwarded verbatim; only the envelope
differs between formats.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from mcp_sse_client.client.session import SseClientSession
from mcp_sse_client.shared.exceptions import ErrorKind, McpError
from mcp_sse_client.types import Tool
from mcp_sse_client.utilities.logging import get_logger

logger = get_logger(__name__)

CONVERSION_CONTEXT = "integration: tool conversion"

SYSTEM_PROMPT_HEADER = "You are a helpful assistant with access to external tools. Available tools:"

ToolLike = Tool | Mapping[str, Any]
ToolSet = dict[str, dict[str, Any]]


def _conversion_error(exc: Exception, tool: object) -> McpError:
    error = McpError.create(
        ErrorKind.INTEGRATION,
        f"Failed to convert tool for the model: {exc}",
        source=CONVERSION_CONTEXT,
        data={"tool": tool if isinstance(tool, str) else repr(tool)},
    )
    error.__cause__ = exc
    return error


def _as_tool(tool: ToolLike) -> Tool:
    if isinstance(tool, Tool):
        return tool
    try:
        return Tool.model_validate(tool)
    except ValidationError as exc:
        raise _conversion_error(exc, tool) from exc


def build_tool_set(tools: Iterable[ToolLike]) -> ToolSet:
    """Map each tool name to its parameters schema and a generic description.

    Raises:
        McpError: `integration` kind, if a catalog entry is not a valid tool.
    """
    tool_set: ToolSet = {}
    for tool in map(_as_tool, tools):
        if tool.name in tool_set:
            logger.warning(f"Duplicate tool name {tool.name!r}, keeping the last definition")
        tool_set[tool.name] = {
            "parameters": tool.inputSchema.to_wire(),
            "description": f"Use the {tool.name} tool",
        }
    logger.debug(f"Built tool set: {list(tool_set)}")
    return tool_set


def to_openai_tools(tool_set: ToolSet) -> list[dict[str, Any]]:
    """Wrap a tool set in the OpenAI chat-completions `tools` format."""
    openai_tools: list[dict[str, Any]] = []
    for name, definition in tool_set.items():
        try:
            function = {
                "name": name,
                "description": definition["description"],
                "parameters": definition["parameters"],
            }
        except (KeyError, TypeError) as exc:
            raise _conversion_error(exc, name) from exc
        openai_tools.append({"type": "function", "function": function})
    return openai_tools


def build_system_prompt(tool_set: ToolSet) -> str:
    lines = [SYSTEM_PROMPT_HEADER]
    lines.extend(f"- {name}: {definition.get('description', '')}" for name, definition in tool_set.items())
    return "\n".join(lines)


async def load_tool_set(client: SseClientSession) -> ToolSet:
    """Fetch the server's tools and convert them, reporting conversion failures to the session."""
    tools = await client.list_tools()
    try:
        return build_tool_set(tools)
    except McpError as exc:
        client.report_error(exc, CONVERSION_CONTEXT)
        raise
