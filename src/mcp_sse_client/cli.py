"""Command line entry point for checking an MCP server over HTTP+SSE."""

import json
import sys
from typing import Any

import anyio
import click

from mcp_sse_client.client.config import ClientSettings, load_settings
from mcp_sse_client.client.provider import ClientProvider
from mcp_sse_client.integration import build_tool_set
from mcp_sse_client.shared.exceptions import McpError


async def list_tools(settings: ClientSettings) -> dict[str, dict[str, Any]]:
    async with ClientProvider(settings) as provider:
        client = await provider.get_client()
        return build_tool_set(await client.list_tools())


@click.group()
@click.option("--server-url", envvar="MCP_SERVER_URL", help="MCP server base URL (defaults to MCP_SERVER_URL)")
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, server_url: str | None, debug: bool) -> None:
    overrides: dict[str, Any] = {}
    if server_url:
        overrides["server_url"] = server_url
    if debug:
        overrides["debug"] = True
    ctx.obj = overrides


@main.command("list-tools")
@click.pass_obj
def list_tools_command(overrides: dict[str, Any]) -> None:
    """Connect to the server and print each tool with its input schema."""
    try:
        settings = load_settings(**overrides)
    except RuntimeError as exc:
        raise click.UsageError(str(exc)) from exc

    try:
        tool_set = anyio.run(list_tools, settings)
    except McpError as exc:
        click.echo(f"Error [{exc.kind.value} {exc.code}]: {exc.message}", err=True)
        sys.exit(1)

    if not tool_set:
        click.echo("No tools available")
        return

    for name, definition in tool_set.items():
        click.echo(name)
        click.echo(json.dumps(definition["parameters"], indent=2))


if __name__ == "__main__":
    main()
