"""``mcpkit tools``: list and call tools on a server."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import click

from mcpkit.cli_commands._output import (
    build_server_ref,
    console,
    parse_arguments,
    print_tool_result,
    print_tools_table,
    server_transport_option,
)

if TYPE_CHECKING:
    from mcpkit.protocol.messages import CallToolResult, ToolDef


@click.group()
def tools() -> None:
    """List and call tools."""


@tools.command("list")
@click.argument("server")
@server_transport_option
def list_tools(server: str, transport: str) -> None:
    """List the tools SERVER exposes."""
    from mcpkit.client.client import Client

    ref = build_server_ref(server, transport)

    async def _list() -> list[ToolDef]:
        async with Client(ref) as client:
            return await client.list_tools()

    try:
        tool_defs = asyncio.run(_list())
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {exc}")
        raise SystemExit(1) from exc

    if not tool_defs:
        console.print("[yellow]No tools exposed.[/yellow]")
        return

    print_tools_table(tool_defs)


@tools.command("call")
@click.argument("server")
@click.argument("name")
@click.option("-a", "--arg", "args", multiple=True, help="Tool argument as key=value (repeatable).")
@click.option("--timeout", type=float, default=None, help="Per-call deadline in seconds.")
@server_transport_option
def call_tool(
    server: str, name: str, args: tuple[str, ...], timeout: float | None, transport: str
) -> None:
    """Call tool NAME on SERVER.

    Values are parsed as JSON when possible, so ``-a x=10`` sends a number
    and ``-a operation=add`` sends a string.
    """
    from mcpkit.client.client import Client
    from mcpkit.config import ClientConfig

    ref = build_server_ref(server, transport)
    arguments = parse_arguments(args)
    config = ClientConfig(request_timeout=timeout) if timeout else ClientConfig()

    async def _call() -> CallToolResult:
        async with Client(ref, config=config) as client:
            return await client.call_tool(name, arguments)

    try:
        result = asyncio.run(_call())
    except Exception as exc:
        console.print(f"[red]Call error:[/red] {exc}")
        raise SystemExit(1) from exc

    print_tool_result(result)
