"""``mcpkit resources``: list and read resources on a server."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import click

from mcpkit.cli_commands._output import (
    build_server_ref,
    console,
    print_resource_result,
    print_resources_table,
    server_transport_option,
)

if TYPE_CHECKING:
    from mcpkit.protocol.messages import ReadResourceResult, ResourceDef, ResourceTemplateDef


@click.group()
def resources() -> None:
    """List and read resources."""


@resources.command("list")
@click.argument("server")
@server_transport_option
def list_resources(server: str, transport: str) -> None:
    """List static resources and resource templates on SERVER."""
    from mcpkit.client.client import Client

    ref = build_server_ref(server, transport)

    async def _list() -> tuple[list[ResourceDef], list[ResourceTemplateDef]]:
        async with Client(ref) as client:
            return await client.list_resources(), await client.list_resource_templates()

    try:
        static, templates = asyncio.run(_list())
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {exc}")
        raise SystemExit(1) from exc

    if not static and not templates:
        console.print("[yellow]No resources exposed.[/yellow]")
        return

    print_resources_table(static, templates)


@resources.command("read")
@click.argument("server")
@click.argument("uri")
@server_transport_option
def read_resource(server: str, uri: str, transport: str) -> None:
    """Read URI from SERVER and print its contents."""
    from mcpkit.client.client import Client

    ref = build_server_ref(server, transport)

    async def _read() -> ReadResourceResult:
        async with Client(ref) as client:
            return await client.read_resource(uri)

    try:
        result = asyncio.run(_read())
    except Exception as exc:
        console.print(f"[red]Read error:[/red] {exc}")
        raise SystemExit(1) from exc

    print_resource_result(result)
