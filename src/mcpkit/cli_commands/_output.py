"""Shared CLI output formatters and target parsing."""

from __future__ import annotations

import json
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from mcpkit.config import ServerRef
from mcpkit.protocol.messages import (  # noqa: TC001
    CallToolResult,
    ReadResourceResult,
    ResourceDef,
    ResourceTemplateDef,
    TextContent,
    TextResourceContents,
    ToolDef,
)

console = Console()

server_transport_option = click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp", "websocket"]),
    default="stdio",
    help="How to reach SERVER: a command to spawn, HOST:PORT, or a ws:// URL.",
)


def build_server_ref(server: str, transport: str) -> ServerRef:
    """Turn the SERVER argument into a :class:`ServerRef`."""
    if transport == "tcp":
        host, _, port = server.rpartition(":")
        if not port.isdigit():
            msg = f"expected HOST:PORT, got {server!r}"
            raise click.BadParameter(msg, param_hint="SERVER")
        return ServerRef(name="cli", transport="tcp", host=host or "127.0.0.1", port=int(port))
    if transport == "websocket":
        return ServerRef(name="cli", transport="websocket", url=server)
    return ServerRef(name="cli", transport="stdio", command=server)


def parse_arguments(pairs: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values are JSON when they parse as JSON."""
    arguments: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            msg = f"expected key=value, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--arg")
        try:
            arguments[key] = json.loads(raw)
        except ValueError:
            arguments[key] = raw
    return arguments


def print_tools_table(tools: list[ToolDef]) -> None:
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Parameters")

    for tool in tools:
        properties = tool.input_schema.get("properties", {})
        required = set(tool.input_schema.get("required", []))
        params = ", ".join(
            f"{name}{'*' if name in required else ''}: {spec.get('type', '?')}"
            for name, spec in properties.items()
        )
        table.add_row(tool.name, _truncate(tool.description), params or "-")

    console.print(table)


def print_resources_table(
    resources: list[ResourceDef], templates: list[ResourceTemplateDef]
) -> None:
    table = Table(title="Resources")
    table.add_column("URI", style="cyan")
    table.add_column("Name")
    table.add_column("MIME type")
    table.add_column("Description")

    for res in resources:
        table.add_row(res.uri, res.name, res.mime_type or "-", _truncate(res.description))
    for tpl in templates:
        table.add_row(
            tpl.uri_template, tpl.name, tpl.mime_type or "-", _truncate(tpl.description)
        )

    console.print(table)


def print_tool_result(result: CallToolResult) -> None:
    for item in result.content:
        if isinstance(item, TextContent):
            console.print(item.text, markup=False)
        else:
            console.print_json(json.dumps(item.to_wire()))


def print_resource_result(result: ReadResourceResult) -> None:
    for item in result.contents:
        if isinstance(item, TextResourceContents):
            console.print(item.text, markup=False)
        else:
            kind = item.mime_type or "binary"
            console.print(f"[dim]<{kind} blob, {len(item.blob)} base64 chars>[/dim]")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
