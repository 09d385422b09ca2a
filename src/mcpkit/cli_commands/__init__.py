"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from mcpkit.cli_commands.resources import resources
    from mcpkit.cli_commands.serve import serve_demo
    from mcpkit.cli_commands.tools import tools

    cli.add_command(serve_demo)
    cli.add_command(tools)
    cli.add_command(resources)
