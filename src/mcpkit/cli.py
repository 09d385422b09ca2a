"""mcpkit CLI entrypoint."""

from __future__ import annotations

import click

from mcpkit import __version__
from mcpkit.utils.log import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="mcpkit")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Verbosity of diagnostics written to stderr.",
)
def main(log_level: str) -> None:
    """mcpkit: serve and query Model Context Protocol servers."""
    configure_logging(log_level)


# Register subcommands
from mcpkit.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
