"""Logging set-up for command-line entry points.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI.  Records go to stderr because stdout
carries protocol frames when serving over stdio.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str | int = logging.WARNING) -> None:
    """Route ``mcpkit`` logs through a rich handler on stderr."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger = logging.getLogger("mcpkit")
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(level.upper() if isinstance(level, str) else level)
