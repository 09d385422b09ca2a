"""``mcpkit serve-demo``: run the demo server on stdio or TCP."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from mcpkit.config import TelemetrySettings


@click.command("serve-demo")
@click.option(
    "--tcp",
    "tcp_address",
    default=None,
    metavar="HOST:PORT",
    help="Listen on TCP instead of stdio.",
)
@click.option(
    "--license",
    "license_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("LICENSE"),
    show_default=True,
    help="File served as docs://license.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="ServerConfig as YAML or JSON.",
)
@click.option(
    "--otlp-endpoint",
    default=None,
    help="Export spans to this OTLP collector (needs the otel extra).",
)
def serve_demo(
    tcp_address: str | None,
    license_path: Path,
    config_path: Path | None,
    otlp_endpoint: str | None,
) -> None:
    """Serve the calculator / license / profile demo."""
    from mcpkit.config import ServerConfig, TelemetrySettings, load_config
    from mcpkit.demo import build_demo_server

    address: tuple[str, int] | None = None
    if tcp_address is not None:
        host, _, port = tcp_address.rpartition(":")
        if not port.isdigit():
            msg = f"expected HOST:PORT, got {tcp_address!r}"
            raise click.BadParameter(msg, param_hint="--tcp")
        address = (host or "127.0.0.1", int(port))

    config = load_config(config_path, ServerConfig) if config_path else None
    server = build_demo_server(license_path, config)

    telemetry = config.telemetry if config else None
    if otlp_endpoint:
        telemetry = TelemetrySettings(enabled=True, otlp_endpoint=otlp_endpoint)
    if telemetry and telemetry.enabled:
        _start_telemetry(telemetry, server.config.name, on_stdio=address is None)

    if address is None:
        asyncio.run(server.serve_stdio())
        return
    try:
        asyncio.run(server.serve_tcp(*address))
    except KeyboardInterrupt:
        pass


def _start_telemetry(settings: TelemetrySettings, service_name: str, *, on_stdio: bool) -> None:
    from mcpkit.utils.telemetry import configure_telemetry

    if settings.export_to_console and on_stdio:
        msg = "console span export writes to stdout; serve over --tcp to use it"
        raise click.UsageError(msg)
    try:
        configure_telemetry(
            service_name=service_name,
            export_to_console=settings.export_to_console,
            otlp_endpoint=settings.otlp_endpoint,
        )
    except ImportError as exc:
        raise click.ClickException(str(exc)) from exc
