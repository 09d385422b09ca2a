"""Configuration models: server, client, and server references.

Configs are plain pydantic models and may be loaded from YAML or JSON::

    server_config = load_config(Path("server.yaml"), ServerConfig)

Example YAML::

    name: demo
    version: "1.0.0"
    max_frame_bytes: 1048576
    enable_logging: true
    telemetry:
      enabled: true
      otlp_endpoint: http://localhost:4317
"""

from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003
from typing import Literal, TypeVar

import yaml
from pydantic import BaseModel, Field, model_validator

from mcpkit import __version__
from mcpkit.protocol.messages import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    Implementation,
)

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class TelemetrySettings(BaseModel):
    """Optional span export."""

    enabled: bool = False
    otlp_endpoint: str | None = None
    export_to_console: bool = False


class ServerConfig(BaseModel):
    """How a :class:`~mcpkit.server.server.Server` identifies itself and limits input."""

    name: str = "mcpkit"
    version: str = __version__
    protocol_versions: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_PROTOCOL_VERSIONS),
        description="Versions accepted in the handshake.",
    )
    max_frame_bytes: int | None = Field(
        default=None, gt=0, description="Reject inbound frames larger than this."
    )
    enable_logging: bool = Field(
        default=True, description="Advertise the logging capability (logging/setLevel)."
    )
    instructions: str | None = None
    telemetry: TelemetrySettings | None = None


class ClientConfig(BaseModel):
    """Client identity, handshake version, and call deadline."""

    client_info: Implementation = Field(
        default_factory=lambda: Implementation(name="mcpkit-client", version=__version__)
    )
    protocol_version: str = LATEST_PROTOCOL_VERSION
    supported_versions: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_PROTOCOL_VERSIONS),
        description="Server versions the client is willing to speak.",
    )
    request_timeout: float | None = Field(
        default=30.0, gt=0, description="Default per-call deadline in seconds; None waits forever."
    )
    max_frame_bytes: int | None = Field(default=None, gt=0)


class ServerRef(BaseModel):
    """Where to find a server: a command to spawn, a TCP address, or a WebSocket URL."""

    name: str = "server"
    transport: Literal["stdio", "tcp", "websocket"] = "stdio"
    command: str | None = None
    host: str = "127.0.0.1"
    port: int | None = None
    url: str | None = None
    env: dict[str, str] = {}

    @model_validator(mode="after")
    def _check_target(self) -> ServerRef:
        if self.transport == "stdio" and not self.command:
            msg = "ServerRef with stdio transport must specify 'command'"
            raise ValueError(msg)
        if self.transport == "tcp" and self.port is None:
            msg = "ServerRef with tcp transport must specify 'port'"
            raise ValueError(msg)
        if self.transport == "websocket" and not self.url:
            msg = "ServerRef with websocket transport must specify 'url'"
            raise ValueError(msg)
        return self


def load_config(path: Path, model: type[ConfigT]) -> ConfigT:
    """Read *path* (``.yaml``, ``.yml`` or ``.json``) into *model*.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the suffix is not recognised.
        pydantic.ValidationError: If the content does not fit *model*.
    """
    raw = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(raw)
    elif path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(raw)
    else:
        msg = f"Unsupported config format: {path.suffix or path.name}"
        raise ValueError(msg)
    return model.model_validate(data or {})
