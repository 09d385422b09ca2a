"""Shared fixtures: the demo server, in-memory connections, and a raw peer."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest

from mcpkit.client.client import Client
from mcpkit.demo import build_demo_server
from mcpkit.protocol.transport import MemoryFrameStream, memory_frame_stream_pair
from mcpkit.server.server import Server, ServerConnection

LICENSE_TEXT = "MIT License\n\nCopyright (c) mcpkit authors\n"


@pytest.fixture
def license_file(tmp_path: Path) -> Path:
    path = tmp_path / "LICENSE"
    path.write_text(LICENSE_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def demo_server(license_file: Path) -> Server:
    return build_demo_server(license_file)


@asynccontextmanager
async def _connect(server: Server, **client_kwargs: Any) -> AsyncIterator[Client]:
    """Serve *server* on one end of a memory pair and connect a client to the other."""
    client_end, server_end = memory_frame_stream_pair()
    serving = asyncio.create_task(server.serve(server_end))
    try:
        async with Client(client_end, **client_kwargs) as client:
            yield client
    finally:
        await server_end.close()
        await serving


@pytest.fixture
def connect() -> Callable[..., Any]:
    """``async with connect(server) as client: ...``"""
    return _connect


class RawPeer:
    """Speaks raw frames to a server connection, bypassing the client."""

    def __init__(self, stream: MemoryFrameStream, connection: ServerConnection) -> None:
        self.stream = stream
        self.connection = connection

    async def send_raw(self, frame: bytes) -> None:
        await self.stream.write_frame(frame)

    async def send(self, payload: dict[str, Any]) -> None:
        await self.send_raw(json.dumps(payload).encode("utf-8") + b"\n")

    async def recv(self, timeout: float = 2.0) -> dict[str, Any] | None:
        frame = await asyncio.wait_for(self.stream.read_frame(), timeout)
        return None if frame is None else json.loads(frame)

    async def request(
        self, request_id: int | str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        frame = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        await self.send(frame)
        reply = await self.recv()
        assert reply is not None
        return reply

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self.send({"jsonrpc": "2.0", "method": method, "params": params or {}})

    async def handshake(self, protocol_version: str = "2024-11-05") -> dict[str, Any]:
        reply = await self.request(
            0,
            "initialize",
            {
                "protocolVersion": protocol_version,
                "capabilities": {},
                "clientInfo": {"name": "raw-peer", "version": "0.0.1"},
            },
        )
        await self.notify("notifications/initialized")
        return reply


@asynccontextmanager
async def _open_raw_peer(server: Server) -> AsyncIterator[RawPeer]:
    peer_end, server_end = memory_frame_stream_pair()
    connection = server.connect(server_end)
    running = asyncio.create_task(connection.run())
    try:
        yield RawPeer(peer_end, connection)
    finally:
        await peer_end.close()
        await running


@pytest.fixture
def open_raw_peer() -> Callable[..., Any]:
    """``async with open_raw_peer(server) as peer: ...``"""
    return _open_raw_peer


@pytest.fixture
async def raw_peer(demo_server: Server) -> AsyncIterator[RawPeer]:
    async with _open_raw_peer(demo_server) as peer:
        yield peer
