"""End-to-end over real sockets and a real subprocess."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from typing import Any

import pytest

from mcpkit.client.client import Client
from mcpkit.config import ServerRef
from mcpkit.protocol.errors import ConnectionError, UnknownResourceError
from mcpkit.server.server import Server


@pytest.fixture
async def tcp_address(demo_server: Server) -> Any:
    listener = await demo_server.start_tcp("127.0.0.1", 0)
    host, port = listener.sockets[0].getsockname()[:2]
    async with listener:
        yield host, port


class TestTcp:
    async def test_round_trip(self, tcp_address: tuple[str, int]) -> None:
        host, port = tcp_address
        async with Client(ServerRef(transport="tcp", host=host, port=port)) as client:
            tools = await client.list_tools()
            result = await client.call_tool("calculate", {"operation": "add", "x": 2, "y": 3})

        assert [tool.name for tool in tools] == ["calculate"]
        assert result.text == "5.00"

    async def test_connections_are_independent(self, tcp_address: tuple[str, int]) -> None:
        host, port = tcp_address
        ref = ServerRef(transport="tcp", host=host, port=port)
        async with Client(ref) as first, Client(ref) as second:
            await first.close()
            profile = await second.read_resource("user://7/profile")
            with pytest.raises(UnknownResourceError):
                await second.read_resource("user://x/profile")

        assert profile.contents[0].text == '{"id": 7}'  # type: ignore[union-attr]

    async def test_refused_connection(self) -> None:
        listener = await Server().start_tcp("127.0.0.1", 0)
        port = listener.sockets[0].getsockname()[1]
        listener.close()
        await listener.wait_closed()

        ref = ServerRef(transport="tcp", host="127.0.0.1", port=port)
        with pytest.raises(ConnectionError):
            await Client(ref).connect()


class TestStdioSubprocess:
    async def test_serve_demo_over_pipes(self, license_file: Path) -> None:
        command = shlex.join(
            [sys.executable, "-m", "mcpkit.cli", "serve-demo", "--license", str(license_file)]
        )
        async with Client(ServerRef(command=command)) as client:
            assert client.server_info is not None
            assert client.server_info.server_info.name == "MCP Server Demo"
            result = await client.call_tool("calculate", {"operation": "divide", "x": 9, "y": 3})
            license_text = await client.read_resource("docs://license")

        assert result.text == "3.00"
        expected = license_file.read_text(encoding="utf-8")
        assert license_text.contents[0].text == expected  # type: ignore[union-attr]
