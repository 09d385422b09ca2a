"""Tests for frame streams and the transport loop."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcpkit.protocol.codec import encode
from mcpkit.protocol.errors import (
    FrameTooLargeError,
    MalformedMessageError,
    TransportClosedError,
)
from mcpkit.protocol.messages import JsonRpcNotification, JsonRpcRequest, Message
from mcpkit.protocol.transport import (
    FrameStream,
    MemoryFrameStream,
    StreamPairFrameStream,
    TransportLoop,
    WebSocketFrameStream,
    connect_websocket,
    memory_frame_stream_pair,
)


class _Recorder:
    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.malformed: list[MalformedMessageError] = []

    async def on_message(self, message: Message) -> None:
        self.messages.append(message)

    async def on_malformed(self, exc: MalformedMessageError) -> None:
        self.malformed.append(exc)


class _SlowStream:
    """Writes each frame in two halves with a yield in between."""

    def __init__(self) -> None:
        self.buffer = bytearray()

    async def read_frame(self) -> bytes | None:
        return None

    async def write_frame(self, frame: bytes) -> None:
        half = len(frame) // 2
        self.buffer += frame[:half]
        await asyncio.sleep(0)
        self.buffer += frame[half:]

    async def close(self) -> None:
        pass


class _BrokenStream(_SlowStream):
    async def write_frame(self, frame: bytes) -> None:
        raise BrokenPipeError("pipe closed")


class TestFrameStreamProtocol:
    def test_memory_stream_satisfies_protocol(self) -> None:
        a, _b = memory_frame_stream_pair()
        assert isinstance(a, FrameStream)

    async def test_stream_pair_satisfies_protocol(self) -> None:
        stream = StreamPairFrameStream(asyncio.StreamReader(), MagicMock())
        assert isinstance(stream, FrameStream)


class TestMemoryFrameStream:
    async def test_frames_cross_over(self) -> None:
        a, b = memory_frame_stream_pair()
        await a.write_frame(b"one\n")
        await b.write_frame(b"two\n")
        assert await b.read_frame() == b"one\n"
        assert await a.read_frame() == b"two\n"

    async def test_close_signals_eof_to_both_ends(self) -> None:
        a, b = memory_frame_stream_pair()
        await a.close()
        assert await b.read_frame() is None
        assert await a.read_frame() is None

    async def test_write_after_close(self) -> None:
        a, _b = memory_frame_stream_pair()
        await a.close()
        with pytest.raises(TransportClosedError):
            await a.write_frame(b"x\n")


class TestStreamPairFrameStream:
    async def test_reads_lines_until_eof(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"a":1}\n{"b":2}\n')
        reader.feed_eof()
        stream = StreamPairFrameStream(reader, MagicMock())

        assert await stream.read_frame() == b'{"a":1}\n'
        assert await stream.read_frame() == b'{"b":2}\n'
        assert await stream.read_frame() is None

    async def test_overlong_line_loses_framing(self) -> None:
        reader = asyncio.StreamReader(limit=16)
        reader.feed_data(b"x" * 64 + b"\n")
        stream = StreamPairFrameStream(reader, MagicMock())

        with pytest.raises(TransportClosedError, match="framing lost"):
            await stream.read_frame()

    async def test_write_drains(self) -> None:
        writer = MagicMock()
        writer.drain = AsyncMock()
        stream = StreamPairFrameStream(asyncio.StreamReader(), writer)

        await stream.write_frame(b"frame\n")

        writer.write.assert_called_once_with(b"frame\n")
        writer.drain.assert_awaited_once()

    async def test_close_is_idempotent(self) -> None:
        writer = MagicMock()
        writer.is_closing.side_effect = [False, True]
        writer.wait_closed = AsyncMock()
        stream = StreamPairFrameStream(asyncio.StreamReader(), writer)

        await stream.close()
        await stream.close()

        writer.close.assert_called_once()


class TestWebSocketFrameStream:
    async def test_text_messages_become_frames(self) -> None:
        pytest.importorskip("websockets")
        ws = AsyncMock()
        ws.recv = AsyncMock(return_value='{"jsonrpc":"2.0","method":"ping"}')
        stream = WebSocketFrameStream(ws)

        assert await stream.read_frame() == b'{"jsonrpc":"2.0","method":"ping"}'

        await stream.write_frame(b'{"x":1}\n')
        ws.send.assert_awaited_once_with('{"x":1}')

    async def test_connection_closed_is_eof(self) -> None:
        websockets = pytest.importorskip("websockets")
        ws = AsyncMock()
        ws.recv = AsyncMock(side_effect=websockets.exceptions.ConnectionClosed(None, None))
        stream = WebSocketFrameStream(ws)

        assert await stream.read_frame() is None

    async def test_connect_without_package(self) -> None:
        with patch.dict("sys.modules", {"websockets": None}):
            with pytest.raises(ImportError, match=r"mcpkit\[ws\]"):
                await connect_websocket("ws://localhost:1")


class TestTransportLoopSend:
    async def test_send_writes_one_frame(self) -> None:
        a, b = memory_frame_stream_pair()
        loop = TransportLoop(a)

        await loop.send(JsonRpcRequest(id=1, method="ping"))

        assert await b.read_frame() == encode(JsonRpcRequest(id=1, method="ping"))

    async def test_concurrent_sends_never_interleave(self) -> None:
        stream = _SlowStream()
        loop = TransportLoop(stream)
        messages = [
            JsonRpcNotification(method="notifications/message", params={"n": i, "pad": "y" * i})
            for i in range(20)
        ]

        await asyncio.gather(*(loop.send(m) for m in messages))

        lines = bytes(stream.buffer).splitlines()
        assert len(lines) == 20
        assert sorted(json.loads(line)["params"]["n"] for line in lines) == list(range(20))

    async def test_send_after_close(self) -> None:
        a, _b = memory_frame_stream_pair()
        loop = TransportLoop(a)
        await loop.close("done")

        with pytest.raises(TransportClosedError, match="done"):
            await loop.send(JsonRpcRequest(id=1, method="ping"))

    async def test_write_failure_closes_loop(self) -> None:
        loop = TransportLoop(_BrokenStream())

        with pytest.raises(TransportClosedError):
            await loop.send(JsonRpcRequest(id=1, method="ping"))

        assert loop.is_closed
        assert "write failed" in loop.close_reason


class TestTransportLoopRun:
    async def test_delivers_in_order_until_eof(self) -> None:
        a, b = memory_frame_stream_pair()
        loop = TransportLoop(a)
        recorder = _Recorder()
        for i in range(3):
            await b.write_frame(encode(JsonRpcRequest(id=i, method="ping")))
        await b.close()

        await loop.run(recorder.on_message, recorder.on_malformed)

        assert [m.id for m in recorder.messages] == [0, 1, 2]  # type: ignore[union-attr]
        assert loop.is_closed
        assert loop.close_reason == "end of stream"

    async def test_malformed_frame_is_reported_and_skipped(self) -> None:
        a, b = memory_frame_stream_pair()
        loop = TransportLoop(a)
        recorder = _Recorder()
        await b.write_frame(b"{not json\n")
        await b.write_frame(b"\n")
        await b.write_frame(encode(JsonRpcRequest(id=1, method="ping")))
        await b.close()

        await loop.run(recorder.on_message, recorder.on_malformed)

        assert len(recorder.malformed) == 1
        assert len(recorder.messages) == 1

    async def test_oversized_frame_is_reported(self) -> None:
        a, b = memory_frame_stream_pair()
        loop = TransportLoop(a, max_frame_bytes=80)
        recorder = _Recorder()
        await b.write_frame(encode(JsonRpcRequest(id=1, method="x" * 64)))
        await b.write_frame(encode(JsonRpcRequest(id=2, method="ping")))
        await b.close()

        await loop.run(recorder.on_message, recorder.on_malformed)

        assert isinstance(recorder.malformed[0], FrameTooLargeError)
        assert [m.id for m in recorder.messages] == [2]  # type: ignore[union-attr]

    async def test_local_close_ends_run(self) -> None:
        a, _b = memory_frame_stream_pair()
        loop = TransportLoop(a)
        recorder = _Recorder()
        runner = asyncio.create_task(loop.run(recorder.on_message, recorder.on_malformed))
        await asyncio.sleep(0)

        await loop.close("shutdown")
        await asyncio.wait_for(runner, 1.0)

        assert loop.close_reason == "shutdown"

    async def test_read_failure_records_reason(self) -> None:
        stream = MagicMock(spec=MemoryFrameStream)
        stream.read_frame = AsyncMock(side_effect=ConnectionResetError("reset"))
        stream.close = AsyncMock()
        loop = TransportLoop(stream)
        recorder = _Recorder()

        await loop.run(recorder.on_message, recorder.on_malformed)

        assert "read failed" in loop.close_reason
        stream.close.assert_awaited_once()
