"""Transports: frame streams and the transport loop.

A :class:`FrameStream` moves whole frames (one encoded message each) over
some byte channel: stdio or subprocess pipes, TCP, a WebSocket, or an
in-process queue pair.  :class:`TransportLoop` sits on top of one stream and
owns its lifecycle: it reads frames strictly one at a time, decodes them, and
funnels every outbound message through a single writer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from mcpkit.protocol import codec
from mcpkit.protocol.errors import MalformedMessageError, TransportClosedError
from mcpkit.protocol.messages import Message

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for resource payloads.
DEFAULT_STREAM_LIMIT = 16 * 1024 * 1024


@runtime_checkable
class FrameStream(Protocol):
    """A bidirectional channel of frames.

    ``read_frame`` returns ``None`` at end of stream and raises
    :class:`TransportClosedError` (or ``OSError``) when the channel is
    unusable.
    """

    async def read_frame(self) -> bytes | None: ...
    async def write_frame(self, frame: bytes) -> None: ...
    async def close(self) -> None: ...


class StreamPairFrameStream:
    """Newline-delimited frames over an asyncio reader/writer pair.

    Used for stdio, subprocess pipes, and TCP connections.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer

    async def read_frame(self) -> bytes | None:
        try:
            line = await self._reader.readline()
        except ValueError as exc:
            # The line overran the reader's buffer; framing is lost.
            raise TransportClosedError(f"framing lost ({exc})") from exc
        return line or None

    async def write_frame(self, frame: bytes) -> None:
        self._writer.write(frame)
        await self._writer.drain()

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        with contextlib.suppress(ConnectionError):
            await self._writer.wait_closed()


class ProcessFrameStream(StreamPairFrameStream):
    """Frames over the stdin/stdout pipes of a child process."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        if process.stdin is None or process.stdout is None:
            msg = "Process must be started with stdin and stdout pipes"
            raise ValueError(msg)
        self._process = process
        self._reader = process.stdout
        self._stdin = process.stdin

    async def write_frame(self, frame: bytes) -> None:
        self._stdin.write(frame)
        await self._stdin.drain()

    async def close(self) -> None:
        """Close stdin and terminate the child process."""
        if self._process.returncode is not None:
            return
        self._stdin.close()
        with contextlib.suppress(ProcessLookupError):
            self._process.terminate()
        await self._process.wait()


class WebSocketFrameStream:
    """One WebSocket text message per frame.

    Requires the ``websockets`` package (optional dependency ``ws``).
    """

    def __init__(self, ws: Any) -> None:
        from websockets.exceptions import ConnectionClosed

        self._ws = ws
        self._closed_exc = ConnectionClosed

    async def read_frame(self) -> bytes | None:
        try:
            raw = await self._ws.recv()
        except self._closed_exc:
            return None
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return bytes(raw)

    async def write_frame(self, frame: bytes) -> None:
        try:
            await self._ws.send(frame.rstrip(codec.FRAME_DELIMITER).decode("utf-8"))
        except self._closed_exc as exc:
            raise TransportClosedError(str(exc)) from exc

    async def close(self) -> None:
        await self._ws.close()


class MemoryFrameStream:
    """One end of an in-process frame channel; see :func:`memory_frame_stream_pair`."""

    def __init__(
        self,
        inbox: asyncio.Queue[bytes | None],
        outbox: asyncio.Queue[bytes | None],
    ) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    async def read_frame(self) -> bytes | None:
        if self._closed:
            return None
        return await self._inbox.get()

    async def write_frame(self, frame: bytes) -> None:
        if self._closed:
            msg = "memory stream closed"
            raise TransportClosedError(msg)
        await self._outbox.put(frame)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # EOF for the peer, and wake our own pending reader.
        self._outbox.put_nowait(None)
        self._inbox.put_nowait(None)


def memory_frame_stream_pair() -> tuple[MemoryFrameStream, MemoryFrameStream]:
    """Return two connected streams: frames written on one are read on the other."""
    a_to_b: asyncio.Queue[bytes | None] = asyncio.Queue()
    b_to_a: asyncio.Queue[bytes | None] = asyncio.Queue()
    return MemoryFrameStream(b_to_a, a_to_b), MemoryFrameStream(a_to_b, b_to_a)


async def open_stdio_stream(limit: int = DEFAULT_STREAM_LIMIT) -> StreamPairFrameStream:
    """Wrap this process's stdin/stdout as a frame stream."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    w_transport, w_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(w_transport, w_protocol, reader, loop)
    return StreamPairFrameStream(reader, writer)


async def spawn_process_stream(
    command: str,
    env: dict[str, str] | None = None,
    limit: int = DEFAULT_STREAM_LIMIT,
) -> ProcessFrameStream:
    """Launch *command* and talk to it over its stdin/stdout.

    The child's stderr is inherited so its logs stay visible.
    """
    parts = shlex.split(command)
    process = await asyncio.create_subprocess_exec(
        *parts,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        env=env,
        limit=limit,
    )
    return ProcessFrameStream(process)


async def open_tcp_stream(
    host: str, port: int, limit: int = DEFAULT_STREAM_LIMIT
) -> StreamPairFrameStream:
    reader, writer = await asyncio.open_connection(host, port, limit=limit)
    return StreamPairFrameStream(reader, writer)


async def connect_websocket(url: str) -> WebSocketFrameStream:
    """Open a WebSocket connection and wrap it as a frame stream."""
    try:
        import websockets
    except ImportError as exc:
        msg = "websockets package required; install with: pip install mcpkit[ws]"
        raise ImportError(msg) from exc
    ws = await websockets.connect(url)
    return WebSocketFrameStream(ws)


MessageHandler = Callable[[Message], Awaitable[None]]
MalformedHandler = Callable[[MalformedMessageError], Awaitable[None]]


class TransportLoop:
    """Owns a :class:`FrameStream`: sequential reads, serialized writes.

    Usage::

        loop = TransportLoop(stream, max_frame_bytes=1_000_000)
        reader = asyncio.create_task(loop.run(on_message, on_malformed))
        await loop.send(JsonRpcNotification(method="notifications/initialized"))
        ...
        await loop.close()
    """

    def __init__(self, stream: FrameStream, *, max_frame_bytes: int | None = None) -> None:
        self._stream = stream
        self._max_frame_bytes = max_frame_bytes
        self._write_lock = asyncio.Lock()
        self._close_reason = ""
        self.closed = asyncio.Event()

    @property
    def is_closed(self) -> bool:
        return self.closed.is_set()

    @property
    def close_reason(self) -> str:
        return self._close_reason

    async def send(self, message: Message) -> None:
        """Encode and write one message; concurrent senders never interleave."""
        frame = codec.encode(message)
        async with self._write_lock:
            if self.is_closed:
                raise TransportClosedError(self._close_reason)
            try:
                await self._stream.write_frame(frame)
            except OSError as exc:
                await self.close(f"write failed ({exc})")
                raise TransportClosedError(str(exc)) from exc

    async def run(self, on_message: MessageHandler, on_malformed: MalformedHandler) -> None:
        """Read and hand off frames until the stream ends or fails.

        Each callback is awaited before the next frame is read.  Malformed
        frames are reported and skipped; only stream-level failures end the
        loop.
        """
        reason = "end of stream"
        try:
            while not self.is_closed:
                try:
                    frame = await self._stream.read_frame()
                except TransportClosedError as exc:
                    reason = exc.detail or str(exc)
                    break
                except OSError as exc:
                    reason = f"read failed ({exc})"
                    break
                if frame is None:
                    break
                if not frame.strip():
                    continue

                try:
                    message = codec.decode(frame, max_frame_bytes=self._max_frame_bytes)
                except MalformedMessageError as exc:
                    logger.warning("Malformed frame: %s", exc)
                    await on_malformed(exc)
                    continue
                await on_message(message)
        finally:
            await self.close(reason)

    async def close(self, reason: str = "closed locally") -> None:
        """Close the underlying stream (idempotent)."""
        if self.is_closed:
            return
        self._close_reason = reason
        self.closed.set()
        logger.debug("Transport closed: %s", reason)
        await self._stream.close()
