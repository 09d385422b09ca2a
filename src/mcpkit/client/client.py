"""Client: connects to a server, performs the handshake, and issues calls.

Calls may run concurrently: each one registers a pending slot in the
:class:`CorrelationTable` before its request is written and then waits on that
slot alone.  A single reader task owns the inbound side of the transport and
routes every response to its waiter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from mcpkit.config import ClientConfig, ServerRef
from mcpkit.protocol.correlation import CorrelationTable
from mcpkit.protocol.errors import (
    ConnectionError,
    InvalidRequestError,
    MalformedMessageError,
    MethodNotFoundError,
    ProtocolError,
    TransportClosedError,
    UnsupportedProtocolVersionError,
    error_from_payload,
)
from mcpkit.protocol.messages import (
    INITIALIZE,
    LOGGING_SET_LEVEL,
    NOTIFICATION_INITIALIZED,
    PING,
    RESOURCES_LIST,
    RESOURCES_READ,
    RESOURCES_TEMPLATES_LIST,
    TOOLS_CALL,
    TOOLS_LIST,
    CallToolResult,
    InitializeParams,
    InitializeResult,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    LoggingLevel,
    Message,
    ReadResourceResult,
    ResourceDef,
    ResourceTemplateDef,
    ToolDef,
)
from mcpkit.protocol.session import Session
from mcpkit.protocol.transport import (
    FrameStream,
    TransportLoop,
    connect_websocket,
    open_tcp_stream,
    spawn_process_stream,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)
NotificationHandler = Callable[[JsonRpcNotification], Awaitable[None]]

_UNSET: Any = object()


class Client:
    """Async context manager around one connection to a server.

    Usage::

        ref = ServerRef(command="mcpkit serve-demo")
        async with Client(ref) as client:
            tools = await client.list_tools()
            result = await client.call_tool("calculate", {"operation": "add", "x": 1, "y": 2})
            print(result.text)

    A ready-made :class:`FrameStream` may be passed instead of a
    :class:`ServerRef` (e.g. one end of :func:`memory_frame_stream_pair`).
    """

    def __init__(
        self,
        target: ServerRef | FrameStream,
        *,
        config: ClientConfig | None = None,
        on_notification: NotificationHandler | None = None,
    ) -> None:
        self._target = target
        self.config = config or ClientConfig()
        self._on_notification = on_notification
        self.session = Session()
        self._calls = CorrelationTable()
        self._transport: TransportLoop | None = None
        self._reader: asyncio.Task[None] | None = None
        self.server_info: InitializeResult | None = None

    async def __aenter__(self) -> Client:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def pending_calls(self) -> int:
        return len(self._calls)

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> InitializeResult:
        """Open the transport, start reading, and complete the handshake."""
        try:
            stream = await self._open_stream()
        except (OSError, ImportError, ValueError) as exc:
            raise ConnectionError(str(exc)) from exc

        self._transport = TransportLoop(stream, max_frame_bytes=self.config.max_frame_bytes)
        self._reader = asyncio.create_task(
            self._read_loop(self._transport), name="mcp-client-reader"
        )
        try:
            return await self._handshake()
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        """Close the transport; outstanding calls fail with :class:`TransportClosedError`."""
        if self._transport is not None:
            await self._transport.close()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._transport = None

    async def _open_stream(self) -> FrameStream:
        target = self._target
        if not isinstance(target, ServerRef):
            return target
        if target.transport == "tcp" and target.port is not None:
            return await open_tcp_stream(target.host, target.port)
        if target.transport == "websocket" and target.url:
            return await connect_websocket(target.url)
        if target.command:
            return await spawn_process_stream(target.command, env=dict(target.env) or None)
        msg = f"ServerRef {target.name!r} has no usable {target.transport} target"
        raise ValueError(msg)

    async def _handshake(self) -> InitializeResult:
        params = InitializeParams(
            protocol_version=self.config.protocol_version,
            capabilities={},
            client_info=self.config.client_info,
        )
        self.session.begin_handshake(self.config.protocol_version)
        result = await self._request(INITIALIZE, params.to_wire(), InitializeResult)
        if result.protocol_version not in self.config.supported_versions:
            raise UnsupportedProtocolVersionError(
                result.protocol_version, list(self.config.supported_versions)
            )
        self.session.accept_handshake(
            result.protocol_version, result.server_info, result.capabilities
        )
        self.session.mark_ready()
        await self._notify(NOTIFICATION_INITIALIZED)
        self.server_info = result
        logger.info(
            "Connected to %s %s (protocol %s)",
            result.server_info.name,
            result.server_info.version,
            result.protocol_version,
        )
        return result

    # -- calls -------------------------------------------------------------

    async def ping(self) -> None:
        await self._call(PING, {})

    async def list_tools(self) -> list[ToolDef]:
        return (await self._request(TOOLS_LIST, {}, ListToolsResult)).tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = _UNSET,
    ) -> CallToolResult:
        """Invoke a tool; domain failures surface as :class:`ToolExecutionError`."""
        params = {"name": name, "arguments": arguments or {}}
        return await self._request(TOOLS_CALL, params, CallToolResult, timeout=timeout)

    async def list_resources(self) -> list[ResourceDef]:
        return (await self._request(RESOURCES_LIST, {}, ListResourcesResult)).resources

    async def list_resource_templates(self) -> list[ResourceTemplateDef]:
        result = await self._request(RESOURCES_TEMPLATES_LIST, {}, ListResourceTemplatesResult)
        return result.resource_templates

    async def read_resource(
        self, uri: str, *, timeout: float | None = _UNSET
    ) -> ReadResourceResult:
        params = {"uri": uri}
        return await self._request(RESOURCES_READ, params, ReadResourceResult, timeout=timeout)

    async def set_logging_level(self, level: LoggingLevel) -> None:
        await self._call(LOGGING_SET_LEVEL, {"level": level})

    async def _request(
        self,
        method: str,
        params: dict[str, Any],
        result_model: type[ResultT],
        *,
        timeout: float | None = _UNSET,
    ) -> ResultT:
        raw = await self._call(method, params, timeout=timeout)
        try:
            return result_model.model_validate(raw)
        except ValidationError as exc:
            msg = f"Unexpected {method} result: {exc.errors(include_url=False)[0]['msg']}"
            raise InvalidRequestError(msg) from exc

    async def _call(
        self,
        method: str,
        params: dict[str, Any],
        *,
        timeout: float | None = _UNSET,
    ) -> dict[str, Any]:
        """Send a request and wait for its result; error responses are raised."""
        transport = self._require_transport()
        if timeout is _UNSET:
            timeout = self.config.request_timeout

        call = self._calls.register(method)
        try:
            await transport.send(JsonRpcRequest(id=call.request_id, method=method, params=params))
        except TransportClosedError:
            self._calls.discard(call.request_id)
            raise
        response = await self._calls.wait(call, timeout)
        if response.error is not None:
            raise error_from_payload(response.error)
        return response.result or {}

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        transport = self._require_transport()
        await transport.send(JsonRpcNotification(method=method, params=params))

    def _require_transport(self) -> TransportLoop:
        if self._transport is None or self._transport.is_closed:
            msg = "client not connected"
            raise TransportClosedError(msg)
        return self._transport

    # -- inbound -----------------------------------------------------------

    async def _read_loop(self, transport: TransportLoop) -> None:
        try:
            await transport.run(self._on_message, self._on_malformed)
        finally:
            failed = self._calls.fail_all(TransportClosedError(transport.close_reason))
            if failed:
                logger.warning("Transport closed with %d call(s) outstanding", failed)
            self.session.close()

    async def _on_message(self, message: Message) -> None:
        if isinstance(message, JsonRpcResponse):
            self._calls.resolve(message)
        elif isinstance(message, JsonRpcRequest):
            await self._on_server_request(message)
        elif self._on_notification is not None:
            try:
                await self._on_notification(message)
            except Exception:
                logger.exception("Notification handler failed for %s", message.method)
        else:
            logger.debug("Ignoring notification %s", message.method)

    async def _on_server_request(self, request: JsonRpcRequest) -> None:
        if request.method == PING:
            response = JsonRpcResponse.success(request.id, {})
        else:
            error = MethodNotFoundError(request.method)
            response = JsonRpcResponse.failure(request.id, error.to_payload())
        try:
            await self._require_transport().send(response)
        except ProtocolError as exc:
            logger.debug("Could not answer server request %r: %s", request.id, exc)

    async def _on_malformed(self, exc: MalformedMessageError) -> None:
        # Nothing to correlate it with; the loop keeps reading.
        logger.debug("Discarded malformed frame from server: %s", exc)
