"""Server: the explicit server context and its per-connection runtime.

A :class:`Server` owns the :class:`CapabilityRegistry` and the shared
:class:`Dispatcher`.  Each accepted stream gets a :class:`ServerConnection`
with its own :class:`Session` and :class:`TransportLoop`.

Usage::

    server = Server("demo", "1.0.0")

    @server.tool("echo", parameters=[ToolParameter(name="text", required=True)])
    def echo(args):
        return args.text

    await server.serve_stdio()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from mcpkit.config import ServerConfig
from mcpkit.protocol.errors import (
    InternalError,
    InvalidArgumentsError,
    InvalidRequestError,
    MalformedMessageError,
    MethodNotFoundError,
    NotReadyError,
    RpcError,
    SessionStateError,
    TransportClosedError,
)
from mcpkit.protocol.messages import (
    INITIALIZE,
    LOGGING_LEVELS,
    LOGGING_SET_LEVEL,
    NOTIFICATION_CANCELLED,
    NOTIFICATION_INITIALIZED,
    NOTIFICATION_MESSAGE,
    PING,
    RESOURCES_LIST,
    RESOURCES_READ,
    RESOURCES_TEMPLATES_LIST,
    TOOLS_CALL,
    TOOLS_LIST,
    CallToolParams,
    Implementation,
    InitializeParams,
    InitializeResult,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    LoggingLevel,
    LoggingMessageParams,
    Message,
    ReadResourceParams,
    SetLevelParams,
)
from mcpkit.protocol.session import Session, SessionPhase, negotiate_version
from mcpkit.protocol.transport import (
    DEFAULT_STREAM_LIMIT,
    FrameStream,
    StreamPairFrameStream,
    TransportLoop,
    open_stdio_stream,
)
from mcpkit.server.dispatcher import Dispatcher
from mcpkit.server.registry import (
    CapabilityRegistry,
    Resource,
    ResourceHandler,
    ResourceTemplate,
    ToolHandler,
)
from mcpkit.server.schema import Tool, ToolParameter
from mcpkit.server.templates import CharClass
from mcpkit.utils.telemetry import ATTR_ERROR_CODE, ATTR_METHOD, ATTR_REQUEST_ID, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)
HandlerT = TypeVar("HandlerT", bound=Callable[..., Any])
Route = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

DEFAULT_LOG_LEVEL: LoggingLevel = "info"


def _parse_params(model: type[ParamsT], params: dict[str, Any]) -> ParamsT:
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        err = exc.errors(include_url=False)[0]
        field = ".".join(str(part) for part in err["loc"]) or "params"
        raise InvalidArgumentsError(field, str(err["msg"])) from exc


class ServerConnection:
    """Serves one client over one stream.

    Frames are read strictly in order.  The handshake and readiness gating are
    handled inline, in arrival order; every other request is dispatched on its
    own task so a slow handler never stalls the connection.  Responses share
    the transport's single writer.
    """

    def __init__(self, server: Server, stream: FrameStream) -> None:
        self._server = server
        self._dispatcher = server.dispatcher
        self.session = Session()
        self.transport = TransportLoop(stream, max_frame_bytes=server.config.max_frame_bytes)
        self._tasks: set[asyncio.Task[None]] = set()
        self._log_level: LoggingLevel = DEFAULT_LOG_LEVEL
        self._routes: dict[str, Route] = {
            INITIALIZE: self._initialize,
            PING: self._ping,
            TOOLS_LIST: self._list_tools,
            TOOLS_CALL: self._call_tool,
            RESOURCES_LIST: self._list_resources,
            RESOURCES_TEMPLATES_LIST: self._list_resource_templates,
            RESOURCES_READ: self._read_resource,
        }
        if server.config.enable_logging:
            self._routes[LOGGING_SET_LEVEL] = self._set_log_level

    @property
    def log_level(self) -> LoggingLevel:
        return self._log_level

    async def run(self) -> None:
        """Serve until the stream closes, then cancel in-flight handlers."""
        try:
            await self.transport.run(self._on_message, self._on_malformed)
        finally:
            pending = list(self._tasks)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self.session.close()
            logger.info("Connection closed: %s", self.transport.close_reason)

    async def close(self) -> None:
        await self.transport.close()

    async def log_message(
        self, level: LoggingLevel, data: Any, *, logger_name: str | None = None
    ) -> bool:
        """Send a ``notifications/message`` if the client's level admits it.

        Returns whether a notification was sent.
        """
        if not self._server.config.enable_logging or not self.session.is_ready:
            return False
        if LOGGING_LEVELS.index(level) < LOGGING_LEVELS.index(self._log_level):
            return False
        params = LoggingMessageParams(level=level, logger=logger_name, data=data)
        try:
            await self.transport.send(
                JsonRpcNotification(method=NOTIFICATION_MESSAGE, params=params.to_wire())
            )
        except TransportClosedError:
            return False
        return True

    # -- inbound -----------------------------------------------------------

    async def _on_message(self, message: Message) -> None:
        if isinstance(message, JsonRpcRequest):
            await self._on_request(message)
        elif isinstance(message, JsonRpcNotification):
            self._on_notification(message)
        else:
            logger.warning("Ignoring unsolicited response (id=%r)", message.id)

    async def _on_request(self, request: JsonRpcRequest) -> None:
        try:
            self.session.require_ready(request.method)
        except NotReadyError as exc:
            await self._reply(JsonRpcResponse.failure(request.id, exc.to_payload()))
            return

        if request.method == INITIALIZE:
            await self._respond(request)
            return

        task = asyncio.create_task(self._respond(request), name=f"mcp-request-{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_notification(self, notification: JsonRpcNotification) -> None:
        if notification.method == NOTIFICATION_INITIALIZED:
            try:
                self.session.mark_ready()
            except SessionStateError as exc:
                logger.warning("Ignoring %s: %s", notification.method, exc)
                return
            peer = self.session.peer_info
            logger.info(
                "Session ready (client=%s %s, protocol=%s)",
                peer.name if peer else "?",
                peer.version if peer else "?",
                self.session.protocol_version,
            )
        elif notification.method == NOTIFICATION_CANCELLED:
            params = notification.params or {}
            logger.info(
                "Client cancelled request %s (%s); handlers run to completion",
                params.get("requestId"),
                params.get("reason", "no reason given"),
            )
        else:
            logger.debug("Ignoring notification %s", notification.method)

    async def _on_malformed(self, exc: MalformedMessageError) -> None:
        await self._reply(JsonRpcResponse.failure(exc.request_id, exc.to_payload()))

    async def _respond(self, request: JsonRpcRequest) -> None:
        with _tracer.start_as_current_span("rpc.request") as span:
            span.set_attribute(ATTR_METHOD, request.method)
            span.set_attribute(ATTR_REQUEST_ID, str(request.id))
            try:
                route = self._routes.get(request.method)
                if route is None:
                    raise MethodNotFoundError(request.method)
                response = JsonRpcResponse.success(request.id, await route(request.params or {}))
            except RpcError as exc:
                span.set_attribute(ATTR_ERROR_CODE, exc.code)
                response = JsonRpcResponse.failure(request.id, exc.to_payload())
            except Exception as exc:
                logger.exception("Internal error while handling %s", request.method)
                error = InternalError(f"Internal error: {exc}")
                span.set_attribute(ATTR_ERROR_CODE, error.code)
                response = JsonRpcResponse.failure(request.id, error.to_payload())
        await self._reply(response)

    async def _reply(self, response: JsonRpcResponse) -> None:
        try:
            await self.transport.send(response)
        except TransportClosedError:
            logger.debug("Dropping response %r: transport closed", response.id)
        except (TypeError, ValueError) as exc:
            # The handler produced something JSON cannot carry.
            logger.error("Could not encode response %r: %s", response.id, exc)
            error = InternalError(f"Internal error: response not serializable ({exc})")
            await self._reply(JsonRpcResponse.failure(response.id, error.to_payload()))

    # -- routes ------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        if self.session.phase is not SessionPhase.UNINITIALIZED:
            msg = f"Session already initialized (phase: {self.session.phase.value})"
            raise InvalidRequestError(msg)
        request = _parse_params(InitializeParams, params)
        version = negotiate_version(request.protocol_version, self._server.config.protocol_versions)
        self.session.begin_handshake(
            version, peer_info=request.client_info, peer_capabilities=request.capabilities
        )
        result = InitializeResult(
            protocol_version=version,
            capabilities=self._server.capabilities(),
            server_info=self._server.info,
            instructions=self._server.config.instructions,
        )
        return result.to_wire()

    async def _ping(self, _params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, _params: dict[str, Any]) -> dict[str, Any]:
        return self._dispatcher.list_tools().to_wire()

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        request = _parse_params(CallToolParams, params)
        result = await self._dispatcher.call_tool(request.name, request.arguments)
        return result.to_wire()

    async def _list_resources(self, _params: dict[str, Any]) -> dict[str, Any]:
        return self._dispatcher.list_resources().to_wire()

    async def _list_resource_templates(self, _params: dict[str, Any]) -> dict[str, Any]:
        return self._dispatcher.list_resource_templates().to_wire()

    async def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        request = _parse_params(ReadResourceParams, params)
        result = await self._dispatcher.read_resource(request.uri)
        return result.to_wire()

    async def _set_log_level(self, params: dict[str, Any]) -> dict[str, Any]:
        self._log_level = _parse_params(SetLevelParams, params).level
        return {}


class Server:
    """Explicit server context: identity, config, and capability registry.

    There is no process-wide instance; construct one, register capabilities,
    then hand it streams to serve.
    """

    def __init__(
        self,
        name: str | None = None,
        version: str | None = None,
        *,
        config: ServerConfig | None = None,
        registry: CapabilityRegistry | None = None,
    ) -> None:
        config = config or ServerConfig()
        overrides = {key: value for key, value in (("name", name), ("version", version)) if value}
        self.config = config.model_copy(update=overrides) if overrides else config
        self.registry = registry or CapabilityRegistry()
        self.dispatcher = Dispatcher(self.registry)

    @property
    def info(self) -> Implementation:
        return Implementation(name=self.config.name, version=self.config.version)

    def capabilities(self) -> dict[str, Any]:
        """Capability flags advertised in the ``initialize`` result."""
        caps: dict[str, Any] = {}
        if self.registry.has_tools:
            caps["tools"] = {"listChanged": False}
        if self.registry.has_resources:
            caps["resources"] = {"subscribe": False, "listChanged": False}
        if self.config.enable_logging:
            caps["logging"] = {}
        return caps

    # -- registration ------------------------------------------------------

    def add_tool(self, tool: Tool, handler: ToolHandler) -> None:
        self.registry.register_tool(tool, handler)

    def add_resource(self, resource: Resource, handler: ResourceHandler) -> None:
        self.registry.register_resource(resource, handler)

    def add_resource_template(self, template: ResourceTemplate, handler: ResourceHandler) -> None:
        self.registry.register_resource_template(template, handler)

    def tool(
        self,
        name: str,
        *,
        description: str = "",
        parameters: Iterable[ToolParameter] = (),
    ) -> Callable[[HandlerT], HandlerT]:
        """Decorator form of :meth:`add_tool`."""

        def decorator(handler: HandlerT) -> HandlerT:
            self.add_tool(
                Tool(name=name, description=description, parameters=tuple(parameters)), handler
            )
            return handler

        return decorator

    def resource(
        self,
        uri: str,
        *,
        name: str,
        description: str = "",
        mime_type: str | None = None,
    ) -> Callable[[HandlerT], HandlerT]:
        """Decorator form of :meth:`add_resource`."""

        def decorator(handler: HandlerT) -> HandlerT:
            self.add_resource(
                Resource(uri=uri, name=name, description=description, mime_type=mime_type),
                handler,
            )
            return handler

        return decorator

    def resource_template(
        self,
        uri_template: str,
        *,
        name: str,
        description: str = "",
        mime_type: str | None = None,
        constraints: dict[str, CharClass | str] | None = None,
    ) -> Callable[[HandlerT], HandlerT]:
        """Decorator form of :meth:`add_resource_template`."""

        def decorator(handler: HandlerT) -> HandlerT:
            self.add_resource_template(
                ResourceTemplate(
                    uri_template=uri_template,
                    name=name,
                    description=description,
                    mime_type=mime_type,
                    constraints=constraints or {},
                ),
                handler,
            )
            return handler

        return decorator

    # -- serving -----------------------------------------------------------

    def connect(self, stream: FrameStream) -> ServerConnection:
        """Bind *stream* to a new connection without starting it."""
        return ServerConnection(self, stream)

    async def serve(self, stream: FrameStream) -> None:
        """Serve a single connection until its stream closes."""
        await self.connect(stream).run()

    async def serve_stdio(self) -> None:
        logger.info("Serving %s %s on stdio", self.config.name, self.config.version)
        await self.serve(await open_stdio_stream())

    async def start_tcp(self, host: str = "127.0.0.1", port: int = 0) -> asyncio.Server:
        """Listen on *host*:*port*; every accepted socket is its own connection."""

        async def on_client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            peer = writer.get_extra_info("peername")
            logger.info("Accepted connection from %s", peer)
            try:
                await self.serve(StreamPairFrameStream(reader, writer))
            except Exception:
                # Confine the failure to this connection.
                logger.exception("Connection from %s failed", peer)

        return await asyncio.start_server(on_client, host, port, limit=DEFAULT_STREAM_LIMIT)

    async def serve_tcp(self, host: str = "127.0.0.1", port: int = 0) -> None:
        listener = await self.start_tcp(host, port)
        addresses = ", ".join(str(sock.getsockname()) for sock in listener.sockets)
        logger.info("Serving %s %s on %s", self.config.name, self.config.version, addresses)
        async with listener:
            await listener.serve_forever()
