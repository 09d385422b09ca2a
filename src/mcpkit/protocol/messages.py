"""Protocol messages: JSON-RPC 2.0 envelope and MCP payloads.

The envelope models (:class:`JsonRpcRequest`, :class:`JsonRpcNotification`,
:class:`JsonRpcResponse`) form the :data:`Message` union handled by the codec.
The payload models describe ``params`` and ``result`` bodies for the
handshake, tool and resource methods; their wire names are camelCase aliases.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

LATEST_PROTOCOL_VERSION = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS: tuple[str, ...] = ("2025-03-26", "2024-11-05")

JSONRPC_VERSION = "2.0"

# Method names
INITIALIZE = "initialize"
PING = "ping"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"
RESOURCES_LIST = "resources/list"
RESOURCES_TEMPLATES_LIST = "resources/templates/list"
RESOURCES_READ = "resources/read"
LOGGING_SET_LEVEL = "logging/setLevel"

NOTIFICATION_INITIALIZED = "notifications/initialized"
NOTIFICATION_CANCELLED = "notifications/cancelled"
NOTIFICATION_MESSAGE = "notifications/message"

RequestId = StrictInt | StrictStr

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JsonRpcNotification(BaseModel):
    """A JSON-RPC 2.0 notification: no id, no reply expected."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: dict[str, Any] | None = None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object.

    An explicit ``"data": null`` is kept apart from an absent ``data``.
    """

    code: StrictInt
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message.

    Carries either ``result`` or ``error``, never both.  ``id`` is ``None``
    only when answering a frame whose id could not be recovered.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            msg = "response must carry exactly one of 'result' or 'error'"
            raise ValueError(msg)
        return self

    @classmethod
    def success(cls, request_id: RequestId, result: dict[str, Any]) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: RequestId | None, error: JsonRpcError) -> JsonRpcResponse:
        return cls(id=request_id, error=error)


Message = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse

# ---------------------------------------------------------------------------
# MCP payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire aliases, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Implementation(_Payload):
    """Name and version of a client or server implementation."""

    name: str
    version: str


class InitializeParams(_Payload):
    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: Implementation = Field(alias="clientInfo")


class InitializeResult(_Payload):
    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    server_info: Implementation = Field(alias="serverInfo")
    instructions: str | None = None


class ToolDef(_Payload):
    """A tool definition as returned by ``tools/list``."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class ListToolsResult(_Payload):
    tools: list[ToolDef] = Field(default_factory=list)


class CallToolParams(_Payload):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class TextContent(_Payload):
    type: Literal["text"] = "text"
    text: str


class ImageContent(_Payload):
    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


Content = Annotated[TextContent | ImageContent, Field(discriminator="type")]


class CallToolResult(_Payload):
    content: list[Content] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def from_text(cls, text: str) -> CallToolResult:
        return cls(content=[TextContent(text=text)])

    @property
    def text(self) -> str:
        """All text content joined by newlines."""
        return "\n".join(item.text for item in self.content if isinstance(item, TextContent))


class ResourceDef(_Payload):
    """A static resource as returned by ``resources/list``."""

    uri: str
    name: str
    description: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")


class ResourceTemplateDef(_Payload):
    """A parametrized resource as returned by ``resources/templates/list``."""

    uri_template: str = Field(alias="uriTemplate")
    name: str
    description: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")


class ListResourcesResult(_Payload):
    resources: list[ResourceDef] = Field(default_factory=list)


class ListResourceTemplatesResult(_Payload):
    resource_templates: list[ResourceTemplateDef] = Field(
        default_factory=list, alias="resourceTemplates"
    )


class ReadResourceParams(_Payload):
    uri: str


class TextResourceContents(_Payload):
    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str


class BlobResourceContents(_Payload):
    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    blob: str


ResourceContents = TextResourceContents | BlobResourceContents


class ReadResourceResult(_Payload):
    contents: list[ResourceContents] = Field(default_factory=list)


LoggingLevel = Literal[
    "debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"
]

LOGGING_LEVELS: tuple[str, ...] = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "critical",
    "alert",
    "emergency",
)


class SetLevelParams(_Payload):
    level: LoggingLevel


class LoggingMessageParams(_Payload):
    level: LoggingLevel
    logger: str | None = None
    data: Any = None
