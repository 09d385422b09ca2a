"""Protocol layer: messages, codec, transport, session, and correlation."""

from mcpkit.protocol.codec import decode, encode
from mcpkit.protocol.correlation import CorrelationTable, PendingCall
from mcpkit.protocol.errors import (
    CallTimeoutError,
    ConnectionError,
    DuplicateRegistrationError,
    InvalidArgumentsError,
    MalformedMessageError,
    NotReadyError,
    ProtocolError,
    ResourceUnavailableError,
    RpcError,
    TemplateSyntaxError,
    ToolExecutionError,
    TransportClosedError,
    UnknownResourceError,
    UnknownToolError,
)
from mcpkit.protocol.messages import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)
from mcpkit.protocol.session import Session, SessionPhase
from mcpkit.protocol.transport import FrameStream, TransportLoop, memory_frame_stream_pair

__all__ = [
    "CallTimeoutError",
    "ConnectionError",
    "CorrelationTable",
    "DuplicateRegistrationError",
    "FrameStream",
    "InvalidArgumentsError",
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MalformedMessageError",
    "Message",
    "NotReadyError",
    "PendingCall",
    "ProtocolError",
    "ResourceUnavailableError",
    "RpcError",
    "Session",
    "SessionPhase",
    "TemplateSyntaxError",
    "ToolExecutionError",
    "TransportClosedError",
    "TransportLoop",
    "UnknownResourceError",
    "UnknownToolError",
    "decode",
    "encode",
    "memory_frame_stream_pair",
]
