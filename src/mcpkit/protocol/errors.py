"""Error taxonomy for the protocol runtime.

Two families live here:

* :class:`RpcError` subclasses travel on the wire.  Each carries a stable
  JSON-RPC ``code`` and converts to/from a :class:`JsonRpcError` payload, so a
  failure raised by a server-side handler reappears on the client as the same
  exception class.
* Local errors (:class:`TransportClosedError`, :class:`CallTimeoutError`,
  registration and session errors) never leave the process.
"""

from __future__ import annotations

from typing import Any

from mcpkit.protocol.messages import JsonRpcError

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RESOURCE_NOT_FOUND = -32002
NOT_READY = -32003
UNKNOWN_TOOL = -32004
UNSUPPORTED_PROTOCOL_VERSION = -32005
FRAME_TOO_LARGE = -32006
TOOL_EXECUTION_ERROR = -32010
RESOURCE_UNAVAILABLE = -32011


class ProtocolError(Exception):
    """Base error for all protocol-runtime failures."""


# ---------------------------------------------------------------------------
# Wire errors
# ---------------------------------------------------------------------------


class RpcError(ProtocolError):
    """A failure that is reported to the peer as a JSON-RPC error object."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, *, data: Any = None, code: int | None = None) -> None:
        self.message = message
        self.data = data
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_payload(self) -> JsonRpcError:
        if self.data is None:
            return JsonRpcError(code=self.code, message=self.message)
        return JsonRpcError(code=self.code, message=self.message, data=self.data)

    @classmethod
    def from_payload(cls, payload: JsonRpcError) -> RpcError:
        """Rebuild an error received from the peer.

        Subclass constructors take domain arguments, so the generic
        initializer is used and the domain fields are read back from ``data``.
        """
        error = cls.__new__(cls)
        RpcError.__init__(error, payload.message, data=payload.data, code=payload.code)
        return error

    def _detail(self, key: str) -> Any:
        if isinstance(self.data, dict):
            return self.data.get(key)
        return None


class MalformedMessageError(RpcError):
    """A frame could not be parsed into a protocol message.

    ``request_id`` is set when the frame was valid JSON and carried an id,
    so the peer can still be answered.
    """

    code = PARSE_ERROR
    request_id: int | str | None = None

    def __init__(
        self,
        detail: str,
        *,
        code: int = PARSE_ERROR,
        request_id: int | str | None = None,
    ) -> None:
        self.request_id = request_id
        super().__init__(f"Malformed message: {detail}", code=code)


class FrameTooLargeError(MalformedMessageError):
    """A frame exceeded the configured ``max_frame_bytes``."""

    code = FRAME_TOO_LARGE

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"frame of {size} bytes exceeds limit of {limit}", code=FRAME_TOO_LARGE)
        self.data = {"size": size, "limit": limit}

    @property
    def size(self) -> int | None:
        return self._detail("size")

    @property
    def limit(self) -> int | None:
        return self._detail("limit")


class InvalidRequestError(RpcError):
    """The message is well-formed JSON-RPC but not a valid request here."""

    code = INVALID_REQUEST


class MethodNotFoundError(RpcError):
    code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        super().__init__(f"Method not found: {method}", data={"method": method})

    @property
    def method(self) -> str | None:
        return self._detail("method")


class InternalError(RpcError):
    code = INTERNAL_ERROR


class NotReadyError(RpcError):
    """A non-handshake request arrived before the session became ready."""

    code = NOT_READY

    def __init__(self, method: str, phase: str) -> None:
        super().__init__(
            f"Session not ready for {method} (phase: {phase})",
            data={"method": method, "phase": phase},
        )

    @property
    def method(self) -> str | None:
        return self._detail("method")


class UnsupportedProtocolVersionError(RpcError):
    code = UNSUPPORTED_PROTOCOL_VERSION

    def __init__(self, requested: str, supported: list[str]) -> None:
        super().__init__(
            f"Unsupported protocol version: {requested}",
            data={"requested": requested, "supported": supported},
        )

    @property
    def supported(self) -> list[str]:
        return list(self._detail("supported") or [])


class UnknownToolError(RpcError):
    code = UNKNOWN_TOOL

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}", data={"name": name})

    @property
    def name(self) -> str | None:
        return self._detail("name")


class UnknownResourceError(RpcError):
    code = RESOURCE_NOT_FOUND

    def __init__(self, uri: str) -> None:
        super().__init__(f"Unknown resource: {uri}", data={"uri": uri})

    @property
    def uri(self) -> str | None:
        return self._detail("uri")


class InvalidArgumentsError(RpcError):
    """Arguments failed schema validation; names the offending field."""

    code = INVALID_PARAMS

    def __init__(
        self,
        field: str,
        reason: str,
        *,
        tool: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        prefix = f"Invalid arguments for {tool}" if tool else "Invalid arguments"
        super().__init__(
            f"{prefix}: {field}: {reason}",
            data={"tool": tool, "field": field, "reason": reason, "errors": errors or []},
        )

    @property
    def field(self) -> str | None:
        return self._detail("field")

    @property
    def reason(self) -> str | None:
        return self._detail("reason")

    @property
    def tool(self) -> str | None:
        return self._detail("tool")


class ToolExecutionError(RpcError):
    """The tool handler ran and reported a domain-level failure."""

    code = TOOL_EXECUTION_ERROR

    def __init__(self, name: str, detail: str = "") -> None:
        super().__init__(
            f"Tool execution failed: {name}" + (f": {detail}" if detail else ""),
            data={"name": name, "detail": detail},
        )

    @property
    def name(self) -> str | None:
        return self._detail("name")

    @property
    def detail(self) -> str:
        return self._detail("detail") or ""


class ResourceUnavailableError(RpcError):
    """The resource exists but its handler could not produce content."""

    code = RESOURCE_UNAVAILABLE

    def __init__(self, uri: str, detail: str = "") -> None:
        super().__init__(
            f"Resource unavailable: {uri}" + (f": {detail}" if detail else ""),
            data={"uri": uri, "detail": detail},
        )

    @property
    def uri(self) -> str | None:
        return self._detail("uri")

    @property
    def detail(self) -> str:
        return self._detail("detail") or ""


class RemoteError(RpcError):
    """An error response whose code this runtime does not recognise."""


_ERRORS_BY_CODE: dict[int, type[RpcError]] = {
    PARSE_ERROR: MalformedMessageError,
    INVALID_REQUEST: InvalidRequestError,
    METHOD_NOT_FOUND: MethodNotFoundError,
    INVALID_PARAMS: InvalidArgumentsError,
    INTERNAL_ERROR: InternalError,
    RESOURCE_NOT_FOUND: UnknownResourceError,
    NOT_READY: NotReadyError,
    UNKNOWN_TOOL: UnknownToolError,
    UNSUPPORTED_PROTOCOL_VERSION: UnsupportedProtocolVersionError,
    FRAME_TOO_LARGE: FrameTooLargeError,
    TOOL_EXECUTION_ERROR: ToolExecutionError,
    RESOURCE_UNAVAILABLE: ResourceUnavailableError,
}


def error_from_payload(payload: JsonRpcError) -> RpcError:
    """Map an error object received from the peer to its exception class."""
    cls = _ERRORS_BY_CODE.get(payload.code, RemoteError)
    return cls.from_payload(payload)


# ---------------------------------------------------------------------------
# Local errors
# ---------------------------------------------------------------------------


class ConnectionError(ProtocolError):
    """Failed to open the transport to the peer."""


class TransportClosedError(ProtocolError):
    """The stream ended or failed; no further messages can be exchanged."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Transport closed" + (f": {detail}" if detail else ""))


class CallTimeoutError(ProtocolError):
    """A client call exceeded its deadline."""

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(f"Call to {method} timed out after {timeout}s")


class SessionStateError(ProtocolError):
    """An illegal session phase transition was attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from {current} to {target}")


class RegistrationError(ProtocolError):
    """A capability could not be added to the registry."""


class DuplicateRegistrationError(RegistrationError):
    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} already registered: {key}")


class TemplateSyntaxError(RegistrationError):
    def __init__(self, pattern: str, detail: str) -> None:
        self.pattern = pattern
        self.detail = detail
        super().__init__(f"Invalid URI template {pattern!r}: {detail}")
