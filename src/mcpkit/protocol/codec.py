"""Message codec: newline-delimited JSON frames.

A frame is one compact JSON object followed by ``\\n``.  :func:`encode`
always produces the same bytes for equal messages (fixed key order, no
insignificant whitespace).  Absent ``params`` and ``data`` stay absent, so
``encode(decode(frame)) == frame`` holds for any well-formed frame written
in that canonical form.

:func:`decode` never raises anything but :class:`MalformedMessageError`.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from mcpkit.protocol.errors import (
    INVALID_REQUEST,
    PARSE_ERROR,
    FrameTooLargeError,
    MalformedMessageError,
)
from mcpkit.protocol.messages import (
    JSONRPC_VERSION,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)

FRAME_DELIMITER = b"\n"


def encode(message: Message) -> bytes:
    """Serialize *message* into a single frame (including the delimiter)."""
    payload = _to_wire(message)
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return body.encode("utf-8") + FRAME_DELIMITER


def decode(frame: bytes, *, max_frame_bytes: int | None = None) -> Message:
    """Parse one frame into a :data:`Message`.

    Raises:
        FrameTooLargeError: If *frame* is longer than *max_frame_bytes*.
        MalformedMessageError: If the frame is not a valid protocol message.
    """
    if max_frame_bytes is not None and len(frame) > max_frame_bytes:
        raise FrameTooLargeError(len(frame), max_frame_bytes)

    try:
        raw = json.loads(frame)
    except (ValueError, RecursionError) as exc:
        raise MalformedMessageError(f"invalid JSON ({exc})", code=PARSE_ERROR) from exc

    if not isinstance(raw, dict):
        raise MalformedMessageError("frame is not a JSON object", code=INVALID_REQUEST)

    request_id = _recover_id(raw)
    if raw.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedMessageError(
            "missing or unsupported 'jsonrpc' version",
            code=INVALID_REQUEST,
            request_id=request_id,
        )

    model: type[Message]
    if "method" in raw and ("result" in raw or "error" in raw):
        raise MalformedMessageError(
            "frame mixes 'method' with 'result'/'error'",
            code=INVALID_REQUEST,
            request_id=request_id,
        )
    if "method" in raw:
        if "params" in raw and raw["params"] is None:
            raise MalformedMessageError(
                "params: must be an object when present",
                code=INVALID_REQUEST,
                request_id=request_id if "id" in raw else None,
            )
        model = JsonRpcRequest if "id" in raw else JsonRpcNotification
    elif "id" in raw and ("result" in raw or "error" in raw):
        model = JsonRpcResponse
    else:
        raise MalformedMessageError(
            "frame is neither a request, a notification nor a response",
            code=INVALID_REQUEST,
            request_id=request_id,
        )

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or model.__name__
        raise MalformedMessageError(
            f"{where}: {first['msg']}",
            code=INVALID_REQUEST,
            request_id=request_id if model is JsonRpcRequest else None,
        ) from exc


def _to_wire(message: Message) -> dict[str, Any]:
    wire: dict[str, Any] = {"jsonrpc": message.jsonrpc}
    if isinstance(message, JsonRpcRequest):
        wire["id"] = message.id
    if isinstance(message, (JsonRpcRequest, JsonRpcNotification)):
        wire["method"] = message.method
        if message.params is not None:
            wire["params"] = message.params
        return wire

    wire["id"] = message.id
    if message.error is not None:
        error: dict[str, Any] = {"code": message.error.code, "message": message.error.message}
        if message.error.data is not None or "data" in message.error.model_fields_set:
            error["data"] = message.error.data
        wire["error"] = error
    else:
        wire["result"] = message.result
    return wire


def _recover_id(raw: dict[str, Any]) -> int | str | None:
    """Return the frame's id when it has a usable one."""
    value = raw.get("id")
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        return value
    return None
