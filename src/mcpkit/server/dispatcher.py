"""Dispatcher: routes tool calls and resource reads to registered handlers.

The dispatcher is stateless: it resolves the target through the
:class:`CapabilityRegistry`, validates input, invokes the handler, and turns
whatever the handler produced (or raised) into protocol results or
:class:`RpcError` subclasses.  Handler exceptions never escape as anything
else, so a failing handler cannot take down the serving loop.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from mcpkit.protocol.errors import ResourceUnavailableError, RpcError, ToolExecutionError
from mcpkit.protocol.messages import (
    BlobResourceContents,
    CallToolResult,
    ImageContent,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    ReadResourceResult,
    TextContent,
    TextResourceContents,
)
from mcpkit.server.schema import validate_arguments
from mcpkit.utils.telemetry import (
    ATTR_ERROR_CODE,
    ATTR_RESOURCE_URI,
    ATTR_TOOL_NAME,
    get_tracer,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from mcpkit.server.registry import CapabilityRegistry, ResolvedResource

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


async def invoke_handler(handler: Callable[[Any], Any], argument: Any) -> Any:
    """Call *handler* with *argument*.

    Coroutine functions are awaited on the loop; plain functions run in a
    worker thread so blocking handlers do not stall other requests.
    """
    if inspect.iscoroutinefunction(handler):
        return await handler(argument)
    result = await asyncio.to_thread(handler, argument)
    if inspect.isawaitable(result):
        return await result
    return result


class Dispatcher:
    """Resolve, validate, invoke, and normalize.

    Usage::

        dispatcher = Dispatcher(registry)
        result = await dispatcher.call_tool("calculate", {"operation": "add", "x": 1, "y": 2})
        contents = await dispatcher.read_resource("user://42/profile")
    """

    def __init__(self, registry: CapabilityRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    def list_tools(self) -> ListToolsResult:
        return ListToolsResult(tools=[tool.to_def() for tool in self._registry.list_tools()])

    def list_resources(self) -> ListResourcesResult:
        return ListResourcesResult(
            resources=[res.to_def() for res in self._registry.list_resources()]
        )

    def list_resource_templates(self) -> ListResourceTemplatesResult:
        return ListResourceTemplatesResult(
            resource_templates=[tpl.to_def() for tpl in self._registry.list_resource_templates()]
        )

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        """Run the tool *name*.

        Raises:
            UnknownToolError: No tool is registered under *name*.
            InvalidArgumentsError: *arguments* do not fit the input schema;
                the handler is not called.
            ToolExecutionError: The handler raised.
        """
        with _tracer.start_as_current_span("tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            try:
                entry = self._registry.get_tool(name)
                args = validate_arguments(entry.tool, entry.arguments_model, arguments or {})
                try:
                    outcome = await invoke_handler(entry.handler, args)
                except RpcError:
                    raise
                except Exception as exc:
                    logger.warning("Tool %s failed: %s", name, exc)
                    raise ToolExecutionError(name, str(exc)) from exc
            except RpcError as exc:
                span.set_attribute(ATTR_ERROR_CODE, exc.code)
                raise
        return _to_tool_result(outcome)

    async def read_resource(self, uri: str) -> ReadResourceResult:
        """Read *uri* through its static entry or the first matching template.

        Raises:
            UnknownResourceError: Nothing matches *uri*.
            ResourceUnavailableError: The handler raised (e.g. a missing file).
        """
        with _tracer.start_as_current_span("resource.read") as span:
            span.set_attribute(ATTR_RESOURCE_URI, uri)
            try:
                resolved = self._registry.resolve_resource(uri)
                try:
                    outcome = await invoke_handler(resolved.handler, resolved.request)
                except RpcError:
                    raise
                except Exception as exc:
                    logger.warning("Resource %s unavailable: %s", uri, exc)
                    raise ResourceUnavailableError(uri, str(exc)) from exc
            except RpcError as exc:
                span.set_attribute(ATTR_ERROR_CODE, exc.code)
                raise
        return _to_read_result(resolved, outcome)


def _to_tool_result(outcome: Any) -> CallToolResult:
    if isinstance(outcome, CallToolResult):
        return outcome
    if outcome is None:
        return CallToolResult()
    if isinstance(outcome, str):
        return CallToolResult.from_text(outcome)
    if isinstance(outcome, (TextContent, ImageContent)):
        return CallToolResult(content=[outcome])
    if isinstance(outcome, list) and all(
        isinstance(item, (TextContent, ImageContent)) for item in outcome
    ):
        return CallToolResult(content=outcome)
    if isinstance(outcome, BaseModel):
        return CallToolResult.from_text(outcome.model_dump_json())
    return CallToolResult.from_text(json.dumps(outcome, default=str))


def _to_read_result(resolved: ResolvedResource, outcome: Any) -> ReadResourceResult:
    if isinstance(outcome, ReadResourceResult):
        return outcome
    if isinstance(outcome, (TextResourceContents, BlobResourceContents)):
        return ReadResourceResult(contents=[outcome])
    if isinstance(outcome, list) and all(
        isinstance(item, (TextResourceContents, BlobResourceContents)) for item in outcome
    ):
        return ReadResourceResult(contents=outcome)
    if isinstance(outcome, bytes):
        return ReadResourceResult(
            contents=[
                BlobResourceContents(
                    uri=resolved.uri,
                    mime_type=resolved.mime_type or "application/octet-stream",
                    blob=base64.b64encode(outcome).decode("ascii"),
                )
            ]
        )
    if isinstance(outcome, str):
        text, default_mime = outcome, "text/plain"
    else:
        text, default_mime = json.dumps(outcome, default=str), "application/json"
    return ReadResourceResult(
        contents=[
            TextResourceContents(
                uri=resolved.uri, mime_type=resolved.mime_type or default_mime, text=text
            )
        ]
    )
