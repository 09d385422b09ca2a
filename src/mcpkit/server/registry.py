"""CapabilityRegistry: the in-memory catalog of tools and resources.

Pure bookkeeping, no I/O.  The registry is filled before serving starts and
only read afterwards, so concurrent request tasks may share it freely.

Resource lookup order:
1. exact URI match against static resources;
2. templates in registration order, first match wins;
3. otherwise :class:`UnknownResourceError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mcpkit.protocol.errors import (
    DuplicateRegistrationError,
    UnknownResourceError,
    UnknownToolError,
)
from mcpkit.protocol.messages import ResourceDef, ResourceTemplateDef
from mcpkit.server.schema import Tool, build_arguments_model
from mcpkit.server.templates import CharClass, UriTemplate

logger = logging.getLogger(__name__)

# Handlers may be plain functions or coroutine functions.
ToolHandler = Callable[[Any], Any]
ResourceHandler = Callable[["ResourceRequest"], Any]


class Resource(BaseModel):
    """A static, addressable content item."""

    model_config = ConfigDict(frozen=True)

    uri: str
    name: str
    description: str = ""
    mime_type: str | None = None

    def to_def(self) -> ResourceDef:
        return ResourceDef(
            uri=self.uri, name=self.name, description=self.description, mime_type=self.mime_type
        )


class ResourceTemplate(BaseModel):
    """A parametrized resource, e.g. ``user://{id}/profile``."""

    model_config = ConfigDict(frozen=True)

    uri_template: str
    name: str
    description: str = ""
    mime_type: str | None = None
    constraints: dict[str, CharClass] = Field(
        default_factory=dict,
        description="Character class per placeholder; unlisted ones match a path segment.",
    )

    def to_def(self) -> ResourceTemplateDef:
        return ResourceTemplateDef(
            uri_template=self.uri_template,
            name=self.name,
            description=self.description,
            mime_type=self.mime_type,
        )


@dataclass(frozen=True)
class ResourceRequest:
    """What a resource handler receives: the URI read and any template bindings."""

    uri: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolEntry:
    tool: Tool
    handler: ToolHandler
    arguments_model: type[BaseModel]


@dataclass(frozen=True)
class ResourceEntry:
    resource: Resource
    handler: ResourceHandler


@dataclass(frozen=True)
class TemplateEntry:
    template: ResourceTemplate
    matcher: UriTemplate
    handler: ResourceHandler


@dataclass(frozen=True)
class ResolvedResource:
    """Outcome of a successful :meth:`CapabilityRegistry.resolve_resource`."""

    uri: str
    name: str
    mime_type: str | None
    handler: ResourceHandler
    params: dict[str, str] = field(default_factory=dict)

    @property
    def request(self) -> ResourceRequest:
        return ResourceRequest(uri=self.uri, params=dict(self.params))


class CapabilityRegistry:
    """Holds registered tools, static resources, and resource templates.

    Usage::

        registry = CapabilityRegistry()
        registry.register_tool(tool, handler)
        registry.register_resource(Resource(uri="docs://license", name="LICENSE"), read)
        registry.register_resource_template(
            ResourceTemplate(uri_template="user://{id}/profile", name="User",
                             constraints={"id": "digits"}),
            profile,
        )
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolEntry] = {}
        self._resources: dict[str, ResourceEntry] = {}
        self._templates: list[TemplateEntry] = []

    # -- registration ------------------------------------------------------

    def register_tool(self, tool: Tool, handler: ToolHandler) -> ToolEntry:
        """Add *tool*; raises :class:`DuplicateRegistrationError` on a name clash."""
        if tool.name in self._tools:
            raise DuplicateRegistrationError("tool", tool.name)
        entry = ToolEntry(tool=tool, handler=handler, arguments_model=build_arguments_model(tool))
        self._tools[tool.name] = entry
        logger.debug("Registered tool %s", tool.name)
        return entry

    def register_resource(self, resource: Resource, handler: ResourceHandler) -> ResourceEntry:
        """Add a static resource; raises on a URI clash."""
        if resource.uri in self._resources:
            raise DuplicateRegistrationError("resource", resource.uri)
        entry = ResourceEntry(resource=resource, handler=handler)
        self._resources[resource.uri] = entry
        logger.debug("Registered resource %s", resource.uri)
        return entry

    def register_resource_template(
        self, template: ResourceTemplate, handler: ResourceHandler
    ) -> TemplateEntry:
        """Compile and add *template*.

        Raises:
            TemplateSyntaxError: If the pattern is malformed.
            DuplicateRegistrationError: If an existing template has the same
                shape (accepts exactly the same URIs).
        """
        matcher = UriTemplate(template.uri_template, template.constraints)
        for existing in self._templates:
            if existing.matcher.shape == matcher.shape:
                raise DuplicateRegistrationError("resource template", template.uri_template)
        entry = TemplateEntry(template=template, matcher=matcher, handler=handler)
        self._templates.append(entry)
        logger.debug("Registered resource template %s", template.uri_template)
        return entry

    # -- discovery ---------------------------------------------------------

    def list_tools(self) -> list[Tool]:
        """Tool metadata in registration order."""
        return [entry.tool for entry in self._tools.values()]

    def list_resources(self) -> list[Resource]:
        """Static resource metadata in registration order (templates excluded)."""
        return [entry.resource for entry in self._resources.values()]

    def list_resource_templates(self) -> list[ResourceTemplate]:
        return [entry.template for entry in self._templates]

    @property
    def has_tools(self) -> bool:
        return bool(self._tools)

    @property
    def has_resources(self) -> bool:
        return bool(self._resources or self._templates)

    # -- lookup ------------------------------------------------------------

    def get_tool(self, name: str) -> ToolEntry:
        entry = self._tools.get(name)
        if entry is None:
            raise UnknownToolError(name)
        return entry

    def resolve_resource(self, uri: str) -> ResolvedResource:
        """Find the handler for *uri*: static first, then templates in order."""
        static = self._resources.get(uri)
        if static is not None:
            return ResolvedResource(
                uri=uri,
                name=static.resource.name,
                mime_type=static.resource.mime_type,
                handler=static.handler,
            )

        for entry in self._templates:
            params = entry.matcher.match(uri)
            if params is not None:
                return ResolvedResource(
                    uri=uri,
                    name=entry.template.name,
                    mime_type=entry.template.mime_type,
                    handler=entry.handler,
                    params=params,
                )

        raise UnknownResourceError(uri)
