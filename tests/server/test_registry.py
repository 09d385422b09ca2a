"""Tests for the capability registry."""

from __future__ import annotations

import pytest

from mcpkit.protocol.errors import (
    DuplicateRegistrationError,
    TemplateSyntaxError,
    UnknownResourceError,
    UnknownToolError,
)
from mcpkit.server.registry import (
    CapabilityRegistry,
    Resource,
    ResourceRequest,
    ResourceTemplate,
)
from mcpkit.server.schema import Tool, ToolParameter
from mcpkit.server.templates import CharClass


def _noop(_arg: object) -> str:
    return ""


def _profile_template(**overrides: object) -> ResourceTemplate:
    fields: dict[str, object] = {
        "uri_template": "user://{id}/profile",
        "name": "User Profile",
        "mime_type": "application/json",
        "constraints": {"id": CharClass.DIGITS},
    }
    fields.update(overrides)
    return ResourceTemplate(**fields)  # type: ignore[arg-type]


class TestTools:
    def test_register_and_get(self) -> None:
        registry = CapabilityRegistry()
        tool = Tool(name="echo", parameters=(ToolParameter(name="text", required=True),))
        entry = registry.register_tool(tool, _noop)

        assert registry.get_tool("echo") is entry
        assert entry.arguments_model.__name__ == "EchoArguments"
        assert registry.has_tools

    def test_duplicate_name(self) -> None:
        registry = CapabilityRegistry()
        registry.register_tool(Tool(name="echo"), _noop)
        with pytest.raises(DuplicateRegistrationError, match="tool already registered: echo"):
            registry.register_tool(Tool(name="echo", description="again"), _noop)

    def test_unknown_tool(self) -> None:
        with pytest.raises(UnknownToolError) as info:
            CapabilityRegistry().get_tool("missing")
        assert info.value.name == "missing"

    def test_list_preserves_registration_order(self) -> None:
        registry = CapabilityRegistry()
        for name in ("b", "a", "c"):
            registry.register_tool(Tool(name=name), _noop)
        assert [tool.name for tool in registry.list_tools()] == ["b", "a", "c"]


class TestResources:
    def test_static_resource(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource(Resource(uri="docs://license", name="LICENSE"), _noop)

        resolved = registry.resolve_resource("docs://license")
        assert resolved.name == "LICENSE"
        assert resolved.params == {}
        assert resolved.request == ResourceRequest(uri="docs://license")

    def test_duplicate_uri(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource(Resource(uri="docs://license", name="a"), _noop)
        with pytest.raises(DuplicateRegistrationError):
            registry.register_resource(Resource(uri="docs://license", name="b"), _noop)

    def test_template_binding(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource_template(_profile_template(), _noop)

        resolved = registry.resolve_resource("user://42/profile")
        assert resolved.params == {"id": "42"}
        assert resolved.mime_type == "application/json"
        assert resolved.request.params == {"id": "42"}

    def test_constraint_mismatch_is_unknown(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource_template(_profile_template(), _noop)
        with pytest.raises(UnknownResourceError) as info:
            registry.resolve_resource("user://abc/profile")
        assert info.value.uri == "user://abc/profile"

    def test_static_wins_over_template(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource_template(
            _profile_template(constraints={}), lambda _r: "template"
        )
        registry.register_resource(Resource(uri="user://me/profile", name="Me"), _noop)

        assert registry.resolve_resource("user://me/profile").name == "Me"
        assert registry.resolve_resource("user://you/profile").name == "User Profile"

    def test_first_registered_template_wins(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource_template(_profile_template(name="digits"), _noop)
        registry.register_resource_template(
            _profile_template(name="any", constraints={}), _noop
        )

        assert registry.resolve_resource("user://7/profile").name == "digits"
        assert registry.resolve_resource("user://seven/profile").name == "any"

    def test_template_collision_ignores_names(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource_template(_profile_template(), _noop)
        with pytest.raises(DuplicateRegistrationError, match="resource template"):
            registry.register_resource_template(
                _profile_template(
                    uri_template="user://{uid}/profile", constraints={"uid": CharClass.DIGITS}
                ),
                _noop,
            )

    def test_bad_template_is_rejected_at_registration(self) -> None:
        registry = CapabilityRegistry()
        with pytest.raises(TemplateSyntaxError):
            registry.register_resource_template(
                _profile_template(uri_template="user://{id/profile", constraints={}), _noop
            )
        assert registry.list_resource_templates() == []

    def test_unknown_uri(self) -> None:
        with pytest.raises(UnknownResourceError):
            CapabilityRegistry().resolve_resource("nothing://here")

    def test_listing_separates_static_and_templates(self) -> None:
        registry = CapabilityRegistry()
        assert not registry.has_resources
        registry.register_resource(Resource(uri="docs://license", name="LICENSE"), _noop)
        registry.register_resource_template(_profile_template(), _noop)

        assert [r.uri for r in registry.list_resources()] == ["docs://license"]
        assert [t.uri_template for t in registry.list_resource_templates()] == [
            "user://{id}/profile"
        ]
        assert registry.has_resources

    def test_template_def_wire_form(self) -> None:
        wire = _profile_template(description="Returns user profile information").to_def().to_wire()
        assert wire == {
            "uriTemplate": "user://{id}/profile",
            "name": "User Profile",
            "description": "Returns user profile information",
            "mimeType": "application/json",
        }
