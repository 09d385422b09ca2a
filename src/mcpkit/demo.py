"""Demo server: a calculator tool, a license file, and user profiles.

These handlers are ordinary collaborators of the runtime: the protocol engine
knows nothing about arithmetic or files beyond the handler contract.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mcpkit.config import ServerConfig
from mcpkit.protocol.messages import TextResourceContents
from mcpkit.server.registry import Resource, ResourceRequest, ResourceTemplate
from mcpkit.server.schema import Tool, ToolParameter
from mcpkit.server.server import Server
from mcpkit.server.templates import CharClass

CALCULATOR = Tool(
    name="calculate",
    description="Perform basic arithmetic operations",
    parameters=(
        ToolParameter(
            name="operation",
            type="string",
            required=True,
            description="The operation to perform (add, subtract, multiply, divide)",
            enum=("add", "subtract", "multiply", "divide"),
        ),
        ToolParameter(name="x", type="number", required=True, description="First number"),
        ToolParameter(name="y", type="number", required=True, description="Second number"),
    ),
)

LICENSE_URI = "docs://license"
PROFILE_TEMPLATE = "user://{id}/profile"


def calculate(args: Any) -> str:
    """Apply ``args.operation`` to ``args.x`` and ``args.y``; two decimals."""
    x: float = args.x
    y: float = args.y
    if args.operation == "add":
        result = x + y
    elif args.operation == "subtract":
        result = x - y
    elif args.operation == "multiply":
        result = x * y
    else:
        if y == 0:
            msg = "cannot divide by zero"
            raise ZeroDivisionError(msg)
        result = x / y
    return f"{result:.2f}"


class LicenseReader:
    """Reads the license file on every request; nothing is cached."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, request: ResourceRequest) -> TextResourceContents:
        return TextResourceContents(
            uri=request.uri,
            mime_type="text/plain",
            text=self.path.read_text(encoding="utf-8"),
        )


def user_profile(request: ResourceRequest) -> TextResourceContents:
    return TextResourceContents(
        uri=request.uri,
        mime_type="application/json",
        text=json.dumps({"id": int(request.params["id"])}),
    )


def build_demo_server(
    license_path: Path | None = None, config: ServerConfig | None = None
) -> Server:
    """Assemble the demo server; *license_path* defaults to ``./LICENSE``."""
    server = Server(config=config or ServerConfig(name="MCP Server Demo", version="1.0.0"))
    server.add_tool(CALCULATOR, calculate)
    server.add_resource(
        Resource(
            uri=LICENSE_URI,
            name="LICENSE",
            description="license file",
            mime_type="text/plain",
        ),
        LicenseReader(license_path or Path("LICENSE")),
    )
    server.add_resource_template(
        ResourceTemplate(
            uri_template=PROFILE_TEMPLATE,
            name="User Profile",
            description="Returns user profile information",
            mime_type="application/json",
            constraints={"id": CharClass.DIGITS},
        ),
        user_profile,
    )
    return server
