"""mcpkit: a bidirectional Model Context Protocol runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpkit.client.client import Client as Client
    from mcpkit.server.server import Server as Server

_LAZY_EXPORTS = {
    "Client": "mcpkit.client.client",
    "Server": "mcpkit.server.server",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpkit' has no attribute {name!r}")
