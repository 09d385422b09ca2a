"""Client side: handshake, correlation, and typed calls."""

from mcpkit.client.client import Client

__all__ = ["Client"]
