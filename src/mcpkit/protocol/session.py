"""Session: the handshake state machine for one connection.

Phases move strictly forward::

    uninitialized -> initializing -> ready -> closed

Any phase may jump to ``closed``.  A failed version negotiation leaves the
session ``uninitialized`` so the peer may retry.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from mcpkit.protocol.errors import (
    NotReadyError,
    SessionStateError,
    UnsupportedProtocolVersionError,
)
from mcpkit.protocol.messages import INITIALIZE, PING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mcpkit.protocol.messages import Implementation

logger = logging.getLogger(__name__)

# Methods serviced regardless of phase.
UNGATED_METHODS = frozenset({INITIALIZE, PING})


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.UNINITIALIZED: frozenset({SessionPhase.INITIALIZING, SessionPhase.CLOSED}),
    SessionPhase.INITIALIZING: frozenset({SessionPhase.READY, SessionPhase.CLOSED}),
    SessionPhase.READY: frozenset({SessionPhase.CLOSED}),
    SessionPhase.CLOSED: frozenset(),
}


def negotiate_version(requested: str, supported: Iterable[str]) -> str:
    """Return *requested* if it is supported, else raise."""
    versions = list(supported)
    if requested not in versions:
        raise UnsupportedProtocolVersionError(requested, versions)
    return requested


class Session:
    """Per-connection protocol state, mutated only by the handshake."""

    def __init__(self) -> None:
        self.phase = SessionPhase.UNINITIALIZED
        self.protocol_version: str | None = None
        self.peer_info: Implementation | None = None
        self.peer_capabilities: dict[str, Any] = {}

    @property
    def is_ready(self) -> bool:
        return self.phase is SessionPhase.READY

    @property
    def is_closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED

    def begin_handshake(
        self,
        protocol_version: str,
        *,
        peer_info: Implementation | None = None,
        peer_capabilities: dict[str, Any] | None = None,
    ) -> None:
        """Record the handshake terms and move to ``initializing``."""
        self._move(SessionPhase.INITIALIZING)
        self.protocol_version = protocol_version
        if peer_info is not None:
            self.peer_info = peer_info
        if peer_capabilities is not None:
            self.peer_capabilities = dict(peer_capabilities)

    def accept_handshake(
        self,
        protocol_version: str,
        peer_info: Implementation,
        peer_capabilities: dict[str, Any],
    ) -> None:
        """Client side: store the server's answer while still ``initializing``."""
        if self.phase is not SessionPhase.INITIALIZING:
            raise SessionStateError(self.phase.value, SessionPhase.INITIALIZING.value)
        self.protocol_version = protocol_version
        self.peer_info = peer_info
        self.peer_capabilities = dict(peer_capabilities)

    def mark_ready(self) -> None:
        self._move(SessionPhase.READY)

    def close(self) -> None:
        if self.phase is not SessionPhase.CLOSED:
            self._move(SessionPhase.CLOSED)

    def require_ready(self, method: str) -> None:
        """Raise :class:`NotReadyError` unless *method* may run in this phase."""
        if method in UNGATED_METHODS or self.is_ready:
            return
        raise NotReadyError(method, self.phase.value)

    def _move(self, target: SessionPhase) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise SessionStateError(self.phase.value, target.value)
        logger.debug("Session %s -> %s", self.phase.value, target.value)
        self.phase = target
