"""CorrelationTable: pairs outstanding client requests with their responses.

Every mutation runs on the event-loop thread without an ``await`` in the
middle, so concurrent calls and the reader task never observe a half-updated
table.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mcpkit.protocol.errors import CallTimeoutError

if TYPE_CHECKING:
    from mcpkit.protocol.messages import JsonRpcResponse, RequestId

logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    """A request waiting for its response."""

    request_id: int
    method: str
    future: asyncio.Future[JsonRpcResponse] = field(repr=False)


class CorrelationTable:
    """Allocates request ids and routes responses back to their waiters.

    Usage::

        call = table.register("tools/call")
        await transport.send(JsonRpcRequest(id=call.request_id, ...))
        response = await table.wait(call, timeout=30.0)

    The reader side calls :meth:`resolve` for every incoming response.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def register(self, method: str) -> PendingCall:
        """Allocate a fresh id and a waiting slot for it."""
        request_id = next(self._ids)
        future: asyncio.Future[JsonRpcResponse] = asyncio.get_running_loop().create_future()
        call = PendingCall(request_id=request_id, method=method, future=future)
        self._pending[request_id] = call
        return call

    def resolve(self, response: JsonRpcResponse) -> bool:
        """Deliver *response* to its waiter.

        Returns ``False`` (and logs a warning) for stale, duplicate, or
        unknown ids; such responses never affect other outstanding calls.
        """
        call = self._pending.pop(response.id, None) if isinstance(response.id, int) else None
        if call is None:
            logger.warning("Discarding response with no pending call (id=%r)", response.id)
            return False
        if not call.future.done():
            call.future.set_result(response)
        return True

    async def wait(self, call: PendingCall, timeout: float | None = None) -> JsonRpcResponse:
        """Suspend until *call* is answered, the deadline passes, or the table fails.

        Raises:
            CallTimeoutError: If *timeout* seconds elapse first.  The entry is
                removed, so a late response is discarded as stale.
        """
        try:
            return await asyncio.wait_for(call.future, timeout)
        except TimeoutError:
            self.discard(call.request_id)
            raise CallTimeoutError(call.method, timeout or 0.0) from None
        except asyncio.CancelledError:
            self.discard(call.request_id)
            raise

    def discard(self, request_id: int) -> None:
        """Forget *request_id* without answering it."""
        call = self._pending.pop(request_id, None)
        if call is not None and not call.future.done():
            call.future.cancel()

    def fail_all(self, exc: BaseException) -> int:
        """Fail every outstanding call with *exc*; return how many were failed."""
        pending = list(self._pending.values())
        self._pending.clear()
        for call in pending:
            if not call.future.done():
                call.future.set_exception(exc)
        return len(pending)
