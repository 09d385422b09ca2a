"""Tests for request/response correlation."""

from __future__ import annotations

import asyncio
import logging

import pytest

from mcpkit.protocol.correlation import CorrelationTable
from mcpkit.protocol.errors import CallTimeoutError, TransportClosedError
from mcpkit.protocol.messages import JsonRpcResponse


def _ok(request_id: int | str, **result: object) -> JsonRpcResponse:
    return JsonRpcResponse.success(request_id, dict(result))


class TestRegister:
    async def test_ids_are_unique_and_increasing(self) -> None:
        table = CorrelationTable()
        ids = [table.register("ping").request_id for _ in range(5)]
        assert ids == [1, 2, 3, 4, 5]
        assert len(table) == 5
        assert 3 in table

    async def test_ids_are_not_reused_after_completion(self) -> None:
        table = CorrelationTable()
        first = table.register("ping")
        table.resolve(_ok(first.request_id))
        assert table.register("ping").request_id == first.request_id + 1


class TestResolve:
    async def test_delivers_to_waiter(self) -> None:
        table = CorrelationTable()
        call = table.register("tools/list")
        waiter = asyncio.create_task(table.wait(call, timeout=1.0))
        await asyncio.sleep(0)

        assert table.resolve(_ok(call.request_id, tools=[])) is True
        response = await waiter
        assert response.result == {"tools": []}
        assert call.request_id not in table

    async def test_out_of_order_responses(self) -> None:
        table = CorrelationTable()
        first = table.register("a")
        second = table.register("b")
        table.resolve(_ok(second.request_id, which="b"))
        table.resolve(_ok(first.request_id, which="a"))

        assert (await table.wait(first, 1.0)).result == {"which": "a"}
        assert (await table.wait(second, 1.0)).result == {"which": "b"}

    async def test_unknown_id_is_discarded(self, caplog: pytest.LogCaptureFixture) -> None:
        table = CorrelationTable()
        call = table.register("ping")
        with caplog.at_level(logging.WARNING, logger="mcpkit.protocol.correlation"):
            assert table.resolve(_ok(999)) is False
        assert "no pending call" in caplog.text
        assert call.request_id in table
        assert not call.future.done()

    async def test_string_id_never_matches(self) -> None:
        table = CorrelationTable()
        call = table.register("ping")
        assert table.resolve(_ok(str(call.request_id))) is False
        assert call.request_id in table

    async def test_duplicate_response_is_discarded(self) -> None:
        table = CorrelationTable()
        call = table.register("ping")
        assert table.resolve(_ok(call.request_id)) is True
        assert table.resolve(_ok(call.request_id)) is False


class TestWait:
    async def test_timeout_removes_entry(self) -> None:
        table = CorrelationTable()
        call = table.register("tools/call")
        with pytest.raises(CallTimeoutError) as info:
            await table.wait(call, timeout=0.01)
        assert info.value.method == "tools/call"
        assert len(table) == 0

    async def test_late_response_after_timeout_is_stale(self) -> None:
        table = CorrelationTable()
        slow = table.register("slow")
        other = table.register("other")
        with pytest.raises(CallTimeoutError):
            await table.wait(slow, timeout=0.01)

        assert table.resolve(_ok(slow.request_id)) is False
        assert other.request_id in table
        assert not other.future.done()

    async def test_cancelled_waiter_is_discarded(self) -> None:
        table = CorrelationTable()
        call = table.register("ping")
        waiter = asyncio.create_task(table.wait(call))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert len(table) == 0


class TestFailAll:
    async def test_every_waiter_gets_the_error(self) -> None:
        table = CorrelationTable()
        calls = [table.register("ping") for _ in range(3)]
        waiters = [asyncio.create_task(table.wait(call, 5.0)) for call in calls]
        await asyncio.sleep(0)

        assert table.fail_all(TransportClosedError("eof")) == 3
        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(r, TransportClosedError) for r in results)
        assert len(table) == 0

    async def test_empty_table(self) -> None:
        assert CorrelationTable().fail_all(TransportClosedError()) == 0
