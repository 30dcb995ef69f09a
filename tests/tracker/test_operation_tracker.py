"""
Tests for OperationTracker: settlement events, sizes and snapshot waits.
"""

import asyncio

import pytest

from invoketrack.tracker import OperationTracker, SettledEvent


async def _value(value):
    await asyncio.sleep(0)
    return value


async def _gated(gate, value):
    await gate.wait()
    return value


async def _fail(error):
    await asyncio.sleep(0)
    raise error


@pytest.fixture
def operations():
    return OperationTracker()


@pytest.fixture
def settled(operations):
    events = []
    operations.on_settled(events.append)
    return events


class TestTrack:
    @pytest.mark.asyncio
    async def test_coroutine_result_is_forwarded(self, operations, settled):
        future = operations.track(_value(5), "five")

        assert operations.size == 1
        assert await future == 5
        await asyncio.sleep(0)

        assert operations.size == 0
        assert len(settled) == 1
        event = settled[0]
        assert isinstance(event, SettledEvent)
        assert event.label == "five"
        assert event.failed is False
        assert event.result == 5
        assert event.duration >= 0

    @pytest.mark.asyncio
    async def test_supplier_is_invoked(self, operations, settled):
        calls = []

        def supplier():
            calls.append(True)
            return _value("supplied")

        assert await operations.track(supplier) == "supplied"
        assert calls == [True]
        await asyncio.sleep(0)
        assert settled[0].label is None

    @pytest.mark.asyncio
    async def test_failure_is_forwarded_and_reported(self, operations, settled):
        error = ValueError("broken")
        future = operations.track(_fail(error), "broken")

        with pytest.raises(ValueError) as exc_info:
            await future
        await asyncio.sleep(0)

        assert exc_info.value is error
        assert settled[0].failed is True
        assert settled[0].result is error

    @pytest.mark.asyncio
    async def test_synchronous_supplier_error_becomes_failed_future(
        self, operations, settled
    ):
        def supplier():
            raise KeyError("missing")

        future = operations.track(supplier, "sync-failure")

        with pytest.raises(KeyError):
            await future
        await asyncio.sleep(0)

        assert settled[0].failed is True
        assert isinstance(settled[0].result, KeyError)

    @pytest.mark.asyncio
    async def test_supplier_returning_plain_value(self, operations):
        assert await operations.track(lambda: 3) == 3

    @pytest.mark.asyncio
    async def test_existing_future_is_tracked_through_a_new_handle(
        self, operations, settled
    ):
        future = asyncio.get_running_loop().create_future()

        handle = operations.track(future, "external")

        assert handle is not future
        assert operations.size == 1

        future.set_result("done")

        assert await handle == "done"
        assert operations.size == 0
        assert settled[0].result == "done"

    @pytest.mark.asyncio
    async def test_handle_settles_after_bookkeeping_for_shared_tasks(self, operations):
        gate = asyncio.Event()
        task = asyncio.ensure_future(_gated(gate, "shared"))
        observed = []

        async def earlier_awaiter():
            observed.append(await task)

        early = asyncio.ensure_future(earlier_awaiter())
        await asyncio.sleep(0)
        events = []
        operations.on_settled(events.append)

        handle = operations.track(task, "shared")
        gate.set()

        assert await handle == "shared"
        assert operations.size == 0
        assert [event.label for event in events] == ["shared"]

        await early
        assert observed == ["shared"]

    @pytest.mark.asyncio
    async def test_handle_forwards_failure_of_existing_future(self, operations):
        future = asyncio.get_running_loop().create_future()
        handle = operations.track(lambda: future, "external")
        error = OSError("disk full")

        future.set_exception(error)

        with pytest.raises(OSError) as exc_info:
            await handle
        assert exc_info.value is error
        assert future.exception() is error

    @pytest.mark.asyncio
    async def test_cancelling_handle_leaves_existing_future_running(self, operations):
        future = asyncio.get_running_loop().create_future()
        handle = operations.track(future)

        handle.cancel()
        await asyncio.sleep(0)

        assert not future.done()
        assert operations.size == 1

        future.set_result(None)
        await operations.wait()
        assert operations.size == 0

    @pytest.mark.asyncio
    async def test_cancelled_operation_is_reported_as_failed(self, operations, settled):
        future = operations.track(_gated(asyncio.Event(), None), "cancelled")
        await asyncio.sleep(0)

        future.cancel()
        with pytest.raises(asyncio.CancelledError):
            await future
        await asyncio.sleep(0)

        assert operations.size == 0
        assert settled[0].failed is True
        assert settled[0].result is None

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_affect_operation(self, operations, settled):
        def broken(event):
            raise RuntimeError("listener bug")

        operations.on_settled(broken)

        assert await operations.track(_value(1)) == 1
        await asyncio.sleep(0)
        assert len(settled) == 1


class TestWait:
    @pytest.mark.asyncio
    async def test_wait_with_nothing_tracked_returns(self, operations):
        await asyncio.wait_for(operations.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_wait_covers_only_the_snapshot(self, operations):
        gates = [asyncio.Event() for _ in range(3)]
        operations.track(_gated(gates[0], 0))
        operations.track(_gated(gates[1], 1))

        waiter = asyncio.ensure_future(operations.wait())
        await asyncio.sleep(0)
        late = operations.track(_gated(gates[2], 2))

        assert not waiter.done()
        assert operations.size == 3

        gates[0].set()
        gates[1].set()
        await asyncio.wait_for(waiter, timeout=1)

        assert not late.done()
        assert operations.size == 1

        gates[2].set()
        await asyncio.wait_for(operations.wait(), timeout=1)
        assert operations.size == 0

    @pytest.mark.asyncio
    async def test_wait_does_not_raise_failures(self, operations):
        failing = operations.track(_fail(RuntimeError("ignored")))

        await asyncio.wait_for(operations.wait(), timeout=1)

        assert failing.done()
        assert isinstance(failing.exception(), RuntimeError)

    @pytest.mark.asyncio
    async def test_size_is_never_negative(self, operations):
        futures = [operations.track(_value(n)) for n in range(5)]

        await asyncio.gather(*futures)
        await operations.wait()
        await asyncio.sleep(0)

        assert operations.size == 0
