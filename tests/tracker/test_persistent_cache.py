import asyncio

import pytest

from invoketrack.tracker import PersistentCache


class Supplier:
    def __init__(self, result="value", error=None):
        self.calls = 0
        self.result = result
        self.error = error

    def __call__(self):
        self.calls += 1
        return self._run()

    async def _run(self):
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.result


class TestPersistentCache:
    @pytest.mark.asyncio
    async def test_results_stay_cached(self):
        cache = PersistentCache()
        supplier = Supplier(result={"theme": "dark"})

        first = cache.track("settings", supplier)
        assert await first == {"theme": "dark"}
        await asyncio.sleep(0)

        second = cache.track("settings", supplier)

        assert second is first
        assert await second == {"theme": "dark"}
        assert supplier.calls == 1
        assert cache.has("settings")

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_execution(self):
        cache = PersistentCache()
        supplier = Supplier()

        results = await asyncio.gather(
            *(cache.track("init", supplier) for _ in range(5))
        )

        assert results == ["value"] * 5
        assert supplier.calls == 1

    @pytest.mark.asyncio
    async def test_size_counts_in_flight_and_len_counts_entries(self):
        cache = PersistentCache()
        supplier = Supplier()

        future = cache.track("a", supplier)
        assert (cache.size, len(cache)) == (1, 1)

        await future
        await asyncio.sleep(0)

        assert (cache.size, len(cache)) == (0, 1)

    @pytest.mark.asyncio
    async def test_failures_stay_cached_by_default(self):
        cache = PersistentCache()
        supplier = Supplier(error=RuntimeError("init failed"))

        with pytest.raises(RuntimeError):
            await cache.track("init", supplier)
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            await cache.track("init", supplier)
        assert supplier.calls == 1

    @pytest.mark.asyncio
    async def test_forget_on_rejection_retries_failures(self):
        cache = PersistentCache(forget_on_rejection=True)
        supplier = Supplier(error=RuntimeError("flaky"))

        with pytest.raises(RuntimeError):
            await cache.track("flaky", supplier)
        await asyncio.sleep(0)

        assert not cache.has("flaky")

        supplier.error = None
        assert await cache.track("flaky", supplier) == "value"
        await asyncio.sleep(0)

        assert cache.has("flaky")
        assert supplier.calls == 2

    @pytest.mark.asyncio
    async def test_forget_on_rejection_with_synchronous_error(self):
        cache = PersistentCache(forget_on_rejection=True)

        def supplier():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await cache.track("bad", supplier)
        await asyncio.sleep(0)

        assert not cache.has("bad")

    @pytest.mark.asyncio
    async def test_forget(self):
        cache = PersistentCache()
        supplier = Supplier()
        await cache.track("a", supplier)

        assert cache.forget("a") is True
        assert cache.forget("a") is False
        assert not cache.has("a")

        await cache.track("a", supplier)
        assert supplier.calls == 2

    @pytest.mark.asyncio
    async def test_forgetting_in_flight_entry_is_not_undone_by_settlement(self):
        cache = PersistentCache()
        supplier = Supplier()

        first = cache.track("a", supplier)
        cache.forget("a")
        second = cache.track("a", supplier)
        await asyncio.gather(first, second)
        await asyncio.sleep(0)

        assert second is not first
        assert cache.track("a", supplier) is second

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = PersistentCache()
        await asyncio.gather(
            cache.track("a", Supplier()), cache.track("b", Supplier())
        )

        cache.clear()

        assert len(cache) == 0
        assert not cache.has("a")
        assert not cache.has("b")

    @pytest.mark.asyncio
    async def test_cache_hits_do_not_emit_settled_events(self):
        cache = PersistentCache()
        events = []
        cache.on_settled(events.append)
        supplier = Supplier()

        await cache.track("a", supplier)
        await asyncio.sleep(0)
        await cache.track("a", supplier)
        await asyncio.sleep(0)

        assert [event.label for event in events] == ["a"]

    @pytest.mark.asyncio
    async def test_wait_for_selected_ids(self):
        cache = PersistentCache()
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()
            return "late"

        cache.track("fast", Supplier())
        slow = cache.track("slow", blocked)

        await asyncio.wait_for(cache.wait("fast"), timeout=1)
        assert not slow.done()

        gate.set()
        await asyncio.wait_for(cache.wait(), timeout=1)
        assert slow.result() == "late"
