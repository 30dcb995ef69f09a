"""
Deduplicating operation caches.

Both caches guarantee that concurrent requests for the same id share a
single execution of the supplier:

- ``TransientCache`` forgets an id as soon as its operation settles.
- ``PersistentCache`` keeps settled results until they are forgotten.

Callers own the id: it must identify the operation's true cache key (for
example the operation name plus its arguments). Collisions are not detected.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..notifier import Subscription
from ..utils.logging import OFF_LOGGER, StructuredLogger
from .models import SettledEvent
from .operations import OperationTracker

T = TypeVar("T")

Supplier = Callable[[], Awaitable[T]]


class _OperationCache:
    """Shared id-to-future bookkeeping on top of an ``OperationTracker``."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self._logger = (logger or OFF_LOGGER).bind(component=type(self).__name__)
        self._tracker = OperationTracker(logger=logger)
        self._entries: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def size(self) -> int:
        """Number of cached operations that have not settled yet."""
        return self._tracker.size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, id: object) -> bool:
        return id in self._entries

    def has(self, id: str) -> bool:
        return id in self._entries

    def on_settled(self, listener: Callable[[SettledEvent], Any]) -> Subscription:
        return self._tracker.on_settled(listener)

    def track(self, id: str, supplier: Supplier[T]) -> "asyncio.Future[T]":
        """
        Return the cached future for ``id``, running ``supplier`` only if the
        id is not cached.
        """
        existing = self._entries.get(id)
        if existing is not None:
            self._logger.debug("operation_cache_hit", {"id": id})
            return existing

        future = self._tracker.track(supplier, label=id)
        self._entries[id] = future
        future.add_done_callback(lambda settled: self._on_settled(id, settled))
        return future

    async def wait(self, *ids: str) -> None:
        """
        Wait for in-flight operations to settle.

        Without ids, waits for everything in flight when called. With ids,
        waits only for those that are cached and still in flight; unknown ids
        are ignored.
        """
        if not ids:
            await self._tracker.wait()
            return

        selected = {
            self._entries[id]
            for id in ids
            if id in self._entries and not self._entries[id].done()
        }
        if not selected:
            return

        self._logger.debug("operations_waiting", {"ids": list(ids)})
        await asyncio.wait(selected)

    def _on_settled(self, id: str, future: "asyncio.Future[Any]") -> None:
        if self._entries.get(id) is future and self._should_evict(future):
            del self._entries[id]
            self._logger.debug("operation_cache_evicted", {"id": id})

    def _should_evict(self, future: "asyncio.Future[Any]") -> bool:
        raise NotImplementedError


class TransientCache(_OperationCache):
    """
    Deduplicates concurrent requests while an operation is in flight.

    Once the operation resolves or fails, its id is released and the next
    ``track`` call runs the supplier again.

    Example::

        cache = TransientCache()

        # Only one fetch_profile() runs; all callers get its result
        profiles = await asyncio.gather(
            cache.track("user-42", lambda: fetch_profile(42)),
            cache.track("user-42", lambda: fetch_profile(42)),
        )
    """

    def _should_evict(self, future: "asyncio.Future[Any]") -> bool:
        return True


class PersistentCache(_OperationCache):
    """
    Caches operations until they are explicitly forgotten.

    Suited to one-time initialization and rarely-changing data. Failed
    operations stay cached too, unless ``forget_on_rejection`` is set, in
    which case they are evicted on failure so the next call retries.

    ``size`` counts operations still in flight; ``len(cache)`` counts all
    cached entries, settled or not.
    """

    def __init__(
        self,
        forget_on_rejection: bool = False,
        logger: Optional[StructuredLogger] = None,
    ):
        super().__init__(logger=logger)
        self.forget_on_rejection = forget_on_rejection

    def forget(self, id: str) -> bool:
        """Evict ``id``; returns True if it was cached."""
        removed = self._entries.pop(id, None) is not None
        if removed:
            self._logger.debug("operation_cache_forgotten", {"id": id})
        return removed

    def clear(self) -> None:
        """Evict every cached operation."""
        if self._logger.is_enabled(logging.DEBUG):
            self._logger.debug("operation_cache_cleared", {"count": len(self._entries)})
        self._entries.clear()

    def _should_evict(self, future: "asyncio.Future[Any]") -> bool:
        if not self.forget_on_rejection:
            return False
        return future.cancelled() or future.exception() is not None
