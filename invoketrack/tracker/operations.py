"""
Coordination of in-flight asyncio operations.

An ``OperationTracker`` keeps the set of unsettled operations handed to it,
reports their timing when they settle and lets callers wait for everything
tracked so far, e.g. during shutdown.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar, Union

from ..notifier import EventNotifier, Subscription
from ..utils.logging import OFF_LOGGER, StructuredLogger
from .models import SettledEvent

T = TypeVar("T")

Operation = Union[Awaitable[T], Callable[[], Awaitable[T]]]


class OperationTracker:
    """
    Tracks asyncio operations until they settle.

    Example::

        tracker = OperationTracker()
        tracker.on_settled(lambda event: print(event.label, event.duration))

        tracker.track(database.close(), "db-close")
        tracker.track(lambda: cache.flush(), "cache-flush")

        await asyncio.wait_for(tracker.wait(), timeout=30)
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self._logger = (logger or OFF_LOGGER).bind(component="operations")
        self._pending: Set["asyncio.Future[Any]"] = set()
        self._settled: EventNotifier[SettledEvent] = EventNotifier(logger=self._logger)

    @property
    def size(self) -> int:
        """Number of tracked operations that have not settled yet."""
        return len(self._pending)

    def on_settled(self, listener: Callable[[SettledEvent], Any]) -> Subscription:
        return self._settled.on_event(listener)

    def track(
        self, operation: Operation[T], label: Optional[str] = None
    ) -> "asyncio.Future[T]":
        """
        Track an awaitable, or a supplier of one, until it settles.

        For a supplier, timing starts when the supplier is invoked and a
        synchronous exception becomes an already-failed future. Coroutines are
        scheduled as tasks.

        A future or task created elsewhere may already have awaiters that
        resume before this tracker sees it settle. For those the returned
        handle is a new future that settles only after ``size`` and
        ``on_settled`` have been updated. Cancelling that handle does not
        cancel the original.

        Must be called from a running event loop.

        Returns:
            A future whose outcome is the operation's outcome
        """
        loop = asyncio.get_running_loop()
        is_supplier = callable(operation) and not inspect.isawaitable(operation)

        if self._logger.is_enabled(logging.DEBUG):
            self._logger.debug(
                "operation_tracked", {"label": label, "supplier": is_supplier}
            )

        start_time = time.perf_counter()
        awaitable: Any = operation
        shared = False
        if is_supplier:
            try:
                awaitable = operation()  # type: ignore[operator]
            except Exception as e:
                awaitable = loop.create_future()
                awaitable.set_exception(e)
            else:
                shared = asyncio.isfuture(awaitable)
        else:
            shared = asyncio.isfuture(operation)

        if not inspect.isawaitable(awaitable):
            value, awaitable = awaitable, loop.create_future()
            awaitable.set_result(value)

        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        handle = loop.create_future() if shared else future
        future.add_done_callback(
            lambda settled: self._on_done(settled, label, start_time, handle)
        )
        return handle

    async def wait(self) -> None:
        """
        Wait until every operation tracked before this call has settled.

        Operations tracked afterwards are not waited for. Failures of the
        waited operations are not raised.
        """
        snapshot = set(self._pending)
        if not snapshot:
            return

        self._logger.debug("operations_waiting", {"count": len(snapshot)})
        await asyncio.wait(snapshot)

    def _on_done(
        self,
        future: "asyncio.Future[Any]",
        label: Optional[str],
        start_time: float,
        handle: "asyncio.Future[Any]",
    ) -> None:
        self._pending.discard(future)
        duration = max(0.0, (time.perf_counter() - start_time) * 1000)

        if future.cancelled():
            event = SettledEvent(duration=duration, label=label, failed=True)
        else:
            error = future.exception()
            if error is not None:
                event = SettledEvent(
                    duration=duration, label=label, failed=True, result=error
                )
            else:
                event = SettledEvent(
                    duration=duration, label=label, result=future.result()
                )

        if self._logger.is_enabled(logging.DEBUG):
            self._logger.debug(
                "operation_settled",
                {"label": label, "duration_ms": duration, "failed": event.failed},
            )
        self._settled.notify(event)

        if handle is not future:
            _copy_outcome(future, handle)


def _copy_outcome(source: "asyncio.Future[Any]", target: "asyncio.Future[Any]") -> None:
    if target.done():
        return
    if source.cancelled():
        target.cancel()
        return
    error = source.exception()
    if error is not None:
        target.set_exception(error)
    else:
        target.set_result(source.result())
