"""
One-to-many event publishing.

Every tracker component exposes its lifecycle events through an
``EventNotifier``: listeners register and get a ``Subscription`` back,
``notify`` delivers to each listener in isolation, and ``wait_for_event``
lets a coroutine await the next published event.
"""

import asyncio
import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

from ..exceptions import ClosedError
from ..utils.logging import OFF_LOGGER, StructuredLogger

T = TypeVar("T")

Listener = Callable[[T], Any]


class Subscription:
    """Handle returned by ``on_event``; closing it removes the listener."""

    def __init__(self, notifier: "EventNotifier", listener: Callable[[Any], Any]):
        self._notifier = notifier
        self._listener = listener
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._notifier._remove(self._listener)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EventNotifier(Generic[T]):
    """
    Publishes events of type ``T`` to registered listeners.

    A listener that raises, or returns a coroutine that fails, never prevents
    delivery to the remaining listeners and never reaches the publisher.

    Args:
        on_error: Called with each listener failure; its own errors are ignored
        logger: Optional structured logger for listener failures
    """

    def __init__(
        self,
        on_error: Optional[Callable[[BaseException], Any]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._listeners: List[Callable[[T], Any]] = []
        self._waiter: Optional["asyncio.Future[T]"] = None
        self._on_error = on_error
        self._logger = logger or OFF_LOGGER

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def on_event(self, listener: Callable[[T], Any]) -> Subscription:
        """Register ``listener`` and return the subscription that removes it."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def wait_for_event(self) -> "asyncio.Future[T]":
        """
        Return a future resolved with the next notified event.

        Concurrent waiters share the same future. Must be called from a
        running event loop.
        """
        if self._waiter is None or self._waiter.done():
            self._waiter = asyncio.get_running_loop().create_future()
        return self._waiter

    def notify(self, event: T) -> None:
        if not self._listeners and self._waiter is None:
            return

        for listener in list(self._listeners):
            try:
                result = listener(event)
            except Exception as e:
                self._handle_error(e)
                continue

            if asyncio.iscoroutine(result):
                self._schedule(result)

        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(event)

    def close(self) -> None:
        """Remove every listener and fail a pending waiter with ``ClosedError``."""
        self._listeners.clear()

        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_exception(ClosedError("EventNotifier closed"))

    def _remove(self, listener: Callable[[T], Any]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _schedule(self, coroutine) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coroutine)
        except RuntimeError as e:
            # No running loop: the coroutine can never run.
            coroutine.close()
            self._handle_error(e)
            return

        task.add_done_callback(self._check_task)

    def _check_task(self, task: "asyncio.Task") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._handle_error(error)

    def _handle_error(self, error: BaseException) -> None:
        self._logger.failure("listener_failed", error, level=logging.WARNING)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                pass
