"""
Invocation tracking.

An ``InvocationTracker`` wraps functions so every call publishes a
``started`` invocation and exactly one terminal (``completed`` or
``errored``) invocation, correlated to its parent through an
``InvocationStack``.
"""

import asyncio
import functools
import inspect
import itertools
import logging
import sys
import time
import uuid
import weakref
from collections import defaultdict
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union, cast

from ..config import get_settings
from ..notifier import EventNotifier, Subscription
from ..utils.logging import OFF_LOGGER, StructuredLogger, sanitize_arguments
from .models import (
    Completed,
    Errored,
    Invocation,
    InvocationKey,
    InvocationPhase,
    Started,
    Tag,
    Tags,
    merge_tags,
)
from .stack import InvocationStack, create_stack

F = TypeVar("F", bound=Callable[..., Any])

Listener = Callable[[Invocation], Any]

# Tracked wrapper -> id of the tracker that created it. Not stored on the
# wrapper, where functools.wraps would copy it to outer decorators.
_wrappers: "weakref.WeakKeyDictionary[Callable[..., Any], str]" = (
    weakref.WeakKeyDictionary()
)


def _tracker_id_of(value: Any) -> Optional[str]:
    if not callable(value):
        return None
    try:
        return _wrappers.get(value)
    except TypeError:
        # Not weak-referenceable or not hashable, so never one of ours.
        return None


def _mark_coroutine_function(wrapper: Callable[..., Any]) -> None:
    if sys.version_info >= (3, 12):
        inspect.markcoroutinefunction(wrapper)


def _elapsed_ms(start_time: float) -> float:
    return max(0.0, (time.perf_counter() - start_time) * 1000)


class InvocationTracker:
    """
    Observes calls of wrapped functions.

    Listeners registered with ``on_invoked`` see every phase and are notified
    before the phase-specific listeners (``on_started``, ``on_completed``,
    ``on_errored``) for the same invocation.

    Args:
        stack: Stack used for parent/child correlation. When omitted the tracker
            creates its own (see ``create_stack``) and closes it on ``close()``;
            a stack passed in may be shared with other trackers and is left open.
        tags: Tags added to every invocation of this tracker
        logger: Optional structured logger for tracker narration

    Example::

        tracker = InvocationTracker(tags={"service": "users"})
        tracker.on_completed(lambda inv: print(inv.key.id, inv.phase.duration))

        fetch_user = tracker.track("fetch_user", fetch_user)
        await fetch_user("42")
    """

    def __init__(
        self,
        stack: Optional[InvocationStack] = None,
        tags: Optional[Tags] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.id = uuid.uuid4().hex[:12]
        self._logger = (logger or OFF_LOGGER).bind(tracker_id=self.id)
        self._tags = merge_tags(tags)
        self._include_args = get_settings().log_invocation_args

        self._owns_stack = stack is None
        self._stack = stack if stack is not None else create_stack(logger=logger)

        self._invoked: EventNotifier[Invocation] = EventNotifier(logger=self._logger)
        self._started: EventNotifier[Invocation] = EventNotifier(logger=self._logger)
        self._completed: EventNotifier[Invocation] = EventNotifier(logger=self._logger)
        self._errored: EventNotifier[Invocation] = EventNotifier(logger=self._logger)

        self._counters: Dict[str, "itertools.count[int]"] = defaultdict(itertools.count)
        self._closed = False

    @property
    def stack(self) -> InvocationStack:
        return self._stack

    @property
    def closed(self) -> bool:
        return self._closed

    def on_invoked(self, listener: Listener) -> Subscription:
        return self._invoked.on_event(listener)

    def on_started(self, listener: Listener) -> Subscription:
        return self._started.on_event(listener)

    def on_completed(self, listener: Listener) -> Subscription:
        return self._completed.on_event(listener)

    def on_errored(self, listener: Listener) -> Subscription:
        return self._errored.on_event(listener)

    def close(self) -> None:
        """
        Stop publishing invocations and release listeners.

        Calls already in flight finish normally but publish nothing.
        """
        if self._closed:
            return

        self._logger.info("tracker_closed", {"owns_stack": self._owns_stack})
        self._closed = True

        self._invoked.close()
        self._started.close()
        self._completed.close()
        self._errored.close()

        if self._owns_stack:
            self._stack.close()

    def is_tracked(self, value: Any) -> Union[str, bool]:
        """Return "this", "other" or False depending on who wrapped ``value``."""
        tracker_id = _tracker_id_of(value)
        if tracker_id is None:
            return False
        return "this" if tracker_id == self.id else "other"

    def track(self, operation: str, fn: F, tags: Optional[Tags] = None) -> F:
        """
        Wrap ``fn`` so each call is tracked as ``operation``.

        Functions already wrapped by this tracker are returned unchanged, as is
        every function once the tracker is closed. ``tags`` are appended to the
        tracker tags.
        """
        if self._closed:
            self._logger.debug("tracker_closed_track_ignored", {"operation": operation})
            return fn

        if _tracker_id_of(fn) == self.id:
            return fn

        merged_tags = merge_tags(self._tags, tags) or None

        if inspect.iscoroutinefunction(fn):

            # The scope opens when the wrapper is called, not when the returned
            # coroutine first runs, so parent, index and start time follow
            # call order.
            @functools.wraps(fn)
            def async_wrapper(*args, **kwargs):
                if self._closed:
                    return fn(*args, **kwargs)

                scope = self._open_scope(operation, args, kwargs, merged_tags)
                scope.on_enter()
                try:
                    coroutine = fn(*args, **kwargs)
                except BaseException as e:
                    scope.on_failure(e, was_async=False)
                    raise

                scope.leave()
                return scope.settle_coroutine(coroutine)

            _mark_coroutine_function(async_wrapper)
            wrapper: Callable[..., Any] = async_wrapper
        else:

            @functools.wraps(fn)
            def sync_wrapper(*args, **kwargs):
                if self._closed:
                    return fn(*args, **kwargs)

                scope = self._open_scope(operation, args, kwargs, merged_tags)
                scope.on_enter()
                try:
                    result = fn(*args, **kwargs)
                except BaseException as e:
                    scope.on_failure(e, was_async=False)
                    raise

                if inspect.iscoroutine(result):
                    scope.leave()
                    return scope.settle_coroutine(result)

                if asyncio.isfuture(result):
                    scope.leave()
                    result.add_done_callback(scope.settle_future)
                    return result

                scope.on_success(result, was_async=False)
                return result

            wrapper = sync_wrapper

        _wrappers[wrapper] = self.id
        return cast(F, wrapper)

    def tracked(
        self, operation: Optional[str] = None, tags: Optional[Tags] = None
    ) -> Callable[[F], F]:
        """
        Decorator form of ``track``.

        Examples:
            @tracker.tracked()  # operation named after the function
            @tracker.tracked("load_config", tags={"layer": "io"})
        """

        def decorator(fn: F) -> F:
            return self.track(operation or fn.__qualname__, fn, tags=tags)

        return decorator

    def _open_scope(
        self,
        operation: str,
        args: tuple,
        kwargs: Dict[str, Any],
        tags: Optional[Tuple[Tag, ...]],
    ) -> "_InvocationScope":
        index = next(self._counters[operation])
        key = InvocationKey.create(self.id, operation, index)
        return _InvocationScope(
            tracker=self,
            key=key,
            parent_key=self._stack.peek(),
            args=args or None,
            kwargs=dict(kwargs) if kwargs else None,
            tags=tags,
        )

    def _publish(self, invocation: Invocation) -> None:
        self._invoked.notify(invocation)
        phase = invocation.phase
        if isinstance(phase, Started):
            self._started.notify(invocation)
        elif isinstance(phase, Completed):
            self._completed.notify(invocation)
        else:
            self._errored.notify(invocation)


class _InvocationScope:
    """Lifecycle of one physical call: publishes phases and owns its stack frame."""

    def __init__(
        self,
        tracker: InvocationTracker,
        key: InvocationKey,
        parent_key: Optional[InvocationKey],
        args: Optional[tuple],
        kwargs: Optional[Dict[str, Any]],
        tags: Optional[Tuple[Tag, ...]],
    ):
        self.tracker = tracker
        self.key = key
        self.parent_key = parent_key
        self.args = args
        self.kwargs = kwargs
        self.tags = tags

        self.start_time: float = 0.0
        self._pushed = False
        self._settled = False

    def on_enter(self) -> None:
        """Publish the started invocation, push the key and start the clock."""
        started = self._invocation(Started())
        self._log("invocation_started", logging.DEBUG, started)
        self.tracker._publish(started)

        self.resume()
        self.start_time = time.perf_counter()

    def resume(self) -> None:
        self.tracker._stack.push(self.key)
        self._pushed = True

    def leave(self) -> None:
        if self._pushed:
            self._pushed = False
            self.tracker._stack.pop()

    def on_success(self, result: Any, was_async: bool) -> None:
        self._settle(Completed(_elapsed_ms(self.start_time), was_async, result))

    def on_failure(self, error: BaseException, was_async: bool) -> None:
        self._settle(Errored(_elapsed_ms(self.start_time), error, was_async))

    async def settle_coroutine(self, coroutine) -> Any:
        """Await a coroutine returned by a sync function with the key active again."""
        self.resume()
        try:
            result = await coroutine
        except BaseException as e:
            self.on_failure(e, was_async=True)
            raise
        self.on_success(result, was_async=True)
        return result

    def settle_future(self, future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            self.on_failure(asyncio.CancelledError(), was_async=True)
            return

        error = future.exception()
        if error is not None:
            self.on_failure(error, was_async=True)
        else:
            self.on_success(future.result(), was_async=True)

    def _settle(self, phase: InvocationPhase) -> None:
        self.leave()
        if self._settled:
            return
        self._settled = True

        invocation = self._invocation(phase)
        if isinstance(phase, Errored):
            self._log("invocation_errored", logging.WARNING, invocation)
        else:
            self._log("invocation_completed", logging.DEBUG, invocation)
        self.tracker._publish(invocation)

    def _invocation(self, phase: InvocationPhase) -> Invocation:
        return Invocation(
            key=self.key,
            phase=phase,
            parent_key=self.parent_key,
            args=self.args,
            kwargs=self.kwargs,
            tags=self.tags,
        )

    def _log(self, event_name: str, level: int, invocation: Invocation) -> None:
        logger = self.tracker._logger
        if not logger.is_enabled(level):
            return

        data = invocation.to_dict()
        if self.tracker._include_args:
            data.update(sanitize_arguments(self.args or (), self.kwargs or {}))
        logger.event(event_name, data, level)
