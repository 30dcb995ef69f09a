"""
invoketrack - in-process visibility into function calls and asyncio operations.

Tracks the lifecycle of wrapped calls (start, success, failure, duration) with
parent/child correlation that survives ``await``, coordinates in-flight
operations and deduplicates concurrent requests for the same work.
"""

__version__ = "0.1.0"

from .exceptions import ClosedError, ConfigurationError, InvokeTrackError
from .notifier import EventNotifier, Subscription
from .tracker import (
    Completed,
    ContextInvocationStack,
    Errored,
    Invocation,
    InvocationKey,
    InvocationStack,
    InvocationTracker,
    OperationTracker,
    PersistentCache,
    PhaseType,
    PlainInvocationStack,
    SettledEvent,
    Started,
    Tag,
    TransientCache,
    create_stack,
    track_methods,
)

__all__ = [
    "InvocationTracker",
    "track_methods",
    "Invocation",
    "InvocationKey",
    "PhaseType",
    "Started",
    "Completed",
    "Errored",
    "Tag",
    "InvocationStack",
    "PlainInvocationStack",
    "ContextInvocationStack",
    "create_stack",
    "OperationTracker",
    "TransientCache",
    "PersistentCache",
    "SettledEvent",
    "EventNotifier",
    "Subscription",
    "InvokeTrackError",
    "ClosedError",
    "ConfigurationError",
]
