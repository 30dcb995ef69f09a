"""
Invocation tracking, operation coordination and deduplicating caches.
"""

from .cache import PersistentCache, TransientCache
from .invocation import InvocationTracker
from .models import (
    Completed,
    Errored,
    Invocation,
    InvocationKey,
    InvocationPhase,
    PhaseType,
    SettledEvent,
    Started,
    Tag,
    Tags,
)
from .operations import OperationTracker
from .stack import (
    ContextInvocationStack,
    InvocationStack,
    PlainInvocationStack,
    create_stack,
)
from .track_methods import track_methods

__all__ = [
    # Invocations
    "InvocationTracker",
    "track_methods",
    "Invocation",
    "InvocationKey",
    "InvocationPhase",
    "PhaseType",
    "Started",
    "Completed",
    "Errored",
    "Tag",
    "Tags",
    # Stacks
    "InvocationStack",
    "PlainInvocationStack",
    "ContextInvocationStack",
    "create_stack",
    # Operations
    "OperationTracker",
    "TransientCache",
    "PersistentCache",
    "SettledEvent",
]
