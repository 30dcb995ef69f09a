"""
Invocation stacks used to correlate nested calls.

The tracker peeks the stack to find the parent of a new invocation, pushes
the new key while the call runs and pops it once the call settles.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..config import get_settings
from ..exceptions import ConfigurationError
from ..utils.context import ContextStore, ContextVarStore
from ..utils.logging import OFF_LOGGER, StructuredLogger
from .models import InvocationKey


class InvocationStack(ABC):
    """
    Holds the keys of the currently active invocations, innermost on top.

    ``pop`` on an empty stack and repeated ``close`` calls are tolerated.
    """

    @abstractmethod
    def push(self, key: InvocationKey) -> None:
        ...

    @abstractmethod
    def peek(self) -> Optional[InvocationKey]:
        ...

    @abstractmethod
    def pop(self) -> Optional[InvocationKey]:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class PlainInvocationStack(InvocationStack):
    """
    A single list shared by every caller.

    Only correct when tracked calls nest synchronously or asynchronous chains
    never interleave; concurrent tasks will see each other's frames.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self._logger = (logger or OFF_LOGGER).bind(stack="plain")
        self._keys: List[InvocationKey] = []
        self._logger.debug("stack_created")

    def push(self, key: InvocationKey) -> None:
        self._logger.debug("stack_push", {"invocation_id": key.id})
        self._keys.append(key)

    def peek(self) -> Optional[InvocationKey]:
        return self._keys[-1] if self._keys else None

    def pop(self) -> Optional[InvocationKey]:
        if not self._keys:
            self._logger.debug("stack_pop_empty")
            return None
        key = self._keys.pop()
        self._logger.debug("stack_pop", {"invocation_id": key.id})
        return key

    def close(self) -> None:
        self._logger.debug("stack_closed")
        self._keys.clear()


class ContextInvocationStack(InvocationStack):
    """
    A stack scoped to the current logical task.

    Each asyncio task works on its own immutable copy of the keys, so two
    interleaved call chains never observe each other's invocations.
    """

    def __init__(
        self,
        store: Optional[ContextStore[Tuple[InvocationKey, ...]]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self._store = store if store is not None else ContextVarStore()
        self._logger = (logger or OFF_LOGGER).bind(stack="context")
        self._logger.debug("stack_created")

    def push(self, key: InvocationKey) -> None:
        self._logger.debug("stack_push", {"invocation_id": key.id})
        current = self._store.get() or ()
        self._store.enter_with(current + (key,))

    def peek(self) -> Optional[InvocationKey]:
        current = self._store.get()
        return current[-1] if current else None

    def pop(self) -> Optional[InvocationKey]:
        current = self._store.get()
        if not current:
            self._logger.debug("stack_pop_empty")
            return None

        key = current[-1]
        self._logger.debug("stack_pop", {"invocation_id": key.id})
        self._store.enter_with(current[:-1])
        return key

    def close(self) -> None:
        self._logger.debug("stack_closed")
        self._store.disable()


def create_stack(
    kind: Optional[str] = None, logger: Optional[StructuredLogger] = None
) -> InvocationStack:
    """
    Create an invocation stack.

    Args:
        kind: "context" or "plain"; defaults to the ``default_stack`` setting
        logger: Optional logger for stack narration

    Raises:
        ConfigurationError: If ``kind`` is not a known stack kind
    """
    kind = (kind or get_settings().default_stack).lower()
    if kind == "context":
        return ContextInvocationStack(logger=logger)
    if kind == "plain":
        return PlainInvocationStack(logger=logger)
    raise ConfigurationError(
        f"Unknown invocation stack kind '{kind}'", setting="default_stack", value=kind
    )
