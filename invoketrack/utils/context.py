"""
Per-task context storage.

Provides a small storage abstraction over ``contextvars`` so values set in one
asyncio task (and every suspension and resumption within it) never leak into
another task interleaved on the same event loop.
"""

import contextvars
import itertools
from typing import Any, Callable, Generic, Optional, Protocol, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")

_store_ids = itertools.count()


class ContextStore(Protocol[T]):
    """Storage whose value is scoped to the current logical task."""

    def get(self) -> Optional[T]:
        ...

    def enter_with(self, value: T) -> None:
        ...

    def run(self, value: T, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        ...

    def disable(self) -> None:
        ...


class ContextVarStore(Generic[T]):
    """
    ``ContextStore`` backed by a ``contextvars.ContextVar``.

    ``disable()`` bumps a generation counter; values written before that
    point read as ``None`` in every context until a new value is entered.
    """

    def __init__(self, name: Optional[str] = None):
        self._var: contextvars.ContextVar[Optional[Tuple[int, T]]] = (
            contextvars.ContextVar(
                name or f"invoketrack_store_{next(_store_ids)}", default=None
            )
        )
        self._generation = 0

    def get(self) -> Optional[T]:
        current = self._var.get()
        if current is None or current[0] != self._generation:
            return None
        return current[1]

    def enter_with(self, value: T) -> None:
        self._var.set((self._generation, value))

    def run(self, value: T, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """Call ``fn`` in a copy of the current context holding ``value``."""
        context = contextvars.copy_context()
        return context.run(self._run_with, value, fn, args, kwargs)

    def _run_with(
        self, value: T, fn: Callable[..., R], args: tuple, kwargs: dict
    ) -> R:
        self.enter_with(value)
        return fn(*args, **kwargs)

    def disable(self) -> None:
        self._generation += 1
