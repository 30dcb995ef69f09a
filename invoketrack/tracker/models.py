"""
Data model for tracked invocations and operations.

An ``Invocation`` is published once per phase of a call; the phase itself is
a closed union of ``Started``, ``Completed`` and ``Errored``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

TagValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class InvocationKey:
    """
    Unique identity of one tracked invocation.

    Attributes:
        id: Stable identifier combining tracker id, operation and index
        tracker_id: Id of the tracker that created the invocation
        operation: Logical name of the tracked operation
        index: Zero-based sequence number of the call for this operation
    """

    id: str
    tracker_id: str
    operation: str
    index: int

    @classmethod
    def create(cls, tracker_id: str, operation: str, index: int) -> "InvocationKey":
        return cls(
            id=f"{tracker_id}.{operation}.{index}",
            tracker_id=tracker_id,
            operation=operation,
            index=index,
        )


@dataclass(frozen=True)
class Tag:
    """A name/value pair attached to invocations for filtering and correlation."""

    name: str
    value: TagValue


Tags = Union[Mapping[str, TagValue], Iterable[Union[Tag, Tuple[str, TagValue]]]]


def to_tags(tags: Optional[Tags]) -> Tuple[Tag, ...]:
    """Normalize a mapping or sequence of tags into a tuple of ``Tag``."""
    if not tags:
        return ()
    if isinstance(tags, Mapping):
        return tuple(Tag(name, value) for name, value in tags.items())
    return tuple(tag if isinstance(tag, Tag) else Tag(*tag) for tag in tags)


def merge_tags(*sources: Optional[Tags]) -> Tuple[Tag, ...]:
    """Concatenate tag sources in order; duplicates are kept."""
    merged: Tuple[Tag, ...] = ()
    for source in sources:
        merged += to_tags(source)
    return merged


class PhaseType(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass(frozen=True)
class Started:
    type: PhaseType = field(default=PhaseType.STARTED, init=False)


@dataclass(frozen=True)
class Completed:
    """
    Terminal phase of a successful call.

    Attributes:
        duration: Milliseconds from the call of the tracked function to settlement
        was_async: True when the result was awaited before settling
        result: The returned (or awaited) value
    """

    duration: float
    was_async: bool = False
    result: Any = None
    type: PhaseType = field(default=PhaseType.COMPLETED, init=False)


@dataclass(frozen=True)
class Errored:
    """
    Terminal phase of a failed call; ``error`` is the exception as raised.
    """

    duration: float
    error: BaseException
    was_async: bool = False
    type: PhaseType = field(default=PhaseType.ERRORED, init=False)


InvocationPhase = Union[Started, Completed, Errored]


@dataclass(frozen=True)
class Invocation:
    """
    One lifecycle observation of a tracked call.

    ``parent_key`` is the key active on the invocation stack when the call
    started; it may belong to another tracker sharing the same stack.
    """

    key: InvocationKey
    phase: InvocationPhase
    parent_key: Optional[InvocationKey] = None
    args: Optional[Tuple[Any, ...]] = None
    kwargs: Optional[Dict[str, Any]] = None
    tags: Optional[Tuple[Tag, ...]] = None

    @property
    def phase_type(self) -> PhaseType:
        return self.phase.type

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the invocation into loggable fields."""
        data: Dict[str, Any] = {
            "invocation_id": self.key.id,
            "tracker_id": self.key.tracker_id,
            "operation": self.key.operation,
            "index": self.key.index,
            "phase": self.phase.type.value,
            "parent_id": self.parent_key.id if self.parent_key else None,
            "args_count": len(self.args or ()) + len(self.kwargs or {}),
        }
        if self.tags:
            data["tags"] = [f"{tag.name}={tag.value}" for tag in self.tags]

        phase = self.phase
        if isinstance(phase, Completed):
            data.update(duration_ms=phase.duration, was_async=phase.was_async)
        elif isinstance(phase, Errored):
            data.update(
                duration_ms=phase.duration,
                was_async=phase.was_async,
                error_type=type(phase.error).__name__,
                error_message=str(phase.error),
            )
        return data


@dataclass(frozen=True)
class SettledEvent:
    """
    Emitted by an ``OperationTracker`` when a tracked operation settles.

    Attributes:
        duration: Milliseconds from tracking (or supplier invocation) to settlement
        label: Label given when the operation was tracked
        failed: True when the operation raised or was cancelled
        result: The resolved value, or the exception for failed operations
    """

    duration: float
    label: Optional[str] = None
    failed: bool = False
    result: Any = None
