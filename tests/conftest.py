from typing import List

import pytest

from invoketrack.config import reset_settings
from invoketrack.tracker import (
    ContextInvocationStack,
    Invocation,
    InvocationTracker,
    PhaseType,
)

_ENV_VARS = (
    "INVOKETRACK_DEFAULT_STACK",
    "INVOKETRACK_LOG_LEVEL",
    "INVOKETRACK_LOGGER_NAME",
    "INVOKETRACK_LOG_INVOCATION_ARGS",
)


class InvocationRecorder:
    """Collects every invocation published by a tracker, in order."""

    def __init__(self, tracker: InvocationTracker):
        self.invocations: List[Invocation] = []
        tracker.on_invoked(self.invocations.append)

    def of_phase(self, phase_type: PhaseType) -> List[Invocation]:
        return [inv for inv in self.invocations if inv.phase.type is phase_type]

    @property
    def started(self) -> List[Invocation]:
        return self.of_phase(PhaseType.STARTED)

    @property
    def completed(self) -> List[Invocation]:
        return self.of_phase(PhaseType.COMPLETED)

    @property
    def errored(self) -> List[Invocation]:
        return self.of_phase(PhaseType.ERRORED)

    def phases(self) -> List[PhaseType]:
        return [inv.phase.type for inv in self.invocations]


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def tracker():
    tracker = InvocationTracker(stack=ContextInvocationStack())
    yield tracker
    tracker.close()


@pytest.fixture
def recorder(tracker) -> InvocationRecorder:
    return InvocationRecorder(tracker)


@pytest.fixture
def make_recorder():
    return InvocationRecorder
