"""Service states, state-change listeners and the state error."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class State(Enum):
    """Lifecycle state of a service."""

    NEW = 0
    STARTING = 1
    RUNNING = 2
    STOPPING = 3
    TERMINATED = 4
    FAILED = 5

    def __str__(self) -> str:
        return self.name.capitalize()


class Listener:
    """Receives notifications about service state changes.

    Every method does nothing by default; override the ones of interest.
    """

    def starting(self) -> None:
        """The service has entered the Starting state."""

    def running(self) -> None:
        """The service has entered the Running state."""

    def stopping(self, from_state: State) -> None:
        """The service has entered the Stopping state from ``from_state``."""

    def terminated(self, from_state: State) -> None:
        """The service has terminated from ``from_state``."""

    def failed(self, from_state: State, failure: BaseException) -> None:
        """The service has failed in ``from_state`` with ``failure``."""


class InvalidServiceStateError(Exception):
    """A service was not in the state an operation expected."""

    def __init__(
        self,
        state: State,
        expected: State,
        failure: Optional[BaseException] = None,
    ) -> None:
        message = f"invalid service state: {state}, expected: {expected}"
        if failure is not None:
            message += f", failure: {failure}"
        super().__init__(message)
        self.state = state
        self.expected = expected
        self.failure = failure