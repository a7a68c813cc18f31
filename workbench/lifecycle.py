"""Ready-made services, function-based listeners and lifecycle helpers."""

from __future__ import annotations

import queue
from datetime import timedelta
from typing import Callable, Optional, Union

from workbench.basic_service import BasicService, RunningFn, StartingFn, StoppingFn
from workbench.context import Context
from workbench.service import Listener, State

Iteration = Callable[[Context], None]


def new_idle_service(start: Optional[StartingFn], stop: Optional[StoppingFn]) -> BasicService:
    """A service that does nothing while running but goes through every state."""

    def run(ctx: Context) -> None:
        ctx.done().wait()

    return BasicService(start, run, stop)


def new_timer_service(
    interval: Union[float, timedelta],
    start: Optional[StartingFn],
    iteration: Iteration,
    stop: Optional[StoppingFn],
) -> BasicService:
    """A service that calls ``iteration`` every ``interval`` until stopped.

    An exception raised by ``iteration`` fails the service.
    """
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError("non-positive interval for timer service")

    def run(ctx: Context) -> None:
        done = ctx.done()
        while not done.wait(seconds):
            iteration(ctx)

    return BasicService(start, run, stop)


class FunctionListener(Listener):
    """A listener built from optional callables; missing ones are skipped."""

    def __init__(
        self,
        starting: Optional[Callable[[], None]] = None,
        running: Optional[Callable[[], None]] = None,
        stopping: Optional[Callable[[State], None]] = None,
        terminated: Optional[Callable[[State], None]] = None,
        failed: Optional[Callable[[State, BaseException], None]] = None,
    ) -> None:
        self._starting = starting
        self._running = running
        self._stopping = stopping
        self._terminated = terminated
        self._failed = failed

    def starting(self) -> None:
        if self._starting is not None:
            self._starting()

    def running(self) -> None:
        if self._running is not None:
            self._running()

    def stopping(self, from_state: State) -> None:
        if self._stopping is not None:
            self._stopping(from_state)

    def terminated(self, from_state: State) -> None:
        if self._terminated is not None:
            self._terminated(from_state)

    def failed(self, from_state: State, failure: BaseException) -> None:
        if self._failed is not None:
            self._failed(from_state, failure)


class FailureWatcher:
    """Collects the failures of watched services in the ``failures`` queue."""

    def __init__(self) -> None:
        self.failures: "queue.Queue[BaseException]" = queue.Queue()

    def watch_service(self, service: BasicService) -> None:
        """Report ``service``'s failure, wrapped with its description."""

        def on_failed(from_state: State, failure: BaseException) -> None:
            wrapped = RuntimeError(f"service {describe_service(service)} failed: {failure}")
            wrapped.__cause__ = failure
            self.failures.put(wrapped)

        service.add_listener(FunctionListener(failed=on_failed))


def start_and_await_running(ctx: Context, service: BasicService) -> None:
    """Start ``service`` and wait for Running; raise its failure if it has one."""
    service.start_async(ctx)
    try:
        service.await_running(ctx)
    except Exception as exc:
        failure = service.failure_case
        if failure is not None:
            raise failure from exc
        raise
    failure = service.failure_case
    if failure is not None:
        raise failure


def stop_and_await_terminated(ctx: Context, service: BasicService) -> None:
    """Stop ``service`` and wait for it to end; raise its failure if it has one."""
    service.stop_async()
    try:
        service.await_terminated(ctx)
    except Exception as exc:
        failure = service.failure_case
        if failure is not None:
            raise failure from exc
        raise
    failure = service.failure_case
    if failure is not None:
        raise failure


def describe_service(service: object) -> str:
    """Return the service's name, or its string form when it has none."""
    name = getattr(service, "service_name", "") or ""
    if not name:
        name = str(service)
    return name