"""A service that runs start, run and stop functions through its lifecycle."""

from __future__ import annotations

import queue
import threading
from typing import Callable, Optional

from workbench.context import CancelContext, CancelFunc, Context, with_cancel
from workbench.service import InvalidServiceStateError, Listener, State

StartingFn = Callable[[Context], None]
RunningFn = Callable[[Context], None]
StoppingFn = Callable[[Optional[BaseException]], None]

_POLL_INTERVAL = 0.01
_CLOSE = object()


class BasicService:
    """Drives a service through New, Starting, Running, Stopping and Terminated or Failed.

    Each function is optional; a missing one makes its state a no-op.
    The start and run functions receive the service context; an exception
    they raise fails the service.  The stop function receives the failure
    (or ``None``) and may raise to fail a service that had not failed yet.
    """

    def __init__(
        self,
        start: Optional[StartingFn] = None,
        run: Optional[RunningFn] = None,
        stop: Optional[StoppingFn] = None,
    ) -> None:
        self._start_fn = start
        self._running_fn = run
        self._stopping_fn = stop

        self._lock = threading.Lock()
        self._state = State.NEW
        self._failure: Optional[BaseException] = None
        self._listeners: list[queue.SimpleQueue] = []
        self._name = ""

        self._running_reached = threading.Event()
        self._terminated_reached = threading.Event()

        self._context: Optional[CancelContext] = None
        self._cancel: Optional[CancelFunc] = None

    def with_name(self, name: str) -> "BasicService":
        """Set the service name; ignored once the service has left New."""
        with self._lock:
            if self._state is State.NEW:
                self._name = name
        return self

    @property
    def service_name(self) -> str:
        with self._lock:
            return self._name

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    @property
    def failure_case(self) -> Optional[BaseException]:
        with self._lock:
            return self._failure

    @property
    def service_context(self) -> Optional[Context]:
        """The context passed to the service functions; ``None`` while New."""
        if self.state is State.NEW:
            return None
        return self._context

    def start_async(self, ctx: Context) -> None:
        """Start the service in the background; it must be in New."""

        def begin() -> None:
            self._context, self._cancel = with_cancel(ctx)
            self._notify(lambda listener: listener.starting(), close=False)
            threading.Thread(target=self._main, daemon=True).start()

        switched, old_state = self._switch_state(State.NEW, State.STARTING, begin)
        if not switched:
            raise InvalidServiceStateError(old_state, State.NEW)

    def stop_async(self) -> None:
        """Ask the service to stop; a service never started terminates at once."""
        if self.state in (State.STOPPING, State.TERMINATED, State.FAILED):
            return

        def terminate_new() -> None:
            self._running_reached.set()
            self._terminated_reached.set()
            self._notify(lambda listener: listener.terminated(State.NEW), close=True)

        terminated, _ = self._switch_state(State.NEW, State.TERMINATED, terminate_new)
        if not terminated and self._cancel is not None:
            self._cancel()

    def await_running(self, ctx: Context) -> None:
        """Wait until the service runs; raise if it ends up elsewhere or ``ctx`` ends."""
        self._await_state(ctx, State.RUNNING, self._running_reached)

    def await_terminated(self, ctx: Context) -> None:
        """Wait until the service terminates; raise if it fails or ``ctx`` ends."""
        self._await_state(ctx, State.TERMINATED, self._terminated_reached)

    def add_listener(self, listener: Listener) -> None:
        """Register ``listener``; it is notified on its own thread, in order."""
        with self._lock:
            if self._state in (State.TERMINATED, State.FAILED):
                return
            events: queue.SimpleQueue = queue.SimpleQueue()
            self._listeners.append(events)

        def deliver() -> None:
            while True:
                event = events.get()
                if event is _CLOSE:
                    return
                event(listener)

        threading.Thread(target=deliver, daemon=True).start()

    def _await_state(self, ctx: Context, expected: State, reached: threading.Event) -> None:
        ctx_done = ctx.done()
        if ctx_done is None:
            reached.wait()
        else:
            while not reached.wait(_POLL_INTERVAL):
                if ctx_done.is_set():
                    err = ctx.err()
                    if err is not None:
                        raise err

        current = self.state
        if current is expected:
            return
        failure = self.failure_case
        if failure is not None:
            raise InvalidServiceStateError(current, expected, failure) from failure
        raise InvalidServiceStateError(current, expected)

    def _switch_state(
        self, from_state: State, to_state: State, on_switch: Optional[Callable[[], None]] = None
    ) -> tuple[bool, State]:
        with self._lock:
            if self._state is not from_state:
                return False, self._state
            self._state = to_state
            if on_switch is not None:
                on_switch()
            return True, from_state

    def _must_switch_state(
        self, from_state: State, to_state: State, on_switch: Optional[Callable[[], None]] = None
    ) -> None:
        switched, _ = self._switch_state(from_state, to_state, on_switch)
        if not switched:
            raise RuntimeError("switchState failed")

    def _notify(self, event: Callable[[Listener], None], close: bool) -> None:
        # Called with the state lock held.
        for events in self._listeners:
            events.put(event)
            if close:
                events.put(_CLOSE)

    def _main(self) -> None:
        ctx = self._context
        cancel = self._cancel
        assert ctx is not None and cancel is not None

        start_error: Optional[BaseException] = None
        if self._start_fn is not None:
            try:
                self._start_fn(ctx)
            except Exception as exc:
                start_error = exc

        if start_error is not None:
            err = start_error

            def fail_starting() -> None:
                self._failure = err
                cancel()
                self._running_reached.set()
                self._terminated_reached.set()
                self._notify(lambda listener: listener.failed(State.STARTING, err), close=True)

            self._must_switch_state(State.STARTING, State.FAILED, fail_starting)
            return

        failure: Optional[BaseException] = None
        stopping_from = State.STARTING

        if ctx.err() is None:

            def enter_running() -> None:
                self._running_reached.set()
                self._notify(lambda listener: listener.running(), close=False)

            self._must_switch_state(State.STARTING, State.RUNNING, enter_running)
            stopping_from = State.RUNNING
            if self._running_fn is not None:
                try:
                    self._running_fn(ctx)
                except Exception as exc:
                    failure = exc

        origin = stopping_from

        def enter_stopping() -> None:
            if origin is State.STARTING:
                self._running_reached.set()
            self._notify(lambda listener: listener.stopping(origin), close=False)

        self._must_switch_state(origin, State.STOPPING, enter_stopping)

        cancel()

        if self._stopping_fn is not None:
            try:
                self._stopping_fn(failure)
            except Exception as exc:
                if failure is None:
                    failure = exc

        if failure is not None:
            final = failure

            def enter_failed() -> None:
                self._failure = final
                self._terminated_reached.set()
                self._notify(lambda listener: listener.failed(State.STOPPING, final), close=True)

            self._must_switch_state(State.STOPPING, State.FAILED, enter_failed)
        else:

            def enter_terminated() -> None:
                self._terminated_reached.set()
                self._notify(lambda listener: listener.terminated(State.STOPPING), close=True)

            self._must_switch_state(State.STOPPING, State.TERMINATED, enter_terminated)