import threading

import pytest

from workbench.basic_service import BasicService
from workbench.context import DeadlineExceeded, background, with_timeout
from workbench.service import InvalidServiceStateError, Listener, State


def _ctx(seconds=5.0):
    ctx, _ = with_timeout(background(), seconds)
    return ctx


def _wait_until_cancelled(ctx):
    ctx.done().wait()


def test_full_lifecycle():
    svc = BasicService(run=_wait_until_cancelled)
    assert svc.state is State.NEW
    svc.start_async(background())
    svc.await_running(_ctx())
    assert svc.state is State.RUNNING
    svc.stop_async()
    svc.await_terminated(_ctx())
    assert svc.state is State.TERMINATED
    assert svc.failure_case is None


def test_start_twice_raises():
    svc = BasicService(run=_wait_until_cancelled)
    svc.start_async(background())
    with pytest.raises(InvalidServiceStateError) as info:
        svc.start_async(background())
    assert info.value.expected is State.NEW
    svc.stop_async()
    svc.await_terminated(_ctx())


def test_start_failure_fails_service():
    boom = RuntimeError("start broke")

    def start(ctx):
        raise boom

    svc = BasicService(start=start)
    svc.start_async(background())
    with pytest.raises(InvalidServiceStateError) as info:
        svc.await_running(_ctx())
    assert info.value.state is State.FAILED
    assert info.value.failure is boom
    assert svc.failure_case is boom
    assert svc.service_context.err() is not None


def test_running_failure_fails_service():
    boom = ValueError("run broke")

    def run(ctx):
        raise boom

    svc = BasicService(run=run)
    svc.start_async(background())
    with pytest.raises(InvalidServiceStateError) as info:
        svc.await_terminated(_ctx())
    assert info.value.state is State.FAILED
    assert svc.failure_case is boom


def test_stopping_function_receives_failure():
    boom = ValueError("run broke")
    received = []

    def run(ctx):
        raise boom

    svc = BasicService(run=run, stop=received.append)
    svc.start_async(background())
    with pytest.raises(InvalidServiceStateError):
        svc.await_terminated(_ctx())
    assert received == [boom]


def test_stopping_error_becomes_failure():
    boom = OSError("stop broke")

    def stop(failure):
        raise boom

    svc = BasicService(run=_wait_until_cancelled, stop=stop)
    svc.start_async(background())
    svc.await_running(_ctx())
    svc.stop_async()
    with pytest.raises(InvalidServiceStateError):
        svc.await_terminated(_ctx())
    assert svc.failure_case is boom


def test_stop_before_start_terminates():
    svc = BasicService(run=_wait_until_cancelled)
    svc.stop_async()
    assert svc.state is State.TERMINATED
    svc.await_terminated(_ctx())
    with pytest.raises(InvalidServiceStateError) as info:
        svc.await_running(_ctx())
    assert info.value.state is State.TERMINATED
    assert info.value.failure is None


def test_with_name_ignored_after_start():
    svc = BasicService(run=_wait_until_cancelled).with_name("alpha")
    assert svc.service_name == "alpha"
    svc.start_async(background())
    svc.with_name("beta")
    assert svc.service_name == "alpha"
    svc.stop_async()
    svc.await_terminated(_ctx())


def test_service_context_none_before_start():
    svc = BasicService()
    assert svc.service_context is None
    svc.start_async(background())
    svc.await_terminated(_ctx())
    assert svc.service_context is not None
    assert svc.state is State.TERMINATED


def test_await_running_times_out():
    release = threading.Event()

    def start(ctx):
        release.wait()

    svc = BasicService(start=start)
    svc.start_async(background())
    with pytest.raises(DeadlineExceeded):
        svc.await_running(_ctx(0.05))
    release.set()
    svc.await_terminated(_ctx())
    assert svc.state is State.TERMINATED


def test_listener_sees_transitions_in_order():
    finished = threading.Event()
    events = []

    class Recorder(Listener):
        def starting(self):
            events.append("starting")

        def running(self):
            events.append("running")

        def stopping(self, from_state):
            events.append(("stopping", from_state))

        def terminated(self, from_state):
            events.append(("terminated", from_state))
            finished.set()

    svc = BasicService(run=_wait_until_cancelled)
    svc.add_listener(Recorder())
    svc.start_async(background())
    svc.await_running(_ctx())
    assert svc.state is State.RUNNING
    svc.stop_async()
    svc.await_terminated(_ctx())
    assert svc.state is State.TERMINATED
    assert svc.failure_case is None
    assert finished.wait(5)
    assert events == [
        "starting",
        "running",
        ("stopping", State.RUNNING),
        ("terminated", State.STOPPING),
    ]


def test_listener_not_added_after_termination():
    calls = []

    class Recorder(Listener):
        def terminated(self, from_state):
            calls.append(from_state)

    svc = BasicService()
    svc.stop_async()
    svc.add_listener(Recorder())
    svc.stop_async()
    assert calls == []
    assert svc.state is State.TERMINATED