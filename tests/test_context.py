import shutil
import threading
import time
from datetime import datetime, timedelta

import pytest

from workbench.context import (
    CancelContext,
    Canceled,
    Context,
    ContextError,
    DeadlineExceeded,
    TimerContext,
    ValueContext,
    background,
    todo,
    with_cancel,
    with_deadline,
    with_timeout,
    with_value,
)


class _ManualContext(Context):
    def __init__(self):
        self._event = threading.Event()
        self._err = None

    def done(self):
        return self._event

    def err(self):
        return self._err

    def fire(self):
        self._err = Canceled()
        self._event.set()


def test_with_value_watcher_sees_value_and_cancel():
    ctx, cancel = with_cancel(background())
    value_ctx = with_value(ctx, "name", "one")
    seen = []

    def watch():
        while not value_ctx.done().wait(0.01):
            pass
        seen.append(value_ctx.value("name"))

    worker = threading.Thread(target=watch)
    worker.start()
    time.sleep(0.05)
    assert not value_ctx.done().is_set()
    cancel()
    worker.join(2)
    assert seen == ["one"]
    assert isinstance(value_ctx.err(), Canceled)


def test_with_timeout_expires():
    sub, cancel = with_timeout(background(), 0.05)
    try:
        assert sub.done().wait(2)
        assert isinstance(sub.err(), DeadlineExceeded)
    finally:
        cancel()
    assert isinstance(sub.err(), DeadlineExceeded)


def test_with_deadline_handler_observes_expiry():
    deadline = datetime.now() + timedelta(seconds=0.1)
    sub, cancel = with_deadline(background(), deadline)
    results = []

    def handler():
        if sub.done().wait(2):
            results.append(sub.err())

    worker = threading.Thread(target=handler)
    worker.start()
    try:
        assert sub.done().wait(2)
        worker.join(2)
        assert sub.deadline() == deadline
        assert len(results) == 1
        assert isinstance(results[0], DeadlineExceeded)
    finally:
        cancel()


def test_usage_cancel_triggers_cleanup(tmp_path):
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    sub, cancel = with_cancel(background())

    def cleanup():
        sub.done().wait()
        shutil.rmtree(work_dir)

    worker = threading.Thread(target=cleanup)
    worker.start()
    assert work_dir.exists()
    assert sub.err() is None
    cancel()
    worker.join(2)
    assert not work_dir.exists()
    assert sub.done().is_set()
    assert str(sub.err()) == "context canceled"


def test_background_and_todo_are_empty():
    for ctx in (background(), todo()):
        assert ctx.done() is None
        assert ctx.err() is None
        assert ctx.deadline() is None
        assert ctx.value("x") is None
    assert str(background()) == "context.Background"
    assert str(todo()) == "context.TODO"
    assert background() is background()


def test_parent_cancel_propagates_same_error():
    parent, cancel_parent = with_cancel(background())
    child, cancel_child = with_cancel(parent)
    grandchild, _ = with_cancel(with_value(child, "k", "v"))
    cancel_parent()
    assert child.done().is_set()
    assert grandchild.done().is_set()
    assert child.err() is parent.err()
    assert isinstance(grandchild.err(), Canceled)
    cancel_child()


def test_child_cancel_leaves_parent_alive():
    parent, cancel_parent = with_cancel(background())
    child, cancel_child = with_cancel(parent)
    cancel_child()
    assert isinstance(child.err(), Canceled)
    assert parent.err() is None
    assert not parent.done().is_set()
    cancel_parent()
    assert isinstance(parent.err(), Canceled)


def test_cancel_is_idempotent():
    ctx, cancel = with_cancel(background())
    cancel()
    first = ctx.err()
    cancel()
    assert ctx.err() is first


def test_child_of_canceled_parent_is_canceled_immediately():
    parent, cancel = with_cancel(background())
    cancel()
    child, _ = with_cancel(parent)
    assert child.done().is_set()
    assert child.err() is parent.err()


def test_deadline_in_past_cancels_immediately():
    ctx, cancel = with_deadline(background(), datetime.now() - timedelta(seconds=1))
    assert ctx.done().is_set()
    assert isinstance(ctx.err(), DeadlineExceeded)
    cancel()
    assert isinstance(ctx.err(), DeadlineExceeded)


def test_cancel_before_deadline_wins():
    ctx, cancel = with_timeout(background(), 0.05)
    cancel()
    assert ctx.done().is_set()
    assert str(ctx.err()) == "context canceled"
    time.sleep(0.1)
    assert str(ctx.err()) == "context canceled"


def test_earlier_parent_deadline_is_kept():
    parent, cancel_parent = with_timeout(background(), 10)
    child, cancel_child = with_deadline(parent, parent.deadline() + timedelta(seconds=60))
    try:
        assert child.deadline() == parent.deadline()
        assert isinstance(child, CancelContext)
        assert not isinstance(child, TimerContext)
    finally:
        cancel_child()
        cancel_parent()


def test_timer_child_canceled_by_parent():
    parent, cancel_parent = with_cancel(background())
    child, cancel_child = with_timeout(parent, 10)
    cancel_parent()
    assert child.done().is_set()
    assert isinstance(child.err(), Canceled)
    cancel_child()


def test_foreign_parent_cancellation_is_watched():
    parent = _ManualContext()
    child, cancel = with_cancel(parent)
    assert not child.done().is_set()
    parent.fire()
    assert child.done().wait(2)
    assert child.err() is parent.err()
    assert str(child) == "_ManualContext.WithCancel"
    cancel()


def test_value_lookup_chain_and_type_sensitivity():
    ctx = with_value(background(), "name", "one")
    ctx = with_value(ctx, 1, "int-key")
    assert ctx.value("name") == "one"
    assert ctx.value(1) == "int-key"
    assert ctx.value(1.0) is None
    assert ctx.value("missing") is None
    cancel_ctx, cancel = with_cancel(ctx)
    assert cancel_ctx.value("name") == "one"
    cancel()


def test_with_value_rejects_bad_arguments():
    with pytest.raises(ValueError):
        with_value(background(), None, "x")
    with pytest.raises(TypeError):
        with_value(background(), ["list"], "x")
    with pytest.raises(ValueError):
        with_value(None, "k", "x")
    with pytest.raises(ValueError):
        with_cancel(None)
    with pytest.raises(ValueError):
        with_deadline(None, datetime.now())


def test_string_forms():
    ctx, cancel = with_cancel(background())
    assert str(ctx) == "context.Background.WithCancel"
    cancel()
    assert str(with_value(background(), "k", "one")) == (
        "context.Background.WithValue(type str, val one)"
    )
    assert str(with_value(background(), "k", 5)) == (
        "context.Background.WithValue(type str, val <not Stringer>)"
    )
    timed, cancel_timed = with_timeout(background(), 10)
    assert str(timed).startswith("context.Background.WithDeadline(")
    cancel_timed()


def test_errors_are_context_errors():
    ctx, cancel = with_cancel(background())
    cancel()
    assert isinstance(ctx.err(), ContextError)
    assert str(ctx.err()) == "context canceled"
    assert str(DeadlineExceeded()) == "context deadline exceeded"
    assert DeadlineExceeded.timeout is True


def test_value_context_delegates_done_and_err():
    parent, cancel = with_cancel(background())
    ctx = with_value(parent, "k", "v")
    assert isinstance(ctx, ValueContext)
    assert ctx.done() is parent.done()
    cancel()
    assert ctx.err() is parent.err()