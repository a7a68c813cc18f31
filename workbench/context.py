"""Cancellation signals, deadlines and request-scoped values carried through a call tree.

A context is created from a parent.  Cancelling a parent cancels every
context derived from it.  Cancelling a child leaves the parent alone and
removes the child from the parent's bookkeeping.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

CancelFunc = Callable[[], None]

_POLL_INTERVAL = 0.01


class ContextError(Exception):
    """Base class for the reasons a context ends."""


class Canceled(ContextError):
    """The context was cancelled explicitly."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError):
    """The context's deadline passed."""

    timeout = True
    temporary = True

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """Base context: no deadline, never done, no error, no values.

    Subclasses override what they carry.  ``done()`` returns a
    ``threading.Event`` that is set once the context ends, or ``None`` if
    the context can never end.
    """

    def deadline(self) -> Optional[datetime]:
        return None

    def done(self) -> Optional[threading.Event]:
        return None

    def err(self) -> Optional[ContextError]:
        return None

    def value(self, key: Any) -> Any:
        return None


class _EmptyContext(Context):
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name


_BACKGROUND = _EmptyContext("context.Background")
_TODO = _EmptyContext("context.TODO")

# An event that is already set, shared by contexts cancelled before anyone
# asked for their done event.
_CLOSED = threading.Event()
_CLOSED.set()

_CANCEL_KEY = object()


def background() -> Context:
    """Return the root context for main programs, initialisation and tests."""
    return _BACKGROUND


def todo() -> Context:
    """Return a placeholder context for code not yet given a real one."""
    return _TODO


def _context_name(ctx: Context) -> str:
    if type(ctx).__str__ is object.__str__:
        return type(ctx).__name__
    return str(ctx)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if type(value).__str__ is not object.__str__:
        return str(value)
    return "<not Stringer>"


def _require_parent(parent: Optional[Context]) -> None:
    if parent is None:
        raise ValueError("cannot create context from nil parent")


def _now_like(moment: datetime) -> datetime:
    return datetime.now(moment.tzinfo) if moment.tzinfo is not None else datetime.now()


def _until(moment: datetime) -> timedelta:
    return moment - _now_like(moment)


class CancelContext(Context):
    """A context that can be cancelled, cancelling its children with it."""

    def __init__(self, parent: Context) -> None:
        self._parent = parent
        self._lock = threading.Lock()
        self._done: Optional[threading.Event] = None
        self._children: Optional[dict] = None
        self._err: Optional[ContextError] = None

    def deadline(self) -> Optional[datetime]:
        return self._parent.deadline()

    def value(self, key: Any) -> Any:
        if key is _CANCEL_KEY:
            return self
        return self._parent.value(key)

    def done(self) -> threading.Event:
        with self._lock:
            if self._done is None:
                self._done = threading.Event()
            return self._done

    def err(self) -> Optional[ContextError]:
        with self._lock:
            return self._err

    def __str__(self) -> str:
        return _context_name(self._parent) + ".WithCancel"

    def _cancel(self, remove_from_parent: bool, err: Optional[ContextError]) -> None:
        if err is None:
            raise RuntimeError("context: internal error: missing cancel error")
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            if self._done is None:
                self._done = _CLOSED
            else:
                self._done.set()
            children, self._children = self._children, None
            for child in children or ():
                child._cancel(False, err)
        if remove_from_parent:
            _remove_child(self._parent, self)


class TimerContext(CancelContext):
    """A cancellable context that cancels itself when its deadline passes."""

    def __init__(self, parent: Context, deadline: datetime) -> None:
        super().__init__(parent)
        self._deadline = deadline
        self._timer: Optional[threading.Timer] = None

    def deadline(self) -> datetime:
        return self._deadline

    def __str__(self) -> str:
        return (
            f"{_context_name(self._parent)}.WithDeadline("
            f"{self._deadline} [{_until(self._deadline)}])"
        )

    def _cancel(self, remove_from_parent: bool, err: Optional[ContextError]) -> None:
        super()._cancel(False, err)
        if remove_from_parent:
            _remove_child(self._parent, self)
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class ValueContext(Context):
    """A context carrying one key/value pair on top of its parent."""

    def __init__(self, parent: Context, key: Any, value: Any) -> None:
        self._parent = parent
        self._key = key
        self._value = value

    def deadline(self) -> Optional[datetime]:
        return self._parent.deadline()

    def done(self) -> Optional[threading.Event]:
        return self._parent.done()

    def err(self) -> Optional[ContextError]:
        return self._parent.err()

    def value(self, key: Any) -> Any:
        if type(key) is type(self._key) and key == self._key:
            return self._value
        return self._parent.value(key)

    def __str__(self) -> str:
        return (
            f"{_context_name(self._parent)}.WithValue(type "
            f"{type(self._key).__name__}, val {_stringify(self._value)})"
        )


def _parent_cancel_ctx(parent: Context) -> Optional[CancelContext]:
    done = parent.done()
    if done is None or done is _CLOSED:
        return None
    found = parent.value(_CANCEL_KEY)
    if not isinstance(found, CancelContext):
        return None
    with found._lock:
        same = found._done is done
    return found if same else None


def _remove_child(parent: Context, child: CancelContext) -> None:
    owner = _parent_cancel_ctx(parent)
    if owner is None:
        return
    with owner._lock:
        if owner._children is not None:
            owner._children.pop(child, None)


def _watch_foreign_parent(parent: Context, child: CancelContext, parent_done: threading.Event) -> None:
    child_done = child.done()
    while True:
        if parent_done.wait(_POLL_INTERVAL):
            child._cancel(False, parent.err())
            return
        if child_done.is_set():
            return


def _propagate_cancel(parent: Context, child: CancelContext) -> None:
    done = parent.done()
    if done is None:
        return
    if done.is_set():
        child._cancel(False, parent.err())
        return

    owner = _parent_cancel_ctx(parent)
    if owner is not None:
        with owner._lock:
            if owner._err is not None:
                child._cancel(False, owner._err)
            else:
                if owner._children is None:
                    owner._children = {}
                owner._children[child] = None
    else:
        threading.Thread(
            target=_watch_foreign_parent, args=(parent, child, done), daemon=True
        ).start()


def with_cancel(parent: Context) -> tuple[CancelContext, CancelFunc]:
    """Derive a cancellable context; return it with its cancel function."""
    _require_parent(parent)
    ctx = CancelContext(parent)
    _propagate_cancel(parent, ctx)

    def cancel() -> None:
        ctx._cancel(True, Canceled())

    return ctx, cancel


def with_deadline(parent: Context, deadline: datetime) -> tuple[CancelContext, CancelFunc]:
    """Derive a context that ends at ``deadline`` at the latest."""
    _require_parent(parent)
    current = parent.deadline()
    if current is not None and current < deadline:
        return with_cancel(parent)

    ctx = TimerContext(parent, deadline)
    _propagate_cancel(parent, ctx)
    remaining = _until(deadline).total_seconds()
    if remaining <= 0:
        ctx._cancel(True, DeadlineExceeded())

        def cancel_expired() -> None:
            ctx._cancel(False, Canceled())

        return ctx, cancel_expired

    with ctx._lock:
        if ctx._err is None:
            timer = threading.Timer(remaining, ctx._cancel, args=(True, DeadlineExceeded()))
            timer.daemon = True
            ctx._timer = timer
            timer.start()

    def cancel() -> None:
        ctx._cancel(True, Canceled())

    return ctx, cancel


def with_timeout(parent: Context, timeout: Union[float, timedelta]) -> tuple[CancelContext, CancelFunc]:
    """Derive a context that ends after ``timeout`` (seconds or a timedelta)."""
    if not isinstance(timeout, timedelta):
        timeout = timedelta(seconds=timeout)
    return with_deadline(parent, datetime.now() + timeout)


def with_value(parent: Context, key: Any, value: Any) -> ValueContext:
    """Derive a context carrying ``value`` under ``key``."""
    _require_parent(parent)
    if key is None:
        raise ValueError("nil key")
    try:
        hash(key)
    except TypeError:
        raise TypeError("key is not comparable") from None
    return ValueContext(parent, key, value)