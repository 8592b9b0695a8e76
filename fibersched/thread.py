"""Named worker threads with per-thread identity and a counting semaphore."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

_UNKNOWN_NAME = "UNKNOWN"


class Semaphore:
    """A counting semaphore used to synchronise thread start-up."""

    def __init__(self, count: int = 0) -> None:
        if count < 0:
            raise ValueError("semaphore count must not be negative")
        self._count = count
        self._cond = threading.Condition()

    def wait(self) -> None:
        """Block until the count is positive, then take one unit."""
        with self._cond:
            self._cond.wait_for(lambda: self._count > 0)
            self._count -= 1

    def signal(self) -> None:
        """Add one unit and wake a single waiter."""
        with self._cond:
            self._count += 1
            self._cond.notify()


@dataclass
class _ThreadContext:
    """Identity of a logical thread; shared with fibers that run on its behalf."""

    native_id: int
    thread: Optional["Thread"] = None
    name: str = _UNKNOWN_NAME


_local = threading.local()


def _context() -> _ThreadContext:
    ctx = getattr(_local, "context", None)
    if ctx is None:
        ctx = _ThreadContext(native_id=threading.get_native_id())
        _local.context = ctx
    return ctx


def _adopt(ctx: _ThreadContext) -> None:
    """Make the calling OS thread act as the logical thread described by ctx."""
    _local.context = ctx


class Thread:
    """A started thread that knows its OS id and name before the constructor returns."""

    def __init__(self, cb: Callable[[], object], name: str) -> None:
        self._cb: Optional[Callable[[], object]] = cb
        self._name = name
        self._id = -1
        self._started = Semaphore()
        self._handle: Optional[threading.Thread] = threading.Thread(
            target=self._run, name=name, daemon=True
        )
        try:
            self._handle.start()
        except RuntimeError as exc:
            raise RuntimeError(f"cannot start thread {name!r}") from exc
        self._started.wait()

    @property
    def id(self) -> int:
        """The OS thread id of the running thread."""
        return self._id

    @property
    def name(self) -> str:
        return self._name

    def join(self) -> None:
        """Wait for the thread to finish; joining again does nothing."""
        if self._handle is not None:
            self._handle.join()
            self._handle = None

    def _run(self) -> None:
        ctx = _context()
        ctx.thread = self
        ctx.name = self._name
        self._id = ctx.native_id
        cb, self._cb = self._cb, None
        self._started.signal()
        if cb is not None:
            cb()

    def __repr__(self) -> str:
        return f"Thread(id={self._id}, name={self._name!r})"


def current_thread_id() -> int:
    """The OS id of the calling logical thread."""
    return _context().native_id


def current_thread() -> Optional[Thread]:
    """The Thread object running the caller, or None for threads not made by Thread."""
    return _context().thread


def current_thread_name() -> str:
    return _context().name


def set_current_thread_name(name: str) -> None:
    """Rename the calling thread, including its Thread object if it has one."""
    ctx = _context()
    if ctx.thread is not None:
        ctx.thread._name = name
    ctx.name = name