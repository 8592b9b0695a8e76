"""Stackful fibers that hand control back and forth with explicit resume and yield.

Each fiber body runs on its own OS thread, but exactly one of a fiber and
its resumer is ever running, and the body sees the resumer's thread identity
and fiber bookkeeping as its own.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from . import thread as _thread

DEFAULT_STACK_SIZE = 128000


class FiberState(Enum):
    READY = "ready"
    RUNNING = "running"
    TERM = "term"


@dataclass
class _FiberLocals:
    current: Optional["Fiber"] = None
    thread_fiber: Optional["Fiber"] = None
    scheduler_fiber: Optional["Fiber"] = None


_local = threading.local()
_ids = itertools.count()
_ids_lock = threading.Lock()


def _locals() -> _FiberLocals:
    slot = getattr(_local, "slot", None)
    if slot is None:
        slot = _FiberLocals()
        _local.slot = slot
    return slot


def _next_id() -> int:
    with _ids_lock:
        return next(_ids)


class Fiber:
    """A unit of work that can suspend itself with yield_ and be resumed later."""

    def __init__(
        self,
        cb: Callable[[], object],
        stacksize: int = 0,
        run_in_scheduler: bool = True,
    ) -> None:
        self._setup(cb, stacksize or DEFAULT_STACK_SIZE, run_in_scheduler, FiberState.READY)
        self._is_main = False

    def _setup(self, cb, stacksize, run_in_scheduler, state) -> None:
        self.lock = threading.Lock()
        self._id = _next_id()
        self._cb: Optional[Callable[[], object]] = cb
        self._stacksize = stacksize
        self._run_in_scheduler = run_in_scheduler
        self._state = state
        self._runner: Optional[threading.Thread] = None
        self._runner_ident: Optional[int] = None
        self._wake = threading.Semaphore(0)
        self._back: Optional[threading.Semaphore] = None
        self._host: Optional[Tuple[_thread._ThreadContext, _FiberLocals]] = None
        self._error: Optional[BaseException] = None

    @classmethod
    def _new_main(cls) -> "Fiber":
        fiber = cls.__new__(cls)
        fiber._setup(None, 0, False, FiberState.RUNNING)
        fiber._is_main = True
        return fiber

    @property
    def id(self) -> int:
        return self._id

    @property
    def state(self) -> FiberState:
        return self._state

    @property
    def stacksize(self) -> int:
        return self._stacksize

    def reset(self, cb: Callable[[], object]) -> None:
        """Reuse a finished fiber for a new body."""
        if self._is_main or self._state is not FiberState.TERM:
            raise RuntimeError(f"fiber {self._id} can only be reset after it terminated")
        if self._runner is not None:
            self._runner.join()
        self._runner = None
        self._runner_ident = None
        self._cb = cb
        self._state = FiberState.READY

    def resume(self) -> None:
        """Run the fiber until it yields or finishes; re-raise what its body raised."""
        if self._state is not FiberState.READY:
            raise RuntimeError(
                f"fiber {self._id} cannot be resumed in state {self._state.name}"
            )
        loc = _locals()
        if loc.thread_fiber is None:
            current_fiber()
        back = threading.Semaphore(0)
        self._host = (_thread._context(), loc)
        self._back = back
        self._state = FiberState.RUNNING
        loc.current = self
        if self._runner is None:
            self._runner = threading.Thread(
                target=self._main, name=f"fiber-{self._id}", daemon=True
            )
            self._runner.start()
        else:
            self._wake.release()
        back.acquire()
        error, self._error = self._error, None
        if error is not None:
            raise error

    def yield_(self) -> None:
        """Suspend the running fiber and give control back to its resumer."""
        if self._state not in (FiberState.RUNNING, FiberState.TERM):
            raise RuntimeError(
                f"fiber {self._id} cannot yield in state {self._state.name}"
            )
        if self._runner_ident is None or threading.get_ident() != self._runner_ident:
            raise RuntimeError(f"fiber {self._id} can only yield from its own body")
        if self._state is not FiberState.TERM:
            self._state = FiberState.READY
        self._hand_back()
        self._wake.acquire()
        self._enter_host()

    def _enter_host(self) -> None:
        ctx, loc = self._host
        _thread._adopt(ctx)
        _local.slot = loc

    def _hand_back(self) -> None:
        _, loc = self._host
        loc.current = loc.scheduler_fiber if self._run_in_scheduler else loc.thread_fiber
        back, self._back = self._back, None
        back.release()

    def _main(self) -> None:
        self._runner_ident = threading.get_ident()
        self._enter_host()
        try:
            self._cb()
        except BaseException as exc:
            self._error = exc
        self._cb = None
        self._state = FiberState.TERM
        self._hand_back()

    def __repr__(self) -> str:
        kind = "main " if self._is_main else ""
        return f"<{kind}Fiber id={self._id} state={self._state.name}>"


def current_fiber() -> Fiber:
    """The running fiber; creates the thread's main fiber on first use."""
    loc = _locals()
    if loc.current is not None:
        return loc.current
    main = Fiber._new_main()
    loc.current = main
    loc.thread_fiber = main
    loc.scheduler_fiber = main
    return main


def set_current_fiber(fiber: Optional[Fiber]) -> None:
    _locals().current = fiber


def set_scheduler_fiber(fiber: Optional[Fiber]) -> None:
    """Set the fiber that scheduler-run fibers hand control back to."""
    _locals().scheduler_fiber = fiber


def current_fiber_id() -> int:
    """Id of the running fiber, or -1 if this thread has none yet."""
    current = _locals().current
    return current.id if current is not None else -1