"""A cooperative task scheduler that runs fibers and callbacks on a pool of threads."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import fiber as _fiber
from . import thread as _thread
from .fiber import Fiber, FiberState, current_fiber, set_scheduler_fiber

TaskItem = Union[Fiber, Callable[[], object], None]

_registry_lock = threading.Lock()
_registry: Dict[int, Tuple[_thread._ThreadContext, "Scheduler"]] = {}


def _bind(scheduler: "Scheduler") -> None:
    """Make scheduler the current one for the calling logical thread."""
    ctx = _thread._context()
    with _registry_lock:
        _registry[id(ctx)] = (ctx, scheduler)


def current_scheduler() -> Optional["Scheduler"]:
    """The scheduler the calling logical thread belongs to, or None."""
    ctx = _thread._context()
    with _registry_lock:
        entry = _registry.get(id(ctx))
    if entry is None or entry[0] is not ctx:
        return None
    return entry[1]


@dataclass
class ScheduleTask:
    """A queued unit of work: a fiber or a callback, optionally pinned to a thread id."""

    fiber: Optional[Fiber] = None
    cb: Optional[Callable[[], object]] = None
    thread: int = -1


def _task_for(item: TaskItem, thread: int) -> Optional[ScheduleTask]:
    if item is None:
        return None
    if isinstance(item, Fiber):
        return ScheduleTask(fiber=item, thread=thread)
    if callable(item):
        return ScheduleTask(cb=item, thread=thread)
    raise TypeError(f"cannot schedule {type(item).__name__}; expected a Fiber or a callable")


class Scheduler:
    """Distributes fibers and callbacks across worker threads and, optionally, the caller."""

    idle_interval = 1.0

    def __init__(self, threads: int = 1, use_caller: bool = True, name: str = "Scheduler") -> None:
        if threads <= 0:
            raise ValueError("a scheduler needs at least one thread")
        if current_scheduler() is not None:
            raise RuntimeError("this thread already belongs to a scheduler")
        self._name = name
        self._use_caller = use_caller
        self._lock = threading.Lock()
        self._threads: List[_thread.Thread] = []
        self._tasks: List[ScheduleTask] = []
        self._thread_ids: List[int] = []
        self._active_count = 0
        self._idle_count = 0
        self._stopping = False
        self._scheduler_fiber: Optional[Fiber] = None
        self._previous_scheduler_fiber: Optional[Fiber] = None
        self._root_thread = -1

        _bind(self)
        _thread.set_current_thread_name(name)

        if use_caller:
            threads -= 1
            current_fiber()
            self._previous_scheduler_fiber = _fiber._locals().scheduler_fiber
            self._scheduler_fiber = Fiber(self.run, 0, False)
            set_scheduler_fiber(self._scheduler_fiber)
            self._root_thread = _thread.current_thread_id()
            self._thread_ids.append(self._root_thread)

        self._thread_count = threads

    @property
    def name(self) -> str:
        return self._name

    def __enter__(self) -> "Scheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def schedule(self, task: TaskItem, thread: int = -1) -> None:
        """Queue a fiber or callback; thread pins it to one thread id (-1 for any)."""
        entry = _task_for(task, thread)
        with self._lock:
            need_tickle = not self._tasks
            if entry is not None:
                self._tasks.append(entry)
        if need_tickle:
            self.tickle()

    def start(self) -> None:
        """Start the worker threads."""
        with self._lock:
            if self._stopping:
                raise RuntimeError(f"scheduler {self._name!r} is stopped")
            if self._threads:
                raise RuntimeError(f"scheduler {self._name!r} is already started")
            for index in range(self._thread_count):
                worker = _thread.Thread(self.run, f"{self._name}_{index}")
                self._threads.append(worker)
                self._thread_ids.append(worker.id)

    def stop(self) -> None:
        """Run the remaining tasks, then wait for every thread to finish."""
        if self.stopping():
            self._release()
            return
        if self._use_caller and current_scheduler() is not self:
            raise RuntimeError(
                f"scheduler {self._name!r} must be stopped from the thread that created it"
            )
        self._stopping = True

        for _ in range(self._thread_count):
            self.tickle()
        try:
            if self._scheduler_fiber is not None:
                self.tickle()
                self._scheduler_fiber.resume()
        finally:
            with self._lock:
                workers, self._threads = self._threads, []
            for worker in workers:
                worker.join()
            self._release()

    def tickle(self) -> None:
        """Notify threads that work is waiting; the base scheduler relies on polling."""

    def run(self) -> None:
        """The scheduling loop executed by every thread of the scheduler."""
        thread_id = _thread.current_thread_id()
        _bind(self)
        if thread_id != self._root_thread:
            current_fiber()

        idle_fiber = Fiber(self.idle)
        while True:
            task, tickle_me = self._take(thread_id)
            if tickle_me:
                self.tickle()

            if task is not None and task.fiber is not None:
                try:
                    with task.fiber.lock:
                        if task.fiber.state is not FiberState.TERM:
                            task.fiber.resume()
                finally:
                    self._finish_task()
            elif task is not None:
                cb_fiber = Fiber(task.cb)
                try:
                    with cb_fiber.lock:
                        cb_fiber.resume()
                finally:
                    self._finish_task()
            else:
                if idle_fiber.state is FiberState.TERM:
                    break
                with self._lock:
                    self._idle_count += 1
                try:
                    idle_fiber.resume()
                finally:
                    with self._lock:
                        self._idle_count -= 1

    def idle(self) -> None:
        """Body of the idle fiber: wait a little, then yield, until the scheduler stops."""
        while not self.stopping():
            time.sleep(self.idle_interval)
            current_fiber().yield_()

    def stopping(self) -> bool:
        """True once stop was requested and no work is queued or running."""
        with self._lock:
            return self._stopping and not self._tasks and self._active_count == 0

    def has_idle_threads(self) -> bool:
        with self._lock:
            return self._idle_count > 0

    def _take(self, thread_id: int) -> Tuple[Optional[ScheduleTask], bool]:
        with self._lock:
            tickle_me = False
            for index, candidate in enumerate(self._tasks):
                if candidate.thread not in (-1, thread_id):
                    tickle_me = True
                    continue
                del self._tasks[index]
                self._active_count += 1
                return candidate, tickle_me or index < len(self._tasks)
            return None, tickle_me

    def _finish_task(self) -> None:
        with self._lock:
            self._active_count -= 1

    def _release(self) -> None:
        with _registry_lock:
            for key in [key for key, (_, owner) in _registry.items() if owner is self]:
                del _registry[key]
        if (
            self._scheduler_fiber is not None
            and _fiber._locals().scheduler_fiber is self._scheduler_fiber
        ):
            set_scheduler_fiber(self._previous_scheduler_fiber)

    def __repr__(self) -> str:
        return f"Scheduler(name={self._name!r}, threads={self._thread_count}, use_caller={self._use_caller})"