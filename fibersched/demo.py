"""Small demonstrations of fibers and named threads."""

from __future__ import annotations

import argparse
import sys
import threading
import time
from functools import partial
from typing import List, Optional, Sequence, TextIO

from .fiber import Fiber, current_fiber
from .thread import Thread, current_thread, current_thread_id, current_thread_name


class SimpleScheduler:
    """Resumes queued fibers once each, in the order they were added."""

    def __init__(self) -> None:
        self._tasks: List[Fiber] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, fiber: Fiber) -> None:
        self._tasks.append(fiber)

    def run(self) -> int:
        """Resume every queued fiber and empty the queue; return how many ran."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.resume()
        return len(tasks)


def _greet(index: int, out: TextIO) -> None:
    print(f"hello world {index}", file=out)


def fiber_demo(count: int = 20, out: Optional[TextIO] = None) -> int:
    """Run count greeting fibers through a SimpleScheduler; return how many ran."""
    out = out if out is not None else sys.stdout
    current_fiber()
    scheduler = SimpleScheduler()
    for index in range(count):
        scheduler.schedule(Fiber(partial(_greet, index, out), 0, False))
    print(f" number {len(scheduler)}", file=out)
    return scheduler.run()


def thread_demo(
    count: int = 5, pause: float = 60.0, out: Optional[TextIO] = None
) -> List[Thread]:
    """Start count named threads that report who they are, then wait for them."""
    out = out if out is not None else sys.stdout
    lock = threading.Lock()

    def report() -> None:
        me = current_thread()
        with lock:
            print(f"id: {current_thread_id()}, name: {current_thread_name()}", file=out)
            print(f"this id: {me.id}, this name: {me.name}", file=out)
        time.sleep(pause)

    threads = [Thread(report, f"thread_{index}") for index in range(count)]
    for worker in threads:
        worker.join()
    return threads


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="fibersched-demo", description="Run a fiber or thread demonstration."
    )
    demos = parser.add_subparsers(dest="demo", required=True)
    fiber_parser = demos.add_parser("fiber", help="resume a batch of greeting fibers")
    fiber_parser.add_argument("--count", type=int, default=20)
    thread_parser = demos.add_parser("thread", help="start named threads that report themselves")
    thread_parser.add_argument("--count", type=int, default=5)
    thread_parser.add_argument("--pause", type=float, default=60.0)
    args = parser.parse_args(argv)

    if args.demo == "fiber":
        fiber_demo(args.count)
    else:
        thread_demo(args.count, args.pause)
    return 0


if __name__ == "__main__":
    sys.exit(main())