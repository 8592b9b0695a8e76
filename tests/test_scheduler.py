import threading
import time
from functools import partial

import pytest

from fibersched.fiber import Fiber, FiberState, current_fiber
from fibersched.scheduler import Scheduler, current_scheduler
from fibersched.thread import current_thread_id


def _wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_callbacks_run_in_order_on_caller():
    sched = Scheduler(name="caller_only")
    results = []
    caller = current_thread_id()
    for i in range(5):
        sched.schedule(partial(lambda n: results.append((n, current_thread_id())), i))
    sched.stop()
    assert [n for n, _ in results] == [0, 1, 2, 3, 4]
    assert all(tid == caller for _, tid in results)


def test_name_and_current_scheduler_lifecycle():
    sched = Scheduler(name="named")
    try:
        assert sched.name == "named"
        assert current_scheduler() is sched
    finally:
        sched.stop()
    assert current_scheduler() is None


def test_current_scheduler_inside_task():
    sched = Scheduler(name="inside")
    seen = []
    sched.schedule(lambda: seen.append(current_scheduler()))
    sched.stop()
    assert seen == [sched]


def test_fiber_task_can_reschedule_itself():
    sched = Scheduler(name="resched")
    steps = []

    def body():
        steps.append("first")
        current_scheduler().schedule(current_fiber())
        current_fiber().yield_()
        steps.append("second")

    task = Fiber(body)
    sched.schedule(task)
    sched.stop()
    assert steps == ["first", "second"]
    assert task.state is FiberState.TERM


def test_yielding_fibers_interleave():
    sched = Scheduler(name="interleave")
    steps = []

    def body(label):
        steps.append(f"{label}1")
        current_scheduler().schedule(current_fiber())
        current_fiber().yield_()
        steps.append(f"{label}2")

    first = Fiber(partial(body, "a"))
    second = Fiber(partial(body, "b"))
    sched.schedule(first)
    sched.schedule(second)
    sched.stop()
    assert steps == ["a1", "b1", "a2", "b2"]
    assert first.state is FiberState.TERM
    assert second.state is FiberState.TERM
    assert sched.stopping() is True


def test_terminated_fiber_is_skipped():
    done = Fiber(lambda: None, 0, False)
    done.resume()
    sched = Scheduler(name="skip")
    sched.schedule(done)
    sched.stop()
    assert done.state is FiberState.TERM
    assert sched.stopping() is True


def test_worker_threads_run_every_task():
    sched = Scheduler(threads=3, use_caller=False, name="pool")
    sched.idle_interval = 0.01
    caller = current_thread_id()
    seen = []
    lock = threading.Lock()

    def work(i):
        with lock:
            seen.append((i, current_thread_id()))

    sched.start()
    for i in range(20):
        sched.schedule(partial(work, i))
    sched.stop()
    assert sorted(i for i, _ in seen) == list(range(20))
    assert all(tid != caller for _, tid in seen)
    assert current_scheduler() is None


def test_task_pinned_to_caller_waits_for_caller():
    sched = Scheduler(threads=2, name="pinned")
    sched.idle_interval = 0.01
    sched.start()
    caller = current_thread_id()
    ran_on = []
    try:
        sched.schedule(lambda: ran_on.append(current_thread_id()), caller)
        time.sleep(0.05)
        assert ran_on == []
    finally:
        sched.stop()
    assert ran_on == [caller]


def test_context_manager_starts_and_stops():
    results = []
    with Scheduler(threads=2, use_caller=False, name="ctx") as sched:
        sched.idle_interval = 0.01
        for i in range(4):
            sched.schedule(partial(results.append, i))
    assert sorted(results) == [0, 1, 2, 3]
    assert sched.stopping() is True


def test_has_idle_threads_while_workers_wait():
    sched = Scheduler(threads=2, use_caller=False, name="idle")
    sched.idle_interval = 0.05
    sched.start()
    try:
        assert _wait_until(sched.has_idle_threads) is True
    finally:
        sched.stop()
    assert sched.has_idle_threads() is False


def test_stopping_only_after_stop():
    sched = Scheduler(name="flag")
    try:
        assert sched.stopping() is False
    finally:
        sched.stop()
    assert sched.stopping() is True


def test_schedule_none_is_ignored():
    sched = Scheduler(name="none")
    sched.schedule(None)
    sched.stop()
    assert sched.stopping() is True


def test_zero_threads_rejected():
    with pytest.raises(ValueError):
        Scheduler(0)


def test_second_scheduler_on_same_thread_rejected():
    sched = Scheduler(name="first")
    try:
        with pytest.raises(RuntimeError):
            Scheduler(name="second")
    finally:
        sched.stop()


def test_schedule_rejects_non_callable():
    sched = Scheduler(name="types")
    try:
        with pytest.raises(TypeError):
            sched.schedule(42)
    finally:
        sched.stop()


def test_start_after_stop_rejected():
    sched = Scheduler(name="late")
    sched.stop()
    with pytest.raises(RuntimeError):
        sched.start()


def test_start_twice_rejected():
    sched = Scheduler(threads=2, use_caller=False, name="twice")
    sched.idle_interval = 0.01
    sched.start()
    try:
        with pytest.raises(RuntimeError):
            sched.start()
    finally:
        sched.stop()


def test_stop_from_other_thread_rejected():
    sched = Scheduler(name="guarded")
    errors = []

    def attempt():
        try:
            sched.stop()
        except RuntimeError as exc:
            errors.append(exc)

    other = threading.Thread(target=attempt)
    other.start()
    other.join()
    try:
        assert len(errors) == 1
        assert sched.stopping() is False
    finally:
        sched.stop()
    assert sched.stopping() is True


def test_task_error_propagates_from_stop():
    sched = Scheduler(name="failing")

    def boom():
        raise ValueError("boom")

    sched.schedule(boom)
    with pytest.raises(ValueError, match="boom"):
        sched.stop()
    assert current_scheduler() is None