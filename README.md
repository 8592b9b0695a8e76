# fibersched

Cooperative fibers, named threads and a small scheduler that runs fibers and
callables on a pool of worker threads.

The package has these modules:

- `fibersched.thread`: `Thread(cb, name)` starts a named thread and does not
  return until the thread is running, so its `id` (the OS thread id) and
  `name` properties are set at once. `join()` waits for it; joining again
  does nothing. `Semaphore(count)` is a counting semaphore with `wait()` and
  `signal()`. `current_thread_id()`, `current_thread()`,
  `current_thread_name()` and `set_current_thread_name(name)` report on or
  rename the calling thread. `current_thread()` is `None` and
  `current_thread_name()` is `"UNKNOWN"` for threads not started through
  `Thread`.
- `fibersched.fiber`: `Fiber(cb, stacksize, run_in_scheduler)` wraps a
  callable that can suspend itself with `yield_()` and continue when
  `resume()` is called again. Its `state` property is one of the
  `FiberState` values `READY`, `RUNNING` or `TERM`, and `id` is a number
  unique within the process. A fiber that has finished can be reused with
  `reset(cb)`; resetting one that has not finished raises `RuntimeError`, as
  does resuming a fiber that is not `READY`. An exception raised by the body
  is raised again from `resume()`. The module-level helpers are
  `current_fiber()` (which creates the thread's main fiber on first use),
  `current_fiber_id()` (`-1` before that), `set_current_fiber(fiber)` and
  `set_scheduler_fiber(fiber)`.
- `fibersched.scheduler`: `Scheduler(threads, use_caller, name)` keeps a
  queue of fibers and callables (`ScheduleTask`) and runs them on a pool of
  threads; with `use_caller` the creating thread counts as one of them.
  `current_scheduler()` returns the scheduler the calling thread belongs to,
  or `None`.
- `fibersched.demo`: `SimpleScheduler`, `fiber_demo`, `thread_demo` and the
  `fibersched-demo` command.

Each fiber body runs on its own OS thread, but only one of a fiber and the
code that resumed it runs at any moment, and inside the body the thread
identity and current-fiber bookkeeping are those of the resumer.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install .[test]
```

## Fibers

```python
from fibersched.fiber import Fiber, FiberState, current_fiber

current_fiber()  # create the main fiber for this thread

def work():
    print("step 1")
    current_fiber().yield_()
    print("step 2")

f = Fiber(work, 0, False)
f.resume()            # prints "step 1"
assert f.state is FiberState.READY
f.resume()            # prints "step 2"
assert f.state is FiberState.TERM
```

## Scheduler

```python
from fibersched.scheduler import Scheduler

sched = Scheduler(3, True, "pool")
sched.start()
for i in range(10):
    sched.schedule(lambda i=i: print("task", i), -1)
sched.stop()   # runs the remaining work and joins the workers
```

`Scheduler` is also a context manager: entering calls `start()`, leaving
calls `stop()`.

`schedule(task, thread)` takes a `Fiber` or a callable (`None` is ignored,
anything else raises `TypeError`). Pass a thread id as `thread` to tie the
task to one thread, or `-1` to let any thread take it. A callable is run
inside a new fiber. `stop()` returns after the queue is empty and every
worker thread has finished; a scheduler that uses the caller must be stopped
from the thread that created it. Calling `start()` twice, or after
`stop()`, raises `RuntimeError`, and a thread can belong to only one
scheduler at a time.

## Demo

```
fibersched-demo fiber [--count N]
fibersched-demo thread [--count N] [--pause SECONDS]
```

`fiber` resumes a batch of greeting fibers (20 by default) through a
`SimpleScheduler`. `thread` starts named threads (5 by default) that print
their ids and names and then sleep for `--pause` seconds (60 by default)
before they are joined. The same demos can be called from code as
`fibersched.demo.fiber_demo(count, out)` and
`fibersched.demo.thread_demo(count, pause, out)`.

## Limitations

`Scheduler.tickle()` does nothing: idle threads are not woken when work
arrives but poll the queue, sleeping `Scheduler.idle_interval` seconds (one
by default) between checks, so `stop()` and newly queued work can wait that
long. There is no timer, I/O event loop or blocking-call integration; tasks
run only when a thread picks them off the queue.

## Tests

```
pytest
```