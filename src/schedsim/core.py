# src/schedsim/core.py

"""
Core simulator classes:
- SimProcess: simulated unit of work (NEW -> RUNNING -> TERMINATED)
- IdPool: five-digit process ids, unique per run
- Observers: notification interface consumed by the front end
- Schedulers: concurrent worker pool gated by memory admission
"""

import enum
import logging
import queue
import random
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional

from . import config

logger = logging.getLogger(__name__)


# -----------------------------
# ENUMS & ERRORS
# -----------------------------

class ProcessState(enum.Enum):
    NEW = "NEW"
    RUNNING = "RUNNING"
    TERMINATED = "TERMINATED"


class SimulationError(Exception):
    pass


class IdSpaceExhausted(SimulationError):
    pass


class SchedulerClosed(SimulationError):
    pass


# -----------------------------
# ID POOL
# -----------------------------

class IdPool:
    """
    Pre-shuffled pool of every id in [low, high].
    Issuing pops one id under a lock, so there is no retry loop and
    exhaustion is detected instead of spinning forever.
    """

    def __init__(self, low: int = config.ID_RANGE[0], high: int = config.ID_RANGE[1],
                 rng: Optional[random.Random] = None):
        if high < low:
            raise ValueError(f"empty id range {low}..{high}")
        self.low = low
        self.high = high
        self.lock = threading.Lock()
        self._free = list(range(low, high + 1))
        (rng or random.Random()).shuffle(self._free)
        self.issued = set()

    def issue(self) -> int:
        with self.lock:
            if not self._free:
                raise IdSpaceExhausted(f"all ids in {self.low}..{self.high} are in use")
            pid = self._free.pop()
            self.issued.add(pid)
            return pid

    def remaining(self) -> int:
        with self.lock:
            return len(self._free)


# Used when a process is built without an explicit pool; lives for the program run
default_id_pool = IdPool()


# -----------------------------
# OBSERVERS
# -----------------------------

class ProcessObserver:
    """Receives notifications from workers and the allocator. Default: ignore."""

    def on_state_changed(self, process_id: int, new_state: ProcessState):
        pass

    def on_progress(self, process_id: int, remaining_time: int, max_time: int):
        pass

    def on_memory_layout_changed(self, block_sizes: List[int]):
        pass


def notify(observer: ProcessObserver, method: str, *args) -> bool:
    """
    Deliver one notification. A failing observer is logged and skipped;
    it never aborts the caller.
    """
    try:
        getattr(observer, method)(*args)
        return True
    except Exception:
        logger.exception(f"Observer {method} failed")
        return False


class ObserverGroup(ProcessObserver):
    def __init__(self, *observers: ProcessObserver):
        self.observers = [o for o in observers if o is not None]

    def on_state_changed(self, process_id, new_state):
        for o in self.observers:
            notify(o, "on_state_changed", process_id, new_state)

    def on_progress(self, process_id, remaining_time, max_time):
        for o in self.observers:
            notify(o, "on_progress", process_id, remaining_time, max_time)

    def on_memory_layout_changed(self, block_sizes):
        for o in self.observers:
            notify(o, "on_memory_layout_changed", block_sizes)


class AsyncObserver(ProcessObserver):
    """
    Marshals every notification onto a single dispatcher thread.
    Workers only enqueue; the wrapped observer always runs on the
    dispatcher, one call at a time, in enqueue order.
    """

    _STOP = object()

    def __init__(self, target: ProcessObserver, name: str = "observer-dispatch"):
        self.target = target
        self.events: "queue.Queue" = queue.Queue()
        self._thread = threading.Thread(target=self._dispatch, name=name, daemon=True)
        self._thread.start()

    def _dispatch(self):
        while True:
            item = self.events.get()
            try:
                if item is self._STOP:
                    return
                method, args = item
                notify(self.target, method, *args)
            finally:
                self.events.task_done()

    def on_state_changed(self, process_id, new_state):
        self.events.put(("on_state_changed", (process_id, new_state)))

    def on_progress(self, process_id, remaining_time, max_time):
        self.events.put(("on_progress", (process_id, remaining_time, max_time)))

    def on_memory_layout_changed(self, block_sizes):
        self.events.put(("on_memory_layout_changed", (list(block_sizes),)))

    def flush(self):
        """Block until everything queued so far was delivered."""
        self.events.join()

    def close(self, timeout: Optional[float] = None):
        self.events.put(self._STOP)
        self._thread.join(timeout)


# -----------------------------
# SIMULATED PROCESS
# -----------------------------

class SimProcess:
    def __init__(self, priority: int, arrival_time: int, burst_time: int, memory: int,
                 observer: Optional[ProcessObserver] = None,
                 id_pool: Optional[IdPool] = None,
                 tick_interval: float = config.TICK_INTERVAL):
        if burst_time < 0:
            raise ValueError(f"burst_time must be >= 0, got {burst_time}")
        if memory < 0:
            raise ValueError(f"memory must be >= 0, got {memory}")
        self.id = (id_pool or default_id_pool).issue()
        self.priority = priority
        self.arrival_time = arrival_time
        self.burst_time = burst_time
        self.remaining_time = burst_time
        self.memory = memory
        self.state = ProcessState.NEW
        self.observer = observer or ProcessObserver()
        self.tick_interval = tick_interval

    @property
    def progress(self) -> float:
        if self.burst_time == 0:
            return 1.0
        return (self.burst_time - self.remaining_time) / self.burst_time

    def is_done(self):
        return self.remaining_time <= 0

    def _set_state(self, state: ProcessState):
        self.state = state
        notify(self.observer, "on_state_changed", self.id, state)

    def execute(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Run to completion on the calling worker, one tick per interval.
        Returns False if cancel_event fired first; the process is then
        left RUNNING with whatever time it had remaining.
        """
        cancel_event = cancel_event or threading.Event()
        self._set_state(ProcessState.RUNNING)
        logger.info(f"Process ID: {self.id} is starting.")

        while self.remaining_time > 0:
            self.remaining_time -= 1
            notify(self.observer, "on_progress", self.id, self.remaining_time, self.burst_time)
            if cancel_event.wait(self.tick_interval):
                logger.warning(f"Process ID: {self.id} interrupted with {self.remaining_time} remaining.")
                return False

        self._set_state(ProcessState.TERMINATED)
        logger.info(f"Process ID: {self.id} has terminated.")
        return True

    def to_dict(self):
        return {
            "id": self.id,
            "priority": self.priority,
            "arrival_time": self.arrival_time,
            "burst_time": self.burst_time,
            "remaining": self.remaining_time,
            "memory": self.memory,
            "state": self.state.value,
            "progress": self.progress,
        }

    def __repr__(self):
        return f"<SimProcess id={self.id} state={self.state.name} rem={self.remaining_time} mem={self.memory}>"


# -----------------------------
# SCHEDULERS
# -----------------------------

class SchedulerBase:
    def add_process(self, process: SimProcess, allocator) -> bool:
        raise NotImplementedError()

    def execute_processes(self, timeout: Optional[float] = None) -> bool:
        raise NotImplementedError()


class ConcurrentWorkerPoolScheduler(SchedulerBase):
    """
    Admits a process only if the allocator grants its memory, then hands it
    to a fixed pool of workers. Each worker runs one process to completion;
    dispatch order is plain submission order.
    """

    def __init__(self, pool_size: int = config.POOL_SIZE,
                 drain_timeout: float = config.DRAIN_TIMEOUT):
        if pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {pool_size}")
        self.pool_size = pool_size
        self.drain_timeout = drain_timeout
        self.ready_queue = deque()
        self.lock = threading.Lock()
        self.cancel_event = threading.Event()
        self.closed = False
        self._futures = []
        self._pool = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="worker")

    def add_process(self, process: SimProcess, allocator) -> bool:
        with self.lock:
            if self.closed:
                raise SchedulerClosed(f"Process ID: {process.id} submitted after execute_processes()")

            if not allocator.allocate(process.memory):
                logger.info(f"Process ID: {process.id} not added due to insufficient memory.")
                return False

            self.ready_queue.append(process)
            future = self._pool.submit(process.execute, self.cancel_event)
            future.add_done_callback(self._report_failure)
            self._futures.append(future)

        logger.info(f"Process ID: {process.id} added to the queue.")
        return True

    @staticmethod
    def _report_failure(future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Worker failed", exc_info=(type(exc), exc, exc.__traceback__))

    def execute_processes(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting work and wait for the pool to drain.
        On timeout every remaining execution is cancelled and False is returned.
        """
        timeout = self.drain_timeout if timeout is None else timeout
        with self.lock:
            self.closed = True
            futures = list(self._futures)
        self._pool.shutdown(wait=False)

        _, not_done = wait(futures, timeout=timeout)
        if self.cancel_event.is_set():
            return False
        if not not_done:
            logger.info(f"All {len(futures)} processes drained.")
            return True

        logger.warning(f"Drain timeout after {timeout}s; cancelling {len(not_done)} unfinished processes.")
        self.cancel()
        return False

    def cancel(self):
        """Force shutdown: drop queued work and interrupt in-flight ticks."""
        with self.lock:
            self.closed = True
        # drop queued work first so a freed worker cannot pick it up
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.cancel_event.set()

    def is_ready_queue_empty(self):
        with self.lock:
            return not self.ready_queue

    def peek_queue(self) -> List[SimProcess]:
        with self.lock:
            return list(self.ready_queue)
