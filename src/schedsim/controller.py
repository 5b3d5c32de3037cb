# src/schedsim/controller.py
"""
SimulationController:
- Builds processes from specs and admits them through the scheduler
- Owns the id pool (shared by all runs), the allocator and the worker pool
- Drives execute_processes (blocking, or on a background thread)
- Provides the state snapshot used by the Flask API
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from . import config
from .core import (
    ConcurrentWorkerPoolScheduler,
    IdPool,
    ObserverGroup,
    ProcessObserver,
    ProcessState,
    SimProcess,
)
from .memory import BestFitAllocator

logger = logging.getLogger(__name__)

# How many observer events the snapshot keeps
EVENT_HISTORY = 200


@dataclass(frozen=True)
class ProcessSpec:
    priority: int
    arrival_time: int
    burst_time: int
    memory: int

    @classmethod
    def from_dict(cls, data: Dict) -> "ProcessSpec":
        for field in ("burst_time", "memory"):
            if field not in data:
                raise ValueError(f"missing field {field!r}")
        return cls(
            priority=_whole_number("priority", data.get("priority", 0)),
            arrival_time=_whole_number("arrival_time", data.get("arrival_time", 0)),
            burst_time=_whole_number("burst_time", data["burst_time"]),
            memory=_whole_number("memory", data["memory"]),
        )


def _whole_number(name, value) -> int:
    """Ints, integral floats and numeric strings; bools and fractions are rejected."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


SpecLike = Union[ProcessSpec, Tuple[int, int, int, int]]


def _as_spec(spec: SpecLike) -> ProcessSpec:
    if isinstance(spec, ProcessSpec):
        return spec
    return ProcessSpec(*spec)


class StateRecorder(ProcessObserver):
    """
    Keeps the latest observed state and progress per process, the latest
    memory layout, and a bounded history of events for the front end to poll.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.latest: Dict[int, Dict] = {}
        self.blocks: Optional[List[int]] = None
        self.events = deque(maxlen=EVENT_HISTORY)
        self.completed = 0

    def on_state_changed(self, process_id, new_state):
        with self.lock:
            self.latest.setdefault(process_id, {})["state"] = new_state.value
            if new_state == ProcessState.TERMINATED:
                self.completed += 1
            self.events.append({"pid": process_id, "event": "state", "value": new_state.value})

    def on_progress(self, process_id, remaining_time, max_time):
        with self.lock:
            self.latest.setdefault(process_id, {}).update(remaining=remaining_time, max_time=max_time)
            self.events.append({"pid": process_id, "event": "progress", "value": f"{max_time - remaining_time}/{max_time}"})

    def on_memory_layout_changed(self, block_sizes):
        with self.lock:
            self.blocks = list(block_sizes)
            self.events.append({"pid": None, "event": "memory", "value": list(block_sizes)})

    def recent_events(self):
        with self.lock:
            return list(self.events)

    def observed(self):
        with self.lock:
            return {
                "processes": {pid: dict(info) for pid, info in self.latest.items()},
                "memory": None if self.blocks is None else list(self.blocks),
            }


class SimulationController:
    """
    Central manager for one simulation run at a time.
    """

    def __init__(self, blocks: Optional[Iterable[int]] = None,
                 pool_size: int = config.POOL_SIZE,
                 tick_interval: float = config.TICK_INTERVAL,
                 drain_timeout: float = config.DRAIN_TIMEOUT,
                 observer: Optional[ProcessObserver] = None):

        self.lock = threading.RLock()

        self.initial_blocks = tuple(config.MEMORY_BLOCKS if blocks is None else blocks)
        self.pool_size = pool_size
        self.tick_interval = tick_interval
        self.drain_timeout = drain_timeout
        self.external_observer = observer
        # one pool per controller so ids never repeat across resets
        self.id_pool = IdPool()

        self._runner_thread: Optional[threading.Thread] = None
        self.reset()

    # -----------------------------
    # Run lifecycle
    # -----------------------------
    def reset(self):
        """Cancel whatever is running and start a fresh run."""
        with self.lock:
            runner = self._runner_thread
            if getattr(self, "scheduler", None) is not None:
                self.scheduler.cancel()

            self.recorder = StateRecorder()
            self.observer = ObserverGroup(self.recorder, self.external_observer)
            self.allocator = BestFitAllocator(self.initial_blocks, observer=self.observer)
            self.scheduler = ConcurrentWorkerPoolScheduler(self.pool_size, self.drain_timeout)

            self.processes: Dict[int, SimProcess] = {}
            self.admitted: Dict[int, bool] = {}
            self.stats = {"admitted": 0, "rejected": 0}
            self.drained: Optional[bool] = None
            self._runner_thread = None

        if runner is not None:
            runner.join(timeout=1.0)

    def add_process(self, spec: SpecLike) -> Tuple[SimProcess, bool]:
        """Admission entry point. Raises SchedulerClosed once the batch started draining."""
        spec = _as_spec(spec)
        with self.lock:
            process = SimProcess(spec.priority, spec.arrival_time, spec.burst_time, spec.memory,
                                 observer=self.observer,
                                 id_pool=self.id_pool,
                                 tick_interval=self.tick_interval)
            admitted = self.scheduler.add_process(process, self.allocator)
            self.processes[process.id] = process
            self.admitted[process.id] = admitted
            self.stats["admitted" if admitted else "rejected"] += 1
            return process, admitted

    def execute(self, timeout: Optional[float] = None) -> bool:
        return self._drain(self.scheduler, timeout)

    def _drain(self, scheduler, timeout=None):
        drained = scheduler.execute_processes(timeout)
        with self.lock:
            # a reset may have replaced the run while we were waiting
            if scheduler is self.scheduler:
                self.drained = drained
        return drained

    def run_batch(self, specs: Iterable[SpecLike], timeout: Optional[float] = None) -> Dict:
        """
        Batch driver: admit every spec in order, then block until the pool
        drains or the timeout forces cancellation.
        """
        results = [self.add_process(spec) for spec in specs]
        drained = self.execute(timeout)
        logger.info(f"Batch finished: {self.stats['admitted']} admitted, "
                    f"{self.stats['rejected']} rejected, drained={drained}")
        return {
            "admitted": [p.id for p, ok in results if ok],
            "rejected": [p.id for p, ok in results if not ok],
            "drained": drained,
        }

    def run_demo(self) -> Dict:
        return self.run_batch(config.DEMO_PROCESSES)

    def start(self):
        """Drain on a background thread so the caller stays responsive."""
        with self.lock:
            if self._runner_thread is not None:
                return
            self._runner_thread = threading.Thread(target=self._drain, args=(self.scheduler,),
                                                   name="drain", daemon=True)
            self._runner_thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the background drain. True if it finished."""
        runner = self._runner_thread
        if runner is None:
            return True
        runner.join(timeout)
        return not runner.is_alive()

    def get_process(self, pid: int) -> Optional[SimProcess]:
        return self.processes.get(int(pid))

    # -----------------------------
    # Snapshot for frontend
    # -----------------------------
    def get_state_snapshot(self) -> Dict:
        with self.lock:
            processes = [
                dict(p.to_dict(), admitted=self.admitted[p.id])
                for p in self.processes.values()
            ]
            return {
                "processes": processes,
                "memory": self.allocator.snapshot(),
                "ready_queue": [p.id for p in self.scheduler.peek_queue()],
                "pool_size": self.pool_size,
                "tick_interval": self.tick_interval,
                "closed": self.scheduler.closed,
                "drained": self.drained,
                "stats": dict(self.stats, completed=self.recorder.completed),
                "observed": self.recorder.observed(),
                "events": self.recorder.recent_events(),
            }
