import threading

import pytest

from src.schedsim.controller import SimulationController
from src.schedsim.core import ProcessObserver, ProcessState

REFERENCE_BLOCKS = [100, 400, 200, 500, 250, 450, 150, 1000, 150, 550]


class EventLog(ProcessObserver):
    """Records every notification in arrival order and tracks concurrency."""

    def __init__(self):
        self.lock = threading.Lock()
        self.states = []
        self.progress = []
        self.layouts = []
        self.running = 0
        self.peak_running = 0

    def on_state_changed(self, process_id, new_state):
        with self.lock:
            self.states.append((process_id, new_state))
            if new_state == ProcessState.RUNNING:
                self.running += 1
                self.peak_running = max(self.peak_running, self.running)
            elif new_state == ProcessState.TERMINATED:
                self.running -= 1

    def on_progress(self, process_id, remaining_time, max_time):
        with self.lock:
            self.progress.append((process_id, remaining_time, max_time))

    def on_memory_layout_changed(self, block_sizes):
        with self.lock:
            self.layouts.append(list(block_sizes))

    def states_of(self, pid):
        return [s for p, s in self.states if p == pid]


@pytest.fixture
def reference_blocks():
    return list(REFERENCE_BLOCKS)


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def controller(events):
    c = SimulationController(blocks=REFERENCE_BLOCKS, pool_size=5,
                             tick_interval=0.005, drain_timeout=10, observer=events)
    yield c
    c.reset()


class BrokenObserver(ProcessObserver):
    """Raises from the named callbacks, like a front end that went away."""

    def __init__(self, *methods):
        self.methods = set(methods)

    def _fail(self, name):
        if name in self.methods:
            raise RuntimeError("ui gone")

    def on_state_changed(self, process_id, new_state):
        self._fail("on_state_changed")

    def on_progress(self, process_id, remaining_time, max_time):
        self._fail("on_progress")

    def on_memory_layout_changed(self, block_sizes):
        self._fail("on_memory_layout_changed")


@pytest.fixture
def broken_observer():
    return BrokenObserver
