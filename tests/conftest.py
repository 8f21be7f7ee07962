from concurrent.futures import Executor, Future

import numpy as np
import pytest

from tof_rep_pipeline.core.interfaces import DistanceFrame, SetBuffer

HZ = 30.0


def timestamps_for(n, hz=HZ, start_ms=0.0):
    return start_ms + np.arange(n) * 1000.0 / hz


def hump_signal(num_reps=3, height=200.0, width=37, gap=30, lead=60, tail=30, base=0.0):
    """Resting level, then `num_reps` Hann-shaped lifts separated by flat gaps."""
    hump = np.hanning(width) * height
    parts = [np.zeros(lead)]
    for i in range(num_reps):
        parts.append(hump)
        parts.append(np.zeros(gap if i < num_reps - 1 else tail))
    return np.concatenate(parts) + base


def buffer_from_signal(signal, num_zones=8, session_id=1, set_number=1, hz=HZ):
    """Every zone sees the same distance, rounded to whole millimeters."""
    buffer = SetBuffer(session_id=session_id, set_number=set_number)
    for i, (ts, value) in enumerate(zip(timestamps_for(len(signal), hz), signal)):
        buffer.append(DistanceFrame(
            timestamp_ms=int(round(ts)),
            zones=tuple([int(round(value))] * num_zones),
            frame_id=i,
        ))
    return buffer


class ImmediateExecutor(Executor):
    """Runs submitted work inline so session tests are deterministic."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until the test releases it, in any order."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run(self, index):
        future, fn, args, kwargs = self.jobs[index]
        future.set_result(fn(*args, **kwargs))


@pytest.fixture
def three_humps():
    signal = hump_signal()
    return timestamps_for(len(signal)), signal


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def deferred_executor():
    return DeferredExecutor()
