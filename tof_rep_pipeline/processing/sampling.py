"""
Effective sampling-rate estimation from device timestamps.
"""
from typing import Optional, Sequence

import numpy as np

WINDOW_DELTAS = 50
MIN_TIMESTAMPS = 4
PAUSE_MS = 1000.0
MIN_HZ = 5.0
MAX_HZ = 120.0
SMOOTHING = 0.2


def estimate_sampling_hz(timestamps: Sequence[float],
                         previous: Optional[float] = None) -> Optional[float]:
    """
    Estimate samples-per-second from the most recent timestamps (ms).

    Only the last WINDOW_DELTAS inter-sample deltas are used. Deltas that are
    non-positive or at least PAUSE_MS long are pauses, not samples. The median
    delta is converted to Hz, clamped to [MIN_HZ, MAX_HZ] and blended with the
    previous estimate (weight SMOOTHING for the new value). With no previous
    estimate the clamped value is returned as is.

    Returns the previous estimate unchanged when there are too few timestamps
    or no usable deltas.
    """
    ts = np.asarray(timestamps, dtype=float)
    if ts.size < MIN_TIMESTAMPS:
        return previous

    deltas = np.diff(ts[-(WINDOW_DELTAS + 1):])
    deltas = deltas[np.isfinite(deltas) & (deltas > 0) & (deltas < PAUSE_MS)]
    if deltas.size == 0:
        return previous

    hz = float(np.clip(1000.0 / np.median(deltas), MIN_HZ, MAX_HZ))
    if previous is None:
        return hz
    return (1 - SMOOTHING) * previous + SMOOTHING * hz


class SamplingRateEstimator:
    """Running estimate over a growing timestamp stream."""

    def __init__(self, initial_hz: Optional[float] = None):
        self.estimate = initial_hz

    def update(self, timestamps: Sequence[float]) -> Optional[float]:
        self.estimate = estimate_sampling_hz(timestamps, self.estimate)
        return self.estimate

    def reset(self, initial_hz: Optional[float] = None):
        self.estimate = initial_hz
