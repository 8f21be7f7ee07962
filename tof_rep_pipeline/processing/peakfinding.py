"""
Peak and trough detection with distance, prominence and height constraints.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy.signal import find_peaks


@dataclass
class Extrema:
    """Indices of detected extrema plus their prominences and bases."""
    indices: np.ndarray
    prominences: np.ndarray
    left_bases: np.ndarray
    right_bases: np.ndarray

    def __len__(self) -> int:
        return len(self.indices)


def find_extrema(
    series: Sequence[float],
    min_distance: int = 1,
    min_prominence: Optional[float] = None,
    min_height: Optional[float] = None,
    wlen: Optional[int] = None
) -> Extrema:
    """
    Find local maxima of a 1-D series.

    Flat-topped runs collapse to their midpoint. Candidates below min_height
    are dropped, then the tallest candidate in any cluster suppresses every
    other candidate within +/- min_distance samples, then candidates whose
    prominence is below min_prominence are dropped.

    Args:
        series: Signal to search
        min_distance: Suppression radius in samples (inclusive)
        min_prominence: Minimum prominence, or None to skip the check
        min_height: Minimum peak height, or None to skip the check
        wlen: Optional window (samples) bounding the prominence base search

    Returns:
        Extrema in ascending index order
    """
    x = np.asarray(series, dtype=float)
    empty = np.array([], dtype=int)
    if x.size < 3:
        return Extrema(empty, np.array([]), empty, empty)

    kwargs = {}
    if min_height is not None:
        kwargs['height'] = min_height
    if min_distance is not None and min_distance >= 1:
        # find_peaks drops neighbours strictly closer than `distance`
        kwargs['distance'] = int(min_distance) + 1
    # Always request prominences so the bases are reported
    kwargs['prominence'] = min_prominence if min_prominence is not None and min_prominence > 0 else 0
    if wlen is not None and wlen > 1:
        kwargs['wlen'] = int(wlen)

    peaks, properties = find_peaks(x, **kwargs)
    return Extrema(
        indices=peaks.astype(int),
        prominences=properties['prominences'],
        left_bases=properties['left_bases'].astype(int),
        right_bases=properties['right_bases'].astype(int),
    )


def find_troughs(
    series: Sequence[float],
    min_distance: int = 1,
    min_prominence: Optional[float] = None,
    max_value: Optional[float] = None,
    wlen: Optional[int] = None
) -> Extrema:
    """Find local minima by searching the negated series."""
    x = np.asarray(series, dtype=float)
    return find_extrema(
        -x,
        min_distance=min_distance,
        min_prominence=min_prominence,
        min_height=None if max_value is None else -max_value,
        wlen=wlen,
    )
