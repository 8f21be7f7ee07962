"""
Reduction of a multi-zone ToF buffer to one denoised distance signal.
"""
import logging

import numpy as np
import pandas as pd
from scipy.ndimage import median_filter
from scipy.signal import savgol_filter

from ..core.config import PreprocessingConfig
from ..core.interfaces import (EmptyInputError, PreprocessedSignal, SetBuffer,
                               SignalPreprocessor)

logger = logging.getLogger(__name__)


def _fill_edges(values: np.ndarray) -> np.ndarray:
    """Forward then backward fill non-finite samples from their nearest neighbour."""
    series = pd.Series(values, dtype=float).replace([np.inf, -np.inf], np.nan)
    return series.ffill().bfill().to_numpy()


class ZoneSignalPreprocessor(SignalPreprocessor):
    def __init__(
        self,
        median_kernel_size: int = 13,
        num_active_zones: int = 8,
        savgol_window: int = 15,
        savgol_polyorder: int = 3
    ):
        """
        Initialize the preprocessor.

        Args:
            median_kernel_size: Odd kernel size of the per-zone median filter
            num_active_zones: Number of highest-variance zones averaged together
            savgol_window: Savitzky-Golay window length
            savgol_polyorder: Savitzky-Golay polynomial order
        """
        if median_kernel_size % 2 == 0:
            raise ValueError("Kernel size must be odd.")
        self.median_kernel_size = median_kernel_size
        self.num_active_zones = num_active_zones
        self.savgol_window = savgol_window
        self.savgol_polyorder = savgol_polyorder

    @classmethod
    def from_config(cls, config: PreprocessingConfig) -> 'ZoneSignalPreprocessor':
        return cls(
            median_kernel_size=config.median_kernel_size,
            num_active_zones=config.num_active_zones,
            savgol_window=config.savgol_window,
            savgol_polyorder=config.savgol_polyorder,
        )

    def filter_zones(self, matrix: np.ndarray) -> np.ndarray:
        """Median-filter each zone column to suppress impulse noise."""
        cleaned = np.full(matrix.shape, np.nan)
        for z in range(matrix.shape[1]):
            column = matrix[:, z]
            valid = np.isfinite(column)
            if not valid.any():
                continue
            # Gaps are bridged for filtering only, then masked out again
            filled = _fill_edges(column)
            filtered = median_filter(filled, size=self.median_kernel_size, mode='nearest')
            cleaned[valid, z] = filtered[valid]
        return cleaned

    def select_active_zones(self, cleaned: np.ndarray) -> list:
        """Return the indices of the zones with the most motion variance."""
        variances = np.full(cleaned.shape[1], -np.inf)
        for z in range(cleaned.shape[1]):
            column = cleaned[:, z]
            column = column[np.isfinite(column)]
            if column.size:
                variances[z] = np.var(column)
        order = np.argsort(variances, kind='stable')
        active = order[-self.num_active_zones:]
        return sorted(int(z) for z in active if np.isfinite(variances[z]))

    def average_zones(self, cleaned: np.ndarray, active: list) -> np.ndarray:
        """Average the active zones per frame, carrying the last value over empty frames."""
        means = np.zeros(cleaned.shape[0])
        last = 0.0
        for i, row in enumerate(cleaned[:, active] if active else np.empty((cleaned.shape[0], 0))):
            valid = row[np.isfinite(row)]
            if valid.size:
                last = float(valid.mean())
            means[i] = last
        return means

    def smooth(self, raw_means: np.ndarray) -> np.ndarray:
        if raw_means.size < self.savgol_window:
            return raw_means
        smoothed = savgol_filter(raw_means, self.savgol_window, self.savgol_polyorder, deriv=0)
        return _fill_edges(smoothed)

    def preprocess(self, set_buffer: SetBuffer) -> PreprocessedSignal:
        """
        Reduce the buffer to a single scalar distance per frame.

        Raises:
            EmptyInputError: if the buffer holds no frames
        """
        if set_buffer is None or len(set_buffer) == 0:
            raise EmptyInputError("Input data cannot be empty.")

        matrix = set_buffer.zone_matrix()
        cleaned = self.filter_zones(matrix)
        active = self.select_active_zones(cleaned)
        raw_means = self.average_zones(cleaned, active)
        samples = self.smooth(raw_means)

        logger.debug(
            f"Set {set_buffer.set_number}: {len(samples)} samples, "
            f"{matrix.shape[1]} zones, active={active}"
        )
        return PreprocessedSignal(
            samples=samples,
            timestamps=set_buffer.timestamps,
            active_zone_indices=active,
        )
