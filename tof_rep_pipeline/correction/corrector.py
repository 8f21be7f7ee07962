"""
Post-set rep correction: peaks and troughs of the distance signal become
validated rep boundaries, checked against signal-relative ROM and duration
thresholds.
"""
import logging
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np

from ..core.config import CorrectionConfig
from ..core.interfaces import RepCorrector, ValidatedRep
from ..processing.peakfinding import find_extrema, find_troughs
from ..processing.sampling import estimate_sampling_hz

logger = logging.getLogger(__name__)


def _std(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def _min_index_from(values: np.ndarray, start: int) -> int:
    """Index of the minimum value at or after start (first occurrence)."""
    if start >= values.size:
        return start
    return start + int(np.argmin(values[start:]))


class PeakTroughRepCorrector(RepCorrector):
    def __init__(self, config: Optional[CorrectionConfig] = None):
        """
        Initialize the corrector.

        Args:
            config: Threshold configuration; defaults to CorrectionConfig()
        """
        self.config = config or CorrectionConfig()

    # ------------------------------------------------------------------
    # Thresholds
    # ------------------------------------------------------------------
    def sampling_hz(self, timestamps: np.ndarray, hint: Optional[float]) -> float:
        hz = estimate_sampling_hz(timestamps, None)
        if hz is None:
            hz = hint if hint and hint > 0 else self.config.default_hz
        return float(hz)

    def dynamic_thresholds(self, distances: np.ndarray) -> Tuple[float, float]:
        """Return (prominence, min_rom) scaled to the set's own spread."""
        cfg = self.config
        signal_sd = _std(distances)
        prominence = max(cfg.prominence_floor_mm, cfg.std_factor * signal_sd)
        min_rom = max(cfg.rom_floor_mm, cfg.std_factor * signal_sd)
        return prominence, min_rom

    def baseline_window(self, distances: np.ndarray, hz: float) -> np.ndarray:
        end = min(int(self.config.baseline_window_s * hz), distances.size // 4)
        return distances[:end]

    def min_peak_height(self, baseline: np.ndarray) -> Optional[float]:
        """Height gate above the resting level, or None when the baseline is too short."""
        cfg = self.config
        if baseline.size <= cfg.min_baseline_samples:
            return None
        b_mean = float(np.mean(baseline))
        b_std = _std(baseline)
        proposed = b_mean + max(cfg.height_floor_mm, cfg.height_std_factor * b_std)
        return float(np.clip(proposed, b_mean + cfg.height_floor_mm, b_mean + cfg.height_cap_mm))

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------
    def detect_peaks(self, distances: np.ndarray, min_distance: int, prominence: float,
                     baseline: np.ndarray) -> np.ndarray:
        """Run peak detection with progressively relaxed height gates."""
        height = self.min_peak_height(baseline)
        peaks = find_extrema(distances, min_distance=min_distance,
                             min_prominence=prominence, min_height=height).indices
        logger.debug(f"Primary detection (height={height}) found {len(peaks)} peaks")

        if len(peaks) == 0 and height is not None:
            soft_height = float(np.mean(baseline)) + self.config.soft_height_mm
            peaks = find_extrema(distances, min_distance=min_distance,
                                 min_prominence=prominence, min_height=soft_height).indices
            logger.debug(f"Soft height gate ({soft_height:.1f}mm) found {len(peaks)} peaks")

        if len(peaks) == 0:
            peaks = find_extrema(distances, min_distance=min_distance,
                                 min_prominence=prominence).indices
            logger.debug(f"No-height pass found {len(peaks)} peaks")

        return peaks

    def _accept(self, rom: float, start_t: float, peak_t: float, end_t: float,
                min_rom: float) -> bool:
        cfg = self.config
        duration = end_t - start_t
        if not (start_t < peak_t < end_t):
            logger.debug(f"  rejected: boundaries out of order ({start_t}, {peak_t}, {end_t})")
            return False
        if rom < min_rom or rom <= 0:
            logger.debug(f"  rejected: ROM {rom:.1f}mm below {min_rom:.1f}mm")
            return False
        if duration < cfg.min_rep_duration_ms or duration > cfg.max_rep_duration_ms:
            logger.debug(f"  rejected: duration {duration:.0f}ms out of bounds")
            return False
        return True

    def _rep_end(self, distances: np.ndarray, troughs: np.ndarray, peak_idx: int) -> int:
        following = troughs[troughs > peak_idx]
        if following.size:
            return int(following[0])
        return _min_index_from(distances, peak_idx)

    def first_rep(self, timestamps: np.ndarray, distances: np.ndarray, troughs: np.ndarray,
                  peak_idx: int, hz: float, min_rom: float) -> Optional[ValidatedRep]:
        """
        The first rep has no preceding trough; its concentric start is the
        first sample that departs from the resting baseline.
        """
        cfg = self.config
        window_end = max(cfg.min_baseline_samples, peak_idx - int(hz * cfg.liftoff_gap_s))
        baseline = distances[:window_end]
        if baseline.size <= cfg.min_baseline_samples:
            logger.debug("Rep 1 rejected: not enough baseline samples")
            return None

        b_mean = float(np.mean(baseline))
        b_std = _std(baseline)
        liftoff = min(b_mean + max(cfg.liftoff_floor_mm, cfg.liftoff_std_factor * b_std),
                      b_mean + cfg.liftoff_cap_mm)
        above = np.nonzero(distances[:peak_idx] > liftoff)[0]
        if above.size == 0:
            logger.debug(f"Rep 1 rejected: no liftoff above {liftoff:.1f}mm")
            return None

        start_idx = int(above[0])
        end_idx = self._rep_end(distances, troughs, peak_idx)
        # Displacement from the resting level, not from the liftoff sample, so a
        # lift of height H off a flat rest reports ROM ~= H like every later rep
        rom = float(distances[peak_idx]) - b_mean
        logger.debug(
            f"Rep 1: baseline={b_mean:.1f}+/-{b_std:.1f}, liftoff={liftoff:.1f}@{start_idx}, "
            f"ROM={rom:.1f}mm"
        )
        if not self._accept(rom, timestamps[start_idx], timestamps[peak_idx],
                            timestamps[end_idx], min_rom):
            return None
        return ValidatedRep(
            rep_num=1,
            concentric_start_time=float(timestamps[start_idx]),
            eccentric_start_time=float(timestamps[peak_idx]),
            rep_end_time=float(timestamps[end_idx]),
            rom_mm=rom,
            peak_index=int(peak_idx),
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def correct(self, timestamps: Sequence[float], distances: Sequence[float],
                sampling_hz_hint: Optional[float] = None) -> List[ValidatedRep]:
        """
        Validate reps in one set's distance signal.

        Args:
            timestamps: Sample times in ms
            distances: Preprocessed distance samples in mm
            sampling_hz_hint: Rate to fall back on when timestamps are unusable

        Returns:
            Validated reps numbered from 1; empty for corrupted or rep-less input
        """
        ts = np.asarray(timestamps, dtype=float)
        dist = np.asarray(distances, dtype=float)
        if ts.size == 0 or dist.size == 0:
            logger.info("Correction skipped: empty input")
            return []

        if ts.size != dist.size:
            n = min(ts.size, dist.size)
            logger.warning(f"Length mismatch (timestamps={ts.size}, distances={dist.size}); truncating to {n}")
            ts, dist = ts[:n], dist[:n]

        if np.isnan(dist).any():
            logger.error("Distance signal contains NaN values; aborting correction")
            return []

        cfg = self.config
        hz = self.sampling_hz(ts, sampling_hz_hint)
        min_distance = int(np.floor(cfg.min_rep_separation_s * hz))
        prominence, min_rom = self.dynamic_thresholds(dist)
        baseline = self.baseline_window(dist, hz)
        logger.debug(
            f"hz={hz:.1f}, min_distance={min_distance}, prominence={prominence:.1f}mm, "
            f"min_rom={min_rom:.1f}mm, baseline_samples={baseline.size}"
        )

        peaks = self.detect_peaks(dist, min_distance, prominence, baseline)
        troughs = find_troughs(dist, min_distance=min_distance,
                               min_prominence=prominence / 2).indices
        logger.debug(f"Found {len(peaks)} peaks and {len(troughs)} troughs")

        if len(peaks) == 0:
            logger.info("No valid peaks found after all passes")
            return []

        validated: List[ValidatedRep] = []
        used_troughs: Set[int] = set()

        first = self.first_rep(ts, dist, troughs, int(peaks[0]), hz, min_rom)
        if first is not None:
            validated.append(first)

        for peak_idx in peaks[len(validated):]:
            peak_idx = int(peak_idx)
            preceding = troughs[troughs < peak_idx]
            if preceding.size == 0:
                logger.debug(f"Peak {peak_idx} rejected: no preceding trough")
                continue
            trough_idx = int(preceding[-1])
            if trough_idx in used_troughs:
                logger.debug(f"Peak {peak_idx} rejected: trough {trough_idx} already used")
                continue

            rom = float(dist[peak_idx] - dist[trough_idx])
            end_idx = self._rep_end(dist, troughs, peak_idx)
            logger.debug(f"Peak {peak_idx}: trough={trough_idx}, end={end_idx}, ROM={rom:.1f}mm")
            if not self._accept(rom, ts[trough_idx], ts[peak_idx], ts[end_idx], min_rom):
                continue

            validated.append(ValidatedRep(
                rep_num=len(validated) + 1,
                concentric_start_time=float(ts[trough_idx]),
                eccentric_start_time=float(ts[peak_idx]),
                rep_end_time=float(ts[end_idx]),
                rom_mm=rom,
                peak_index=peak_idx,
            ))
            used_troughs.add(trough_idx)

        logger.info(f"Validated {len(validated)} of {len(peaks)} candidate reps")
        return validated
