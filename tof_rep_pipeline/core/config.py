"""
Tunable parameters for preprocessing, correction and live sessions.
"""
import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Union


@dataclass(frozen=True)
class PreprocessingConfig:
    median_kernel_size: int = 13
    num_active_zones: int = 8
    savgol_window: int = 15
    savgol_polyorder: int = 3

    def __post_init__(self):
        if self.median_kernel_size % 2 == 0:
            raise ValueError("median_kernel_size must be odd")
        if self.savgol_window % 2 == 0 or self.savgol_window <= self.savgol_polyorder:
            raise ValueError("savgol_window must be odd and larger than savgol_polyorder")


@dataclass(frozen=True)
class CorrectionConfig:
    default_hz: float = 30.0
    min_rep_separation_s: float = 0.8
    # Signal-relative thresholds (mm)
    prominence_floor_mm: float = 30.0
    rom_floor_mm: float = 30.0
    std_factor: float = 0.5
    # Duration bounds (ms)
    min_rep_duration_ms: float = 500.0
    max_rep_duration_ms: float = 10000.0
    # Height gate above the resting baseline (mm)
    baseline_window_s: float = 1.5
    min_baseline_samples: int = 10
    height_std_factor: float = 5.0
    height_floor_mm: float = 15.0
    height_cap_mm: float = 180.0
    soft_height_mm: float = 80.0
    # First rep liftoff detection
    liftoff_gap_s: float = 0.5
    liftoff_std_factor: float = 4.0
    liftoff_floor_mm: float = 15.0
    liftoff_cap_mm: float = 160.0


@dataclass(frozen=True)
class SessionConfig:
    baseline_confirm_ms: float = 200.0
    min_frames_for_correction: int = 6
    correction_workers: int = 1


@dataclass(frozen=True)
class PipelineConfig:
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


def _apply_overrides(base, overrides: Dict[str, Any]):
    known = {f.name for f in fields(base)}
    unknown = set(overrides) - known
    if unknown:
        raise ValueError(f"Unknown {type(base).__name__} keys: {sorted(unknown)}")
    return replace(base, **overrides)


def load_config(path: Union[str, Path, None] = None) -> PipelineConfig:
    """
    Load a PipelineConfig from a JSON file.

    Expected format (every section optional):
    {
        "preprocessing": {"median_kernel_size": 13, ...},
        "correction": {"default_hz": 30.0, ...},
        "session": {"baseline_confirm_ms": 200, ...}
    }
    """
    config = PipelineConfig()
    if path is None:
        return config

    with open(path, 'r') as f:
        raw = json.load(f)

    sections = {f.name for f in fields(config)}
    unknown = set(raw) - sections
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}")

    return PipelineConfig(
        preprocessing=_apply_overrides(config.preprocessing, raw.get('preprocessing', {})),
        correction=_apply_overrides(config.correction, raw.get('correction', {})),
        session=_apply_overrides(config.session, raw.get('session', {})),
    )
