"""
Core data model and interfaces for the ToF rep pipeline components.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np


class EmptyInputError(ValueError):
    """Raised when a component is handed a buffer with no frames."""


class MetricKind(str, Enum):
    """Per-rep metric channels emitted by the device firmware."""
    VELOCITY = "Velocity"
    ROM = "ROM"
    CONCENTRIC = "Concentric"
    ECCENTRIC = "Eccentric"


@dataclass(frozen=True)
class DistanceFrame:
    """One decoded hardware notification."""
    timestamp_ms: int                 # Device clock
    zones: Tuple[int, ...]            # Distance per zone in millimeters
    frame_id: Optional[int] = None

    @property
    def num_zones(self) -> int:
        return len(self.zones)


@dataclass
class SetBuffer:
    """Raw frames collected for one set, owned by exactly one holder at a time."""
    session_id: int
    set_number: int = 1
    frames: List[DistanceFrame] = field(default_factory=list)

    def append(self, frame: DistanceFrame) -> bool:
        """Append a frame, rejecting frames that do not advance the device clock."""
        if self.frames and frame.timestamp_ms <= self.frames[-1].timestamp_ms:
            return False
        self.frames.append(frame)
        return True

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def timestamps(self) -> np.ndarray:
        return np.array([f.timestamp_ms for f in self.frames], dtype=float)

    def zone_matrix(self) -> np.ndarray:
        """Return an (n_frames x n_zones) float matrix, NaN where a frame lacks a zone."""
        if not self.frames:
            return np.empty((0, 0))
        width = max(f.num_zones for f in self.frames)
        matrix = np.full((len(self.frames), width), np.nan)
        for i, frame in enumerate(self.frames):
            matrix[i, :frame.num_zones] = frame.zones
        return matrix


@dataclass
class PreprocessedSignal:
    """Scalar distance-over-time signal derived from one SetBuffer."""
    samples: np.ndarray
    timestamps: np.ndarray
    active_zone_indices: List[int]


@dataclass(frozen=True)
class ValidatedRep:
    """Rep boundaries confirmed by the corrector (times in ms)."""
    rep_num: int
    concentric_start_time: float
    eccentric_start_time: float
    rep_end_time: float
    rom_mm: float
    peak_index: Optional[int] = None


@dataclass(frozen=True)
class RepMetrics:
    """Physical quantities derived from a ValidatedRep."""
    rep_num: int
    rom_mm: float
    total_duration_ms: float
    concentric_duration_ms: float
    eccentric_duration_ms: float
    concentric_velocity_mps: float


@dataclass
class LiveRepSample:
    """Per-rep aggregate of streamed device metrics; every channel is optional."""
    velocity: Optional[float] = None
    rom: Optional[float] = None
    concentric: Optional[float] = None
    eccentric: Optional[float] = None

    def has_any(self) -> bool:
        return any(v is not None for v in (self.velocity, self.rom, self.concentric, self.eccentric))

    def set_metric(self, kind: MetricKind, value: float):
        setattr(self, kind.name.lower(), float(value))

    def get_metric(self, kind: MetricKind) -> Optional[float]:
        return getattr(self, kind.name.lower())


@dataclass
class CorrectionResult:
    """Output of one full correction pass over a SetBuffer."""
    validated_reps: List[ValidatedRep]
    rep_metrics: List[RepMetrics]
    sampling_hz: float = 0.0
    active_zone_indices: List[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.validated_reps)


class SignalPreprocessor(ABC):
    """Interface for reducing a multi-zone buffer to one scalar signal."""

    @abstractmethod
    def preprocess(self, set_buffer: SetBuffer) -> PreprocessedSignal:
        """Return the denoised distance signal for the buffer."""
        pass


class RepCorrector(ABC):
    """Interface for post-set rep validation."""

    @abstractmethod
    def correct(self, timestamps: Sequence[float], distances: Sequence[float],
                sampling_hz_hint: Optional[float] = None) -> List[ValidatedRep]:
        """Return validated reps found in the signal."""
        pass


class MetricsCalculator(ABC):
    """Interface for turning validated reps into rep metrics."""

    @abstractmethod
    def calculate(self, reps: Sequence[ValidatedRep]) -> List[RepMetrics]:
        """Return one RepMetrics per validated rep."""
        pass
