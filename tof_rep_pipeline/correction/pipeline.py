"""
Pipeline that orchestrates preprocessing, correction and metric derivation
for one completed set.
"""
import logging
from typing import Optional

from ..core.config import PipelineConfig
from ..core.interfaces import (CorrectionResult, MetricsCalculator, RepCorrector,
                               SetBuffer, SignalPreprocessor)
from ..metrics.rep_metrics import TimestampMetricsCalculator
from ..processing.preprocessing import ZoneSignalPreprocessor
from ..processing.sampling import estimate_sampling_hz
from .corrector import PeakTroughRepCorrector

logger = logging.getLogger(__name__)


class CorrectionPipeline:
    """Main pipeline that turns a SetBuffer into validated reps and metrics."""

    def __init__(
        self,
        preprocessor: SignalPreprocessor,
        corrector: RepCorrector,
        metrics_calculator: MetricsCalculator,
        default_hz: float = 30.0
    ):
        self.preprocessor = preprocessor
        self.corrector = corrector
        self.metrics_calculator = metrics_calculator
        self.default_hz = default_hz

    def process(self, set_buffer: SetBuffer, sampling_hz_hint: Optional[float] = None) -> CorrectionResult:
        """Process one set's raw frames and return its correction result."""
        if set_buffer is None or len(set_buffer) == 0:
            logger.info("Empty set buffer; nothing to correct")
            return CorrectionResult(validated_reps=[], rep_metrics=[])

        # Reduce zones to one signal
        signal = self.preprocessor.preprocess(set_buffer)

        hz = estimate_sampling_hz(signal.timestamps, None) or sampling_hz_hint or self.default_hz

        # Validate reps
        reps = self.corrector.correct(signal.timestamps, signal.samples, hz)

        # Derive metrics
        metrics = self.metrics_calculator.calculate(reps)

        logger.info(
            f"Set {set_buffer.set_number} (session {set_buffer.session_id}): "
            f"{len(set_buffer)} frames at {hz:.1f} Hz -> {len(reps)} validated reps"
        )
        return CorrectionResult(
            validated_reps=reps,
            rep_metrics=metrics,
            sampling_hz=float(hz),
            active_zone_indices=list(signal.active_zone_indices),
        )


def build_pipeline(config: Optional[PipelineConfig] = None) -> CorrectionPipeline:
    """Create a pipeline wired with the default components."""
    config = config or PipelineConfig()
    return CorrectionPipeline(
        preprocessor=ZoneSignalPreprocessor.from_config(config.preprocessing),
        corrector=PeakTroughRepCorrector(config.correction),
        metrics_calculator=TimestampMetricsCalculator(),
        default_hz=config.correction.default_hz,
    )
