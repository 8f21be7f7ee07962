"""
Rep metrics derived from validated rep boundaries using real timestamps.
"""
from typing import List, Sequence

from ..core.interfaces import MetricsCalculator, RepMetrics, ValidatedRep


def rep_metrics(rep: ValidatedRep) -> RepMetrics:
    concentric_ms = max(0.0, rep.eccentric_start_time - rep.concentric_start_time)
    eccentric_ms = max(0.0, rep.rep_end_time - rep.eccentric_start_time)
    total_ms = rep.rep_end_time - rep.concentric_start_time

    velocity = 0.0
    if concentric_ms > 0:
        velocity = (rep.rom_mm / 1000.0) / (concentric_ms / 1000.0)

    return RepMetrics(
        rep_num=rep.rep_num,
        rom_mm=rep.rom_mm,
        total_duration_ms=total_ms,
        concentric_duration_ms=concentric_ms,
        eccentric_duration_ms=eccentric_ms,
        concentric_velocity_mps=velocity,
    )


class TimestampMetricsCalculator(MetricsCalculator):
    """Stateless: the same reps always give the same metrics."""

    def calculate(self, reps: Sequence[ValidatedRep]) -> List[RepMetrics]:
        return [rep_metrics(rep) for rep in reps or []]
