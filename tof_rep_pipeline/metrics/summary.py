"""
Per-set summaries and coaching notes built from rep rows.

A rep row is a LiveRepSample: Velocity in m/s, ROM in mm, Concentric and
Eccentric in seconds. Rows come from validated metrics when correction ran,
otherwise from the device's live samples.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from ..core.interfaces import LiveRepSample, RepMetrics


@dataclass
class SetSummary:
    reps: int
    weight: float
    avg_velocity: float
    avg_eccentric: float
    avg_rom: float
    velocity_loss_pct: float
    rows: List[LiveRepSample] = field(default_factory=list)


@dataclass(frozen=True)
class CoachNote:
    key: str
    title: str
    label: str
    action: str
    color: str


def rows_from_metrics(metrics: Sequence[RepMetrics],
                      fallback: Sequence[LiveRepSample] = ()) -> List[LiveRepSample]:
    """Convert validated metrics to rep rows, filling gaps from the live sample at the same index."""
    rows = []
    for i, m in enumerate(metrics):
        live = fallback[i] if i < len(fallback) else LiveRepSample()
        velocity = m.concentric_velocity_mps if m.concentric_velocity_mps > 0 else live.velocity
        rows.append(LiveRepSample(
            velocity=velocity,
            rom=m.rom_mm if m.rom_mm is not None else live.rom,
            concentric=m.concentric_duration_ms / 1000.0 if m.concentric_duration_ms > 0 else live.concentric,
            eccentric=m.eccentric_duration_ms / 1000.0 if m.eccentric_duration_ms > 0 else live.eccentric,
        ))
    return rows


def _normalized(row: LiveRepSample) -> LiveRepSample:
    velocity = row.velocity
    if (velocity is None or velocity == 0) and row.rom is not None:
        duration = (row.concentric or 0.0) + (row.eccentric or 0.0)
        if duration > 0:
            velocity = row.rom / duration
    return LiveRepSample(velocity=velocity, rom=row.rom,
                         concentric=row.concentric, eccentric=row.eccentric)


def _mean(values: List[float]) -> float:
    return round(float(np.mean(values)), 3) if values else 0.0


def velocity_loss_pct(velocities: List[float]) -> float:
    if len(velocities) >= 2 and velocities[0] > 0:
        return round((1 - velocities[-1] / velocities[0]) * 100, 2)
    return 0.0


def summarize_set(rows: Sequence[LiveRepSample], weight: Optional[float] = None) -> SetSummary:
    normalized = [_normalized(r) for r in rows]
    vels = [r.velocity for r in normalized if r.velocity is not None]
    eccs = [r.eccentric for r in normalized if r.eccentric is not None]
    roms = [r.rom for r in normalized if r.rom is not None]

    return SetSummary(
        reps=len(normalized),
        weight=float(weight or 0.0),
        avg_velocity=_mean(vels),
        avg_eccentric=_mean(eccs),
        avg_rom=_mean(roms),
        velocity_loss_pct=velocity_loss_pct(vels),
        rows=normalized,
    )


def _cv_pct(values: List[float]) -> float:
    if len(values) < 2:
        return 0.0
    m = float(np.mean(values))
    if not m:
        return 0.0
    return float(np.std(values, ddof=1)) / m * 100


def make_coach_notes(rows: Sequence[LiveRepSample]) -> List[CoachNote]:
    """Load, tempo and ROM consistency feedback for one set."""
    normalized = [_normalized(r) for r in rows]
    vels = [r.velocity for r in normalized if r.velocity is not None]
    eccs = [r.eccentric for r in normalized if r.eccentric is not None]
    roms = [r.rom for r in normalized if r.rom is not None]
    notes = []

    if len(vels) >= 2:
        loss = velocity_loss_pct(vels)
        label, action, color = 'Strength zone', 'Keep the weight.', 'ok'
        if loss < 15:
            label, action, color = 'Easy', 'Add ~2.5-5% or 1-2 reps next set.', 'good'
        elif 30 <= loss < 40:
            label, action, color = 'Fatigue building', 'Rest longer or drop ~2.5-5%.', 'warn'
        elif loss >= 40:
            label, action, color = 'High fatigue', 'End the set sooner or drop 5-10%.', 'bad'
        notes.append(CoachNote('load', 'Load', label, action, color))

    if eccs:
        avg = float(np.mean(eccs))
        label, action, color = 'On target', 'Stay controlled ~2-4 s down.', 'ok'
        if avg < 1.8:
            label, action, color = 'Too fast', 'Slow the down phase a bit (~2-4 s).', 'warn'
        elif avg > 4.2:
            label, action, color = 'Very slow', 'Speed up slightly toward ~2-4 s.', 'info'
        notes.append(CoachNote('tempo', 'Tempo', label, action, color))

    if roms:
        cv = _cv_pct(roms)
        top = max(roms)
        end_drop = (top - roms[-1]) / top * 100 if top > 0 else 0.0
        label, action, color = 'Consistent', 'Keep using the same depth each rep.', 'ok'
        if 10 <= cv < 20:
            label, action, color = 'Varied', 'Aim for the same depth each time.', 'info'
        if end_drop >= 10:
            label, action, color = 'Breaking down', 'Consider ending the set sooner or resting more.', 'warn'
        notes.append(CoachNote('rom', 'ROM', label, action, color))

    return notes
