import pytest

from tof_rep_pipeline.core.interfaces import LiveRepSample, RepMetrics
from tof_rep_pipeline.metrics.summary import (make_coach_notes, rows_from_metrics,
                                              summarize_set, velocity_loss_pct)


def _rows(velocities, eccentric=2.5, rom=400.0):
    return [LiveRepSample(velocity=v, rom=rom, concentric=0.8, eccentric=eccentric)
            for v in velocities]


def test_velocity_loss():
    assert velocity_loss_pct([1.0, 0.9, 0.8]) == 20.0
    assert velocity_loss_pct([1.0]) == 0.0
    assert velocity_loss_pct([0.0, 0.5]) == 0.0


def test_summary_averages():
    summary = summarize_set(_rows([0.6, 0.5, 0.4]), weight=100)
    assert summary.reps == 3
    assert summary.weight == 100.0
    assert summary.avg_velocity == pytest.approx(0.5)
    assert summary.avg_eccentric == pytest.approx(2.5)
    assert summary.avg_rom == pytest.approx(400.0)
    assert summary.velocity_loss_pct == pytest.approx(33.33, abs=0.01)


def test_missing_velocity_is_derived():
    rows = [LiveRepSample(rom=300.0, concentric=1.0, eccentric=2.0)]
    summary = summarize_set(rows)
    assert summary.rows[0].velocity == pytest.approx(100.0)
    assert summary.weight == 0.0


def test_rows_from_metrics_fall_back_to_live_values():
    metrics = [
        RepMetrics(1, 200.0, 2000.0, 800.0, 1200.0, 0.25),
        RepMetrics(2, 180.0, 1500.0, 0.0, 1500.0, 0.0),
    ]
    live = [LiveRepSample(velocity=0.3), LiveRepSample(velocity=0.28, concentric=0.7)]
    rows = rows_from_metrics(metrics, live)
    assert rows[0].velocity == 0.25
    assert rows[0].concentric == 0.8
    assert rows[0].eccentric == 1.2
    assert rows[1].velocity == 0.28
    assert rows[1].concentric == 0.7


@pytest.mark.parametrize("velocities, label", [
    ([1.0, 0.95], 'Easy'),
    ([1.0, 0.8], 'Strength zone'),
    ([1.0, 0.65], 'Fatigue building'),
    ([1.0, 0.5], 'High fatigue'),
])
def test_load_note_bands(velocities, label):
    notes = {n.key: n for n in make_coach_notes(_rows(velocities))}
    assert notes['load'].label == label


@pytest.mark.parametrize("eccentric, label", [
    (1.0, 'Too fast'),
    (3.0, 'On target'),
    (5.0, 'Very slow'),
])
def test_tempo_note(eccentric, label):
    notes = {n.key: n for n in make_coach_notes(_rows([0.5], eccentric=eccentric))}
    assert notes['tempo'].label == label
    assert 'load' not in notes


def test_rom_breaking_down():
    rows = [LiveRepSample(velocity=0.5, rom=r, eccentric=2.5) for r in (400.0, 400.0, 350.0)]
    notes = {n.key: n for n in make_coach_notes(rows)}
    assert notes['rom'].label == 'Breaking down'


def test_rom_consistent():
    rows = [LiveRepSample(velocity=0.5, rom=r, eccentric=2.5) for r in (400.0, 405.0, 398.0)]
    notes = {n.key: n for n in make_coach_notes(rows)}
    assert notes['rom'].label == 'Consistent'


def test_no_rows_no_notes():
    assert make_coach_notes([]) == []
