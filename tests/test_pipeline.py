import pytest

from tof_rep_pipeline.core.config import PipelineConfig, PreprocessingConfig
from tof_rep_pipeline.core.interfaces import SetBuffer
from tof_rep_pipeline.correction.pipeline import build_pipeline

from conftest import buffer_from_signal, hump_signal


def test_pipeline_counts_reps_from_raw_frames():
    buffer = buffer_from_signal(hump_signal(base=500.0))
    result = build_pipeline().process(buffer)

    assert result.count == 3
    assert len(result.rep_metrics) == 3
    assert result.sampling_hz == pytest.approx(30.0, rel=0.05)
    assert result.active_zone_indices == list(range(8))
    for rep, m in zip(result.validated_reps, result.rep_metrics):
        # Median filtering trims the crest of each lift
        assert 150.0 < rep.rom_mm <= 205.0
        assert m.concentric_velocity_mps > 0


def test_pipeline_empty_buffer():
    result = build_pipeline().process(SetBuffer(session_id=1))
    assert result.count == 0
    assert result.rep_metrics == []


def test_pipeline_without_reps():
    buffer = buffer_from_signal(hump_signal(num_reps=0, lead=100, tail=50, base=500.0))
    assert build_pipeline().process(buffer).count == 0


def test_pipeline_respects_config():
    config = PipelineConfig(preprocessing=PreprocessingConfig(num_active_zones=2))
    buffer = buffer_from_signal(hump_signal(base=500.0), num_zones=6)
    result = build_pipeline(config).process(buffer)
    assert len(result.active_zone_indices) == 2
    assert result.count == 3
