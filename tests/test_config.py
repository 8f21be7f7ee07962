import json

import pytest

from tof_rep_pipeline.core.config import (CorrectionConfig, PipelineConfig,
                                          PreprocessingConfig, load_config)


def test_defaults():
    config = load_config()
    assert config == PipelineConfig()
    assert config.preprocessing.median_kernel_size == 13
    assert config.correction.min_rep_duration_ms == 500
    assert config.session.baseline_confirm_ms == 200
    assert config.session.min_frames_for_correction == 6


def test_overrides_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "correction": {"default_hz": 25.0, "max_rep_duration_ms": 8000},
        "session": {"correction_workers": 2},
    }))
    config = load_config(path)
    assert config.correction.default_hz == 25.0
    assert config.correction.max_rep_duration_ms == 8000
    assert config.correction.min_rep_duration_ms == CorrectionConfig().min_rep_duration_ms
    assert config.session.correction_workers == 2
    assert config.preprocessing == PreprocessingConfig()


@pytest.mark.parametrize("raw", [
    {"filters": {}},
    {"correction": {"not_a_field": 1}},
])
def test_unknown_keys_raise(tmp_path, raw):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(raw))
    with pytest.raises(ValueError):
        load_config(path)


def test_invalid_preprocessing_values():
    with pytest.raises(ValueError):
        PreprocessingConfig(median_kernel_size=12)
    with pytest.raises(ValueError):
        PreprocessingConfig(savgol_window=3, savgol_polyorder=3)
