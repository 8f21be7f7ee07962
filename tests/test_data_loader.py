import pandas as pd
import pytest

from tof_rep_pipeline.core.interfaces import DistanceFrame, SetBuffer
from tof_rep_pipeline.data.data_loader import DataLoader


def _write(tmp_path, rows, name="rec.csv"):
    pd.DataFrame(rows).to_csv(tmp_path / name, index=False)
    return name


def test_groups_rows_by_session(tmp_path):
    name = _write(tmp_path, [
        {'session_id': 11, 'timestamp_ms': 0, 'z0': 500, 'z1': 501},
        {'session_id': 11, 'timestamp_ms': 33, 'z0': 510, 'z1': 511},
        {'session_id': 12, 'timestamp_ms': 2000, 'z0': 600, 'z1': 601},
    ])
    buffers = DataLoader(tmp_path).load_recording(name)

    assert [b.session_id for b in buffers] == [11, 12]
    assert [b.set_number for b in buffers] == [1, 2]
    assert buffers[0].frames[1] == DistanceFrame(timestamp_ms=33, zones=(510, 511))


def test_zone_columns_sorted_numerically(tmp_path):
    row = {'timestamp_ms': 0, 'z10': 10, 'z2': 2, 'z0': 0, 'z1': 1}
    buffers = DataLoader(tmp_path).load_recording(_write(tmp_path, [row]))
    assert buffers[0].frames[0].zones == (0, 1, 2, 10)
    assert buffers[0].session_id == 0


def test_rows_without_timestamp_are_dropped(tmp_path):
    name = _write(tmp_path, [
        {'timestamp_ms': 0, 'z0': 1},
        {'timestamp_ms': 'bad', 'z0': 2},
        {'timestamp_ms': 66, 'z0': 3},
    ])
    buffer = DataLoader(tmp_path).load_recording(name)[0]
    assert [f.timestamp_ms for f in buffer.frames] == [0, 66]


def test_out_of_order_rows_rejected(tmp_path):
    name = _write(tmp_path, [
        {'timestamp_ms': 100, 'z0': 1},
        {'timestamp_ms': 50, 'z0': 2},
        {'timestamp_ms': 150, 'z0': 3},
    ])
    buffer = DataLoader(tmp_path).load_recording(name)[0]
    assert len(buffer) == 2


def test_missing_zone_values_shorten_the_frame(tmp_path):
    name = _write(tmp_path, [
        {'timestamp_ms': 0, 'z0': 1, 'z1': 2},
        {'timestamp_ms': 33, 'z0': 3, 'z1': None},
    ])
    buffer = DataLoader(tmp_path).load_recording(name)[0]
    assert buffer.frames[1].zones == (3,)


def test_requires_timestamp_column(tmp_path):
    with pytest.raises(ValueError):
        DataLoader(tmp_path).load_recording(_write(tmp_path, [{'z0': 1}]))


def test_save_then_load(tmp_path):
    buffer = SetBuffer(session_id=5)
    buffer.append(DistanceFrame(timestamp_ms=10, zones=(100, 200, 300)))
    buffer.append(DistanceFrame(timestamp_ms=43, zones=(110, 210, 310)))
    loader = DataLoader(tmp_path)
    loader.save_buffer(buffer, "out/set.csv")

    loaded = loader.load_recording("out/set.csv")[0]
    assert loaded.session_id == 5
    assert loaded.frames == buffer.frames
