import base64
import struct

import pytest

from tof_rep_pipeline.core.interfaces import DistanceFrame
from tof_rep_pipeline.data.frame_decoder import (FORMAT_LEGACY, FrameDecoder, encode_frame,
                                                 parse_current_frame, parse_legacy_frame)


def test_current_frame_fields():
    payload = struct.pack('<QHBB', 123456789, 7, 3, 0) + struct.pack('<3H', 500, 510, 65535)
    frame = parse_current_frame(payload)
    assert frame.timestamp_ms == 123456789
    assert frame.frame_id == 7
    assert frame.zones == (500, 510, 65535)


def test_encode_then_decode_preserves_frame():
    frame = DistanceFrame(timestamp_ms=1_700_000_000_123, zones=tuple(range(100, 164)), frame_id=42)
    assert FrameDecoder().decode(encode_frame(frame)) == frame


@pytest.mark.parametrize("length", [0, 1, 11])
def test_undersized_current_payload_is_no_frame(length):
    assert FrameDecoder().decode(b'\x01' * length) is None


def test_header_only_payload_is_no_frame():
    payload = struct.pack('<QHBB', 10, 1, 4, 0)
    assert parse_current_frame(payload) is None


def test_current_zone_count_inferred_when_short():
    # Declares 8 zones but carries only 2
    payload = struct.pack('<QHBB', 10, 1, 8, 0) + struct.pack('<2H', 300, 301)
    frame = parse_current_frame(payload)
    assert frame.zones == (300, 301)


def test_legacy_frame_uses_receive_time():
    payload = struct.pack('<HBB', 9, 2, 0) + struct.pack('<2H', 800, 801)
    frame = parse_legacy_frame(payload, timestamp_ms=5000)
    assert frame.timestamp_ms == 5000
    assert frame.frame_id == 9
    assert frame.zones == (800, 801)


def test_legacy_zone_count_inferred_from_length():
    payload = struct.pack('<HBB', 1, 16, 0) + struct.pack('<3H', 1, 2, 3)
    frame = FrameDecoder(FORMAT_LEGACY).decode(payload, received_ms=1)
    assert frame.num_zones == 3


def test_legacy_undersized_is_no_frame():
    decoder = FrameDecoder(FORMAT_LEGACY)
    assert decoder.decode(b'\x00\x01\x02', received_ms=1) is None
    assert decoder.decode(b'\x00\x01\x02\x00', received_ms=1) is None


def test_odd_trailing_byte_is_ignored():
    payload = struct.pack('<QHBB', 10, 1, 2, 0) + struct.pack('<2H', 5, 6) + b'\xff'
    assert parse_current_frame(payload).zones == (5, 6)


def test_decode_b64():
    frame = DistanceFrame(timestamp_ms=99, zones=(1, 2, 3, 4), frame_id=3)
    text = base64.b64encode(encode_frame(frame)).decode('ascii')
    assert FrameDecoder().decode_b64(text) == frame


@pytest.mark.parametrize("text", ["", "not base64!!", None])
def test_decode_b64_rejects_garbage(text):
    assert FrameDecoder().decode_b64(text) is None


def test_decoder_never_raises_on_non_bytes():
    assert FrameDecoder().decode(None) is None


def test_unknown_wire_format():
    with pytest.raises(ValueError):
        FrameDecoder("v3")
