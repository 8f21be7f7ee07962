from types import SimpleNamespace

import pytest

from tof_rep_pipeline.ble.bridge import (RAW_TOF_CHAR_UUID, REPS_CHAR_UUID, SETS_CHAR_UUID,
                                         NotificationRouter)
from tof_rep_pipeline.core.interfaces import DistanceFrame, MetricKind
from tof_rep_pipeline.data.frame_decoder import encode_frame


class SessionSpy:
    def __init__(self):
        self.calls = []

    def on_frame(self, payload, received_ms=None):
        self.calls.append(('frame', payload))

    def on_metric(self, kind, raw_value):
        self.calls.append(('metric', kind, raw_value))

    def on_counter(self, counter, raw_value, now_ms=None):
        self.calls.append(('counter', counter, raw_value))


@pytest.fixture
def spy():
    return SessionSpy()


def test_routes_raw_frames(spy):
    payload = encode_frame(DistanceFrame(timestamp_ms=5, zones=(1, 2)))
    assert NotificationRouter(spy).route(RAW_TOF_CHAR_UUID, bytearray(payload))
    assert spy.calls == [('frame', payload)]


def test_routes_counters(spy):
    router = NotificationRouter(spy)
    router.route(REPS_CHAR_UUID, b"2")
    router.route(SETS_CHAR_UUID, b"1")
    assert spy.calls == [('counter', 'reps', b"2"), ('counter', 'set', b"1")]


@pytest.mark.parametrize("uuid, kind", [
    ("0000BAAA-0000-1000-8000-00805F9B34FB", MetricKind.VELOCITY),
    ("0000AAAF-0000-1000-8000-00805F9B34FB", MetricKind.ROM),
    ("0000AAAD-0000-1000-8000-00805F9B34FB", MetricKind.CONCENTRIC),
    ("0000AAAE-0000-1000-8000-00805F9B34FB", MetricKind.ECCENTRIC),
])
def test_routes_metrics_case_insensitively(spy, uuid, kind):
    NotificationRouter(spy).route(uuid, b"0.5")
    assert spy.calls == [('metric', kind, b"0.5")]


def test_unknown_characteristic_ignored(spy):
    assert not NotificationRouter(spy).route("0000ffff-0000-1000-8000-00805f9b34fb", b"1")
    assert spy.calls == []


def test_bleak_style_callback(spy):
    sender = SimpleNamespace(uuid=SETS_CHAR_UUID)
    NotificationRouter(spy).notification_handler(sender, bytearray(b"3"))
    assert spy.calls == [('counter', 'set', b"3")]
