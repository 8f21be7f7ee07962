"""
Decoding of raw ToF notification payloads into DistanceFrames.

Current format (little-endian, 12 byte header):
  [ 8 bytes device timestamp ms (uint64) ]
  [ 2 bytes frame id (uint16) ]
  [ 1 byte zone count Z (uint8) ]
  [ 1 byte reserved ]
  [ Z x 2 bytes distance mm (uint16) ]

Legacy format (little-endian, 4 byte header):
  [ 2 bytes frame id (uint16) ]
  [ 1 byte zone count hint (uint8) ]
  [ 1 byte reserved ]
  [ Z x 2 bytes distance mm (uint16) ]
"""
import base64
import binascii
import logging
import struct
import time
from typing import Optional

from ..core.interfaces import DistanceFrame

logger = logging.getLogger(__name__)

FORMAT_CURRENT = "current"
FORMAT_LEGACY = "legacy"

CURRENT_HEADER = struct.Struct('<QHBB')
LEGACY_HEADER = struct.Struct('<HBB')


def _resolve_zone_count(declared: int, payload_len: int) -> Optional[int]:
    """Reconcile the declared zone count with the bytes actually present."""
    if payload_len >= declared * 2:
        return declared
    inferred = payload_len // 2
    if inferred <= 0:
        return None
    return inferred


def _unpack_zones(data: bytes, offset: int, count: int):
    return struct.unpack_from(f'<{count}H', data, offset)


def parse_current_frame(data: bytes) -> Optional[DistanceFrame]:
    """Decode a current-format payload, returning None when malformed."""
    if data is None or len(data) < CURRENT_HEADER.size:
        return None
    timestamp_ms, frame_id, declared, _reserved = CURRENT_HEADER.unpack_from(data, 0)
    count = _resolve_zone_count(declared, len(data) - CURRENT_HEADER.size)
    if count is None:
        return None
    zones = _unpack_zones(data, CURRENT_HEADER.size, count)
    return DistanceFrame(timestamp_ms=timestamp_ms, zones=tuple(zones), frame_id=frame_id)


def parse_legacy_frame(data: bytes, timestamp_ms: Optional[int] = None) -> Optional[DistanceFrame]:
    """
    Decode a legacy payload. The legacy format carries no device clock, so the
    caller's receive time is used (host clock when not given).
    """
    if data is None or len(data) < LEGACY_HEADER.size:
        return None
    frame_id, declared, _reserved = LEGACY_HEADER.unpack_from(data, 0)
    count = _resolve_zone_count(declared, len(data) - LEGACY_HEADER.size)
    if count is None:
        return None
    zones = _unpack_zones(data, LEGACY_HEADER.size, count)
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return DistanceFrame(timestamp_ms=int(timestamp_ms), zones=tuple(zones), frame_id=frame_id)


def encode_frame(frame: DistanceFrame) -> bytes:
    """Build a current-format payload for a frame."""
    header = CURRENT_HEADER.pack(frame.timestamp_ms, frame.frame_id or 0, frame.num_zones, 0)
    return header + struct.pack(f'<{frame.num_zones}H', *frame.zones)


class FrameDecoder:
    def __init__(self, wire_format: str = FORMAT_CURRENT):
        """
        Initialize the decoder.

        Args:
            wire_format: FORMAT_CURRENT or FORMAT_LEGACY
        """
        if wire_format not in (FORMAT_CURRENT, FORMAT_LEGACY):
            raise ValueError(f"Unknown wire format: {wire_format}")
        self.wire_format = wire_format

    def decode(self, data: bytes, received_ms: Optional[int] = None) -> Optional[DistanceFrame]:
        """Decode raw bytes; malformed payloads yield None and never raise."""
        try:
            data = bytes(data)
            if self.wire_format == FORMAT_CURRENT:
                return parse_current_frame(data)
            return parse_legacy_frame(data, received_ms)
        except (struct.error, TypeError, ValueError) as e:
            logger.debug(f"Dropping malformed frame: {e}")
            return None

    def decode_b64(self, text: str, received_ms: Optional[int] = None) -> Optional[DistanceFrame]:
        """Decode a base64 payload as delivered by mobile BLE stacks."""
        if not text or not isinstance(text, str):
            return None
        try:
            raw = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            return None
        return self.decode(raw, received_ms)
