"""
Strict parsing of device counter and metric characteristic values.

Firmware sends these as UTF-8 strings ("92.3", "0.65 m/s", "3\\x00") or, on
older builds, as small little-endian integers.
"""
import math
import re
from dataclasses import dataclass
from typing import Optional, Union

NUMBER_RE = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
INT_PREFIX_RE = re.compile(r'^[+-]?\d+')

MAX_RAW_U32 = 1_000_000


@dataclass(frozen=True)
class ParseResult:
    """Tagged result of a value parse: either a float value or a reason."""
    value: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: float) -> 'ParseResult':
        return cls(value=value)

    @classmethod
    def err(cls, reason: str) -> 'ParseResult':
        return cls(reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.reason is None


def _clean_text(text: str) -> str:
    return text.replace('\x00', '').strip()


def _parse_text(text: str) -> ParseResult:
    cleaned = _clean_text(text)
    if not cleaned:
        return ParseResult.err("empty text")
    match = NUMBER_RE.search(cleaned)
    if not match:
        return ParseResult.err(f"no number in {cleaned!r}")
    value = float(match.group(0))
    if not math.isfinite(value):
        return ParseResult.err("non-finite value")
    return ParseResult.ok(value)


def _parse_raw_integer(data: bytes) -> ParseResult:
    # Only reached when the payload is not readable text
    if len(data) == 1:
        return ParseResult.ok(float(data[0]))
    if len(data) == 2:
        return ParseResult.ok(float(int.from_bytes(data, 'little')))
    if len(data) >= 4:
        u32 = int.from_bytes(data[:4], 'little')
        if u32 <= MAX_RAW_U32:
            return ParseResult.ok(float(u32))
        return ParseResult.err(f"raw integer {u32} out of range")
    return ParseResult.err(f"unsupported raw length {len(data)}")


def parse_device_value(raw: Union[bytes, bytearray, str, int, float, None]) -> ParseResult:
    """Parse a numeric-or-text device value into a float without raising."""
    if raw is None:
        return ParseResult.err("missing value")
    if isinstance(raw, bool):
        return ParseResult.err("boolean is not a device value")
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return ParseResult.err("non-finite value")
        return ParseResult.ok(float(raw))
    if isinstance(raw, str):
        return _parse_text(raw)
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        if not data:
            return ParseResult.err("empty payload")
        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError:
            text = None
        if text is not None:
            parsed = _parse_text(text)
            if parsed.is_ok:
                return parsed
        return _parse_raw_integer(data)
    return ParseResult.err(f"unsupported type {type(raw).__name__}")


def normalize_counter_key(raw: Union[bytes, bytearray, str, int, float, None]) -> Optional[str]:
    """
    Reduce a set-counter value to a comparable key: the leading integer when
    present, otherwise the cleaned text.
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        parsed = parse_device_value(raw)
        if not parsed.is_ok:
            return None
        raw = parsed.value
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        if raw.is_integer():
            return str(int(raw))
        return str(raw)
    text = _clean_text(str(raw))
    if not text:
        return None
    match = INT_PREFIX_RE.match(text)
    return match.group(0) if match else text
