"""
16 kHz mono PCM framing for the streaming transport.

Float samples in [-1, 1] <-> 16-bit signed little-endian integers.
"""
import base64
import struct
from typing import List, Sequence

SAMPLE_RATE = 16000
MIME_TYPE = f"audio/pcm;rate={SAMPLE_RATE}"

_SCALE = 32767


def _clamp(value: float) -> float:
    if value != value:
        # NaN
        return 0.0
    if value > 1.0:
        return 1.0
    if value < -1.0:
        return -1.0
    return value


def encode(samples: Sequence[float]) -> bytes:
    """Clamp, scale by 32767 and truncate toward zero."""
    if not samples:
        return b""
    ints = [int(_clamp(s) * _SCALE) for s in samples]
    return struct.pack(f"<{len(ints)}h", *ints)


def decode(data: bytes) -> List[float]:
    """Inverse of encode. A trailing odd byte is ignored."""
    count = len(data) // 2
    if count == 0:
        return []
    ints = struct.unpack(f"<{count}h", data[: count * 2])
    return [_clamp(i / _SCALE) for i in ints]


def encode_base64(samples: Sequence[float]) -> str:
    return base64.b64encode(encode(samples)).decode("ascii")
