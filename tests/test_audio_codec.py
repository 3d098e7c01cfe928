"""
Tests for float <-> 16-bit PCM framing.
"""
import base64
import math

from kitchen_bridge import audio_codec


def test_encode_scales_and_truncates():
    assert audio_codec.encode([0.0, 1.0, -1.0, 0.5]) == b"\x00\x00\xff\x7f\x01\x80\xff\x3f"


def test_encode_clamps_out_of_range_and_nan():
    assert audio_codec.encode([2.0, -3.0, math.nan]) == audio_codec.encode([1.0, -1.0, 0.0])


def test_encode_empty():
    assert audio_codec.encode([]) == b""
    assert audio_codec.decode(b"") == []


def test_decode_is_little_endian_and_bounded():
    samples = audio_codec.decode(b"\xff\x7f\x00\x80")
    assert samples[0] == 1.0
    # -32768 / 32767 clamps to -1.0
    assert samples[1] == -1.0


def test_decode_ignores_trailing_odd_byte():
    assert audio_codec.decode(b"\x00\x00\x01") == [0.0]


def test_encode_decode_stays_within_one_step():
    samples = [0.25, -0.75, 0.1]
    for original, decoded in zip(samples, audio_codec.decode(audio_codec.encode(samples))):
        assert abs(original - decoded) <= 1 / 32767


def test_base64_and_mime_type():
    assert base64.b64decode(audio_codec.encode_base64([1.0])) == b"\xff\x7f"
    assert audio_codec.MIME_TYPE == "audio/pcm;rate=16000"
