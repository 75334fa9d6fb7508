from __future__ import annotations

import base64

import numpy as np
import pytest

from nexa.errors import DecodeCorruption
from nexa.services.audio_buffer import AudioBuffer, decode_pcm


def _encode(samples: list[int]) -> str:
    return base64.b64encode(np.array(samples, dtype="<i2").tobytes()).decode("ascii")


def test_decode_scales_little_endian_int16() -> None:
    buffer = decode_pcm(_encode([0, 16384, -32768, 32767]))

    assert buffer.sample_rate == 24000
    assert buffer.channels == 1
    assert buffer.samples.dtype == np.float32
    np.testing.assert_allclose(buffer.samples, [0.0, 0.5, -1.0, 32767 / 32768])


def test_duration_follows_sample_count() -> None:
    buffer = decode_pcm(_encode([0] * 12000))

    assert buffer.duration == pytest.approx(0.5)


def test_invalid_base64_raises() -> None:
    with pytest.raises(DecodeCorruption):
        decode_pcm("not*base64!")


def test_odd_byte_count_raises() -> None:
    with pytest.raises(DecodeCorruption):
        decode_pcm(base64.b64encode(b"\x01\x02\x03").decode("ascii"))


def test_pcm16_reencoding_matches_source() -> None:
    raw = np.array([0, 1000, -1000, 32767, -32768], dtype="<i2").tobytes()

    buffer = decode_pcm(base64.b64encode(raw).decode("ascii"))

    assert buffer.to_pcm16() == raw


def test_silence() -> None:
    buffer = AudioBuffer.silence(2.0)

    assert buffer.duration == pytest.approx(2.0)
    assert buffer.is_silent
    assert AudioBuffer.silence(0).duration == 0
