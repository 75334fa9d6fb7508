"""Decoded PCM audio and the base64 decoder feeding it."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass

import numpy as np

from ..errors import DecodeCorruption

logger = logging.getLogger(__name__)

SAMPLE_RATE = 24000
CHANNELS = 1
_PCM_SCALE = 32768.0


@dataclass(frozen=True)
class AudioBuffer:
    """Mono float32 samples in the range [-1, 1)."""

    samples: np.ndarray
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0]) // self.channels

    @property
    def duration(self) -> float:
        """Length in seconds."""

        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate

    @property
    def is_silent(self) -> bool:
        return not np.any(self.samples)

    def to_pcm16(self) -> bytes:
        """Re-encode as little-endian signed 16-bit PCM."""

        scaled = np.clip(self.samples * _PCM_SCALE, -_PCM_SCALE, _PCM_SCALE - 1)
        return scaled.astype("<i2").tobytes()

    @classmethod
    def silence(cls, seconds: float, sample_rate: int = SAMPLE_RATE) -> "AudioBuffer":
        frames = max(0, int(round(seconds * sample_rate)))
        return cls(np.zeros(frames, dtype=np.float32), sample_rate, CHANNELS)


def decode_pcm(encoded: str) -> AudioBuffer:
    """Decode base64 little-endian 16-bit PCM into an ``AudioBuffer``.

    The payload is always interpreted as 24 kHz mono; no resampling happens
    here. Raises ``DecodeCorruption`` for invalid base64 or a payload whose
    byte count is not a whole number of samples.
    """

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeCorruption(f"Invalid base64 audio payload: {exc}") from exc

    if len(raw) % 2:
        raise DecodeCorruption(
            f"PCM payload has an odd byte count ({len(raw)} bytes)"
        )

    samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / _PCM_SCALE
    return AudioBuffer(samples=samples)


__all__ = ["AudioBuffer", "CHANNELS", "SAMPLE_RATE", "decode_pcm"]
