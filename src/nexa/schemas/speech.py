"""Models persisted by the speech cache."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """Synthesized audio for one fingerprint, voice and cache format version."""

    fingerprint: str
    voice_id: str
    cache_version: str
    encoded_audio: str

    model_config = ConfigDict(frozen=True)


__all__ = ["CacheEntry"]
