"""Content-addressed cache of synthesized speech.

Entries live in the key/value store under
``nexa_tts:<version>:<voice>:<fingerprint>`` and hold a JSON document with
the base64 PCM payload. There is no expiry; bumping the cache version
orphans every previous entry.

The fingerprint is ``"<length>:<first 64 chars>"`` of the
whitespace-normalized text. Two long messages that share their opening 64
characters and their length collide and will replay the same audio. That
trade-off is accepted in exchange for cheap, deterministic keys.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import ValidationError

from ..schemas.speech import CacheEntry
from .store import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "nexa_tts:"
FINGERPRINT_PREFIX_CHARS = 64
DEFAULT_MAX_CHARS = 250 * 1024

_WHITESPACE = re.compile(r"\s+")


def fingerprint(text: str) -> str:
    normalized = _WHITESPACE.sub(" ", text).strip()
    return f"{len(normalized)}:{normalized[:FINGERPRINT_PREFIX_CHARS]}"


class SpeechCache:
    """Look up and store synthesized audio keyed by text and voice."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        version: str = "v1",
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._store = store
        self.version = version
        self.max_chars = max_chars

    def key_for(self, text: str, voice_id: str) -> str:
        return f"{CACHE_PREFIX}{self.version}:{voice_id}:{fingerprint(text)}"

    async def lookup(self, text: str, voice_id: str) -> Optional[CacheEntry]:
        """Return the cached entry, or None on a miss.

        Unreadable entries are deleted and reported as a miss. The audio
        payload itself is only checked when the caller decodes it.
        """

        key = self.key_for(text, voice_id)
        raw = await self._store.get(key)
        if raw is None:
            logger.debug("Speech cache miss: %s", key)
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Dropping corrupt speech cache entry %s: %s", key, exc)
            await self._store.remove(key)
            return None

        logger.debug("Speech cache hit: %s", key)
        return entry

    async def store(self, text: str, voice_id: str, encoded_audio: str) -> bool:
        """Cache ``encoded_audio``; return False when the payload is too large."""

        if len(encoded_audio) > self.max_chars:
            logger.debug(
                "Skipping speech cache write: %d chars exceeds limit of %d",
                len(encoded_audio),
                self.max_chars,
            )
            return False

        entry = CacheEntry(
            fingerprint=fingerprint(text),
            voice_id=voice_id,
            cache_version=self.version,
            encoded_audio=encoded_audio,
        )
        await self._store.set(self.key_for(text, voice_id), entry.model_dump_json())
        return True

    async def remove(self, text: str, voice_id: str) -> None:
        await self._store.remove(self.key_for(text, voice_id))

    async def clear(self) -> int:
        """Remove every cached utterance across all versions and voices."""

        removed = await self._store.remove_prefix(CACHE_PREFIX)
        logger.info("Cleared %d speech cache entr%s", removed, "y" if removed == 1 else "ies")
        return removed


__all__ = ["CACHE_PREFIX", "SpeechCache", "fingerprint"]
