"""Per-identity conversation history persisted in the key/value store."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Sequence

from pydantic import TypeAdapter, ValidationError

from ..schemas.identity import UserProfile
from ..schemas.messages import ConversationMessage
from .store import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_PREFIX = "nexa_chat_"
NOTIFICATIONS_KEY = "nexa_admin_notifications"

_HISTORY = TypeAdapter(list[ConversationMessage])


class ConversationMemory:
    """Load, append and trim the message history of each identity."""

    def __init__(self, store: KeyValueStore, *, limit: int = 50) -> None:
        self._store = store
        self._limit = limit
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @staticmethod
    def key_for(identity: UserProfile) -> str:
        return f"{HISTORY_PREFIX}{identity.memory_key}"

    async def load(self, identity: UserProfile) -> list[ConversationMessage]:
        raw = await self._store.get(self.key_for(identity))
        if not raw:
            return []
        try:
            return _HISTORY.validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Discarding unreadable history for %s: %s", identity.memory_key, exc
            )
            return []

    async def save(
        self, identity: UserProfile, messages: Sequence[ConversationMessage]
    ) -> None:
        trimmed = list(messages)[-self._limit :]
        await self._store.set(
            self.key_for(identity), _HISTORY.dump_json(trimmed).decode("utf-8")
        )

    async def append(
        self, identity: UserProfile, message: ConversationMessage
    ) -> list[ConversationMessage]:
        """Append ``message`` and evict the oldest entries beyond the limit."""

        async with self._locks[self.key_for(identity)]:
            history = await self.load(identity)
            history.append(message)
            history = history[-self._limit :]
            await self.save(identity, history)
        return history

    async def history_for_prompt(
        self, identity: UserProfile, turns: int = 30
    ) -> list[ConversationMessage]:
        """Return the recent history starting at the first user message."""

        if turns <= 0:
            return []
        recent = (await self.load(identity))[-turns:]
        for index, message in enumerate(recent):
            if message.role == "user":
                return recent[index:]
        return []

    async def clear(self, identity: UserProfile) -> None:
        await self._store.remove(self.key_for(identity))

    async def clear_all(self) -> int:
        """Drop every stored history together with admin notifications."""

        removed = await self._store.remove_prefix(HISTORY_PREFIX)
        if await self._store.remove(NOTIFICATIONS_KEY):
            removed += 1
        logger.info("Cleared %d stored conversation record(s)", removed)
        return removed


__all__ = ["ConversationMemory", "HISTORY_PREFIX", "NOTIFICATIONS_KEY"]
