"""Administrator notifications for incidents flagged by the model."""

from __future__ import annotations

import asyncio
import logging

from pydantic import TypeAdapter, ValidationError

from ..interaction.directives import IncidentLog
from ..schemas.identity import UserProfile
from ..schemas.incidents import IncidentRecord
from .memory_service import NOTIFICATIONS_KEY
from .store import KeyValueStore

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[IncidentRecord])


class IncidentNotifier:
    """Persist incident records for later review by the administrator."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def notify(self, identity: UserProfile, incident: IncidentLog) -> IncidentRecord:
        record = IncidentRecord(
            user=identity.name,
            mobile=identity.mobile,
            kind=incident.kind,
            detail=incident.detail,
        )
        logger.warning("Incident raised: %s", record.summary())
        async with self._lock:
            records = await self.records()
            records.append(record)
            await self._store.set(
                NOTIFICATIONS_KEY, _RECORDS.dump_json(records).decode("utf-8")
            )
        return record

    async def records(self) -> list[IncidentRecord]:
        raw = await self._store.get(NOTIFICATIONS_KEY)
        if not raw:
            return []
        try:
            return _RECORDS.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable admin notifications: %s", exc)
            return []

    async def clear(self) -> None:
        async with self._lock:
            await self._store.set(NOTIFICATIONS_KEY, "[]")


__all__ = ["IncidentNotifier"]
