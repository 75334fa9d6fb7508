"""Async key/value persistence backing history, cache and credentials."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import aiosqlite


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> bool: ...

    async def remove_prefix(self, prefix: str) -> int: ...


class SqliteKeyValueStore:
    """Persist string values in a single SQLite table."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def get(self, key: str) -> str | None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT value FROM kv WHERE key = ? LIMIT 1", (key,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return None if row is None else row[0]

    async def set(self, key: str, value: str) -> None:
        assert self._connection is not None
        await self._connection.execute(
            """
            INSERT INTO kv(key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = CURRENT_TIMESTAMP
            """,
            (key, value),
        )
        await self._connection.commit()

    async def remove(self, key: str) -> bool:
        """Delete ``key``; return True if a row was removed."""

        assert self._connection is not None
        cursor = await self._connection.execute("DELETE FROM kv WHERE key = ?", (key,))
        deleted = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(deleted)

    async def remove_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix`` and return the count."""

        assert self._connection is not None
        # substr() avoids LIKE wildcard handling of "_" in key names
        cursor = await self._connection.execute(
            "DELETE FROM kv WHERE substr(key, 1, length(?)) = ?",
            (prefix, prefix),
        )
        deleted = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return int(deleted or 0)


class MemoryKeyValueStore:
    """Process-local store used by tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def remove_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._data if key.startswith(prefix)]
        for key in doomed:
            del self._data[key]
        return len(doomed)


__all__ = ["KeyValueStore", "MemoryKeyValueStore", "SqliteKeyValueStore"]
