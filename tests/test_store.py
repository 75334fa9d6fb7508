from __future__ import annotations

import pytest

from nexa.services.store import MemoryKeyValueStore, SqliteKeyValueStore


@pytest.fixture
async def sqlite_store(tmp_path):
    store = SqliteKeyValueStore(tmp_path / "nested" / "nexa.db")
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture(params=["sqlite", "memory"])
async def store(request, sqlite_store):
    if request.param == "sqlite":
        return sqlite_store
    return MemoryKeyValueStore()


@pytest.mark.asyncio
async def test_set_get_overwrite(store) -> None:
    assert await store.get("missing") is None

    await store.set("nexa_chat_admin", "[]")
    await store.set("nexa_chat_admin", '[{"role": "user"}]')

    assert await store.get("nexa_chat_admin") == '[{"role": "user"}]'


@pytest.mark.asyncio
async def test_remove_reports_whether_key_existed(store) -> None:
    await store.set("k", "v")

    assert await store.remove("k") is True
    assert await store.remove("k") is False
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_remove_prefix_treats_underscore_literally(store) -> None:
    await store.set("nexa_tts:v1:Kore:5:hello", "{}")
    await store.set("nexa_tts:v1:Kore:5:world", "{}")
    await store.set("nexaXtts:v1", "{}")
    await store.set("nexa_chat_admin", "[]")

    assert await store.remove_prefix("nexa_tts:") == 2
    assert await store.get("nexaXtts:v1") == "{}"
    assert await store.get("nexa_chat_admin") == "[]"


@pytest.mark.asyncio
async def test_sqlite_persists_across_connections(tmp_path) -> None:
    path = tmp_path / "nexa.db"
    first = SqliteKeyValueStore(path)
    await first.initialize()
    await first.set("nexa_admin_api_key", "secret")
    await first.close()

    second = SqliteKeyValueStore(path)
    await second.initialize()
    try:
        assert await second.get("nexa_admin_api_key") == "secret"
    finally:
        await second.close()
