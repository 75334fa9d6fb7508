"""Resolve the upstream API key for a signed-in identity."""

from __future__ import annotations

import secrets
from typing import Optional

from ..config import Settings
from ..schemas.identity import UserProfile
from .store import KeyValueStore

ADMIN_KEY = "nexa_admin_api_key"
CLIENT_KEY_PREFIX = "nexa_client_api_key_"


def _usable(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value or value == "undefined":
        return None
    return value


async def resolve_api_key(
    identity: UserProfile, store: KeyValueStore, settings: Settings
) -> Optional[str]:
    """Return the key to use for ``identity`` or None when none is configured.

    The administrator prefers a stored override and falls back to the
    environment; regular users only ever use their own stored key.
    """

    if identity.is_privileged:
        stored = _usable(await store.get(ADMIN_KEY))
        if stored:
            return stored
        if settings.gemini_api_key is not None:
            return _usable(settings.gemini_api_key.get_secret_value())
        return None
    return _usable(await store.get(f"{CLIENT_KEY_PREFIX}{identity.mobile}"))


async def save_client_api_key(store: KeyValueStore, mobile: str, api_key: str) -> None:
    await store.set(f"{CLIENT_KEY_PREFIX}{mobile}", api_key.strip())


async def save_admin_api_key(store: KeyValueStore, api_key: str) -> None:
    await store.set(ADMIN_KEY, api_key.strip())


def verify_admin_passcode(settings: Settings, candidate: Optional[str]) -> bool:
    """Return True when ``candidate`` matches the configured admin passcode."""

    expected = settings.admin_passcode
    if expected is None or not candidate:
        return False
    return secrets.compare_digest(
        candidate.encode("utf-8"), expected.get_secret_value().encode("utf-8")
    )


__all__ = [
    "ADMIN_KEY",
    "CLIENT_KEY_PREFIX",
    "resolve_api_key",
    "save_admin_api_key",
    "save_client_api_key",
    "verify_admin_passcode",
]
