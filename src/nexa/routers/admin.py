"""Administrator routes for notifications, stored memory and credentials."""

from __future__ import annotations

import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ..schemas.admin import ClearResult, CredentialPayload
from ..schemas.incidents import IncidentRecord
from ..services.credentials import (
    save_admin_api_key,
    save_client_api_key,
    verify_admin_passcode,
)
from ..services.memory_service import ConversationMemory
from ..services.notifications import IncidentNotifier
from ..services.speech_cache import SpeechCache
from ..services.store import KeyValueStore

_MOBILE = re.compile(r"\+?\d{6,15}")


def require_admin(
    request: Request,
    x_admin_passcode: Optional[str] = Header(default=None),
) -> None:
    if not verify_admin_passcode(request.app.state.settings, x_admin_passcode):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Administrator passcode required",
        )


router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


def get_notifier(request: Request) -> IncidentNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        raise RuntimeError("Incident notifier is not configured")
    return notifier


def get_memory(request: Request) -> ConversationMemory:
    memory = getattr(request.app.state, "memory", None)
    if memory is None:
        raise RuntimeError("Conversation memory is not configured")
    return memory


def get_speech_cache(request: Request) -> SpeechCache:
    cache = getattr(request.app.state, "speech_cache", None)
    if cache is None:
        raise RuntimeError("Speech cache is not configured")
    return cache


def get_store(request: Request) -> KeyValueStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Key/value store is not configured")
    return store


@router.get("/notifications", response_model=List[IncidentRecord])
async def list_notifications(
    notifier: IncidentNotifier = Depends(get_notifier),
) -> List[IncidentRecord]:
    return await notifier.records()


@router.delete("/notifications", status_code=status.HTTP_204_NO_CONTENT)
async def clear_notifications(
    notifier: IncidentNotifier = Depends(get_notifier),
) -> None:
    await notifier.clear()


@router.delete("/memory", response_model=ClearResult)
async def clear_memory(
    memory: ConversationMemory = Depends(get_memory),
) -> ClearResult:
    """Forget every stored conversation along with admin notifications."""
    return ClearResult(removed=await memory.clear_all())


@router.delete("/speech-cache", response_model=ClearResult)
async def clear_speech_cache(
    cache: SpeechCache = Depends(get_speech_cache),
) -> ClearResult:
    return ClearResult(removed=await cache.clear())


@router.put("/credentials/admin", status_code=status.HTTP_204_NO_CONTENT)
async def put_admin_credential(
    payload: CredentialPayload,
    store: KeyValueStore = Depends(get_store),
) -> None:
    """Override the environment key used by the administrator."""
    await save_admin_api_key(store, payload.api_key)


@router.put("/credentials/{mobile}", status_code=status.HTTP_204_NO_CONTENT)
async def put_client_credential(
    mobile: str,
    payload: CredentialPayload,
    store: KeyValueStore = Depends(get_store),
) -> None:
    if not _MOBILE.fullmatch(mobile):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid mobile number"
        )
    await save_client_api_key(store, mobile, payload.api_key)


__all__ = ["router"]
