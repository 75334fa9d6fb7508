"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .interaction.session import SessionFactory
from .routers.admin import router as admin_router
from .routers.voice import router as voice_router
from .services.connection import VoiceConnectionManager
from .services.generation import GeminiTextClient
from .services.memory_service import ConversationMemory
from .services.notifications import IncidentNotifier
from .services.speech_cache import SpeechCache
from .services.store import KeyValueStore, SqliteKeyValueStore
from .services.tts_service import SpeechSynthesisClient

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("nexa").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Request bodies carry base64 audio; keep httpx quiet unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()
    if store is None:
        store = SqliteKeyValueStore(_resolve_under(PROJECT_ROOT, settings.store_path))

    memory = ConversationMemory(store, limit=settings.history_limit)
    notifier = IncidentNotifier(store)
    speech_cache = SpeechCache(
        store,
        version=settings.speech_cache_version,
        max_chars=settings.speech_cache_max_chars,
    )
    session_factory = SessionFactory(
        settings, store, cache=speech_cache, memory=memory, notifier=notifier
    )

    if settings.gemini_api_key is None:
        logging.warning(
            "GEMINI_API_KEY is not set; the administrator needs a stored key to talk"
        )
    if settings.admin_passcode is None:
        logging.warning(
            "NEXA_ADMIN_PASSCODE is not set; administrator sign-in and /api/admin are disabled"
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(store, SqliteKeyValueStore):
            await store.initialize()
        try:
            yield
        finally:
            # Add timeout to prevent hanging during shutdown (especially in tests)
            try:
                await asyncio.wait_for(SpeechSynthesisClient.close_http_client(), timeout=10.0)
                await asyncio.wait_for(GeminiTextClient.close_http_clients(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("HTTP client shutdown timed out after 10s")
            if isinstance(store, SqliteKeyValueStore):
                await store.close()

    app = FastAPI(
        title="NEXA Voice Core",
        version="0.1.0",
        description="Response interpretation and speech playback for the NEXA assistant.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.memory = memory
    app.state.notifier = notifier
    app.state.speech_cache = speech_cache
    app.state.session_factory = session_factory
    app.state.connection_manager = VoiceConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(voice_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int | bool]:
        return {
            "status": "ok",
            "text_model": settings.text_model,
            "tts_model": settings.tts_model,
            "speech_cache_version": settings.speech_cache_version,
            "active_clients": len(app.state.connection_manager.active_connections),
            "admin_key_configured": settings.gemini_api_key is not None,
            "admin_login_enabled": settings.admin_passcode is not None,
        }

    return app


__all__ = ["create_app"]
