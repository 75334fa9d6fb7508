"""WebSocket endpoint connecting a client HUD to its conversation session."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Coroutine, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..config import Settings
from ..interaction.listener import SoundCue
from ..interaction.session import ConversationSession, SessionFactory
from ..schemas.events import (
    HeartbeatMessage,
    InterruptMessage,
    LateNightMessage,
    LoginMessage,
    LogoutMessage,
    MicMessage,
    StudyHubMessage,
    SubmitMessage,
    parse_client_message,
)
from ..services.connection import VoiceConnectionManager
from ..services.credentials import verify_admin_passcode
from ..services.reminders import run_session_timers

router = APIRouter(prefix="/api/voice", tags=["Voice Assistant"])
logger = logging.getLogger(__name__)


def _describe_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
        for error in exc.errors()
    ]


async def handle_connection(
    websocket: WebSocket,
    client_id: str,
    manager: VoiceConnectionManager,
    factory: SessionFactory,
    settings: Settings,
) -> None:
    """
    Main loop for a single client's WebSocket connection.

    Long-running work (conversation cycles, the greeting) runs in tasks so
    the loop keeps reading; that is what lets an interrupt or logout reach
    the session while a cycle is still in flight.
    """
    channel = await manager.connect(websocket, client_id)

    session: Optional[ConversationSession] = None
    timers: Optional[asyncio.Task[None]] = None
    work: set[asyncio.Task[Any]] = set()

    def _task_done(task: asyncio.Task[Any]) -> None:
        work.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Voice task failed for %s", client_id, exc_info=exc)

    def spawn(coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        work.add(task)
        task.add_done_callback(_task_done)

    async def end_session(reason: str) -> None:
        nonlocal session, timers
        if timers is not None:
            timers.cancel()
            with suppress(asyncio.CancelledError):
                await timers
            timers = None
        if session is not None:
            await session.logout(reason)
            session = None

    async def submit(active: ConversationSession, text: str) -> None:
        if not await active.submit(text):
            await channel.send_error("Still working on the previous request")

    try:
        while True:
            raw = await websocket.receive_text()
            channel.update_activity()
            try:
                message = parse_client_message(json.loads(raw))
            except json.JSONDecodeError as exc:
                await channel.send_error(f"Invalid JSON: {exc.msg}")
                continue
            except ValidationError as exc:
                await channel.send_error(_describe_errors(exc))
                continue

            if isinstance(message, HeartbeatMessage):
                continue

            if isinstance(message, LoginMessage):
                identity = message.identity
                if identity.is_privileged and not verify_admin_passcode(
                    settings, message.passcode
                ):
                    logger.warning("Refused administrator sign-in from %s", client_id)
                    await channel.send_error("Administrator sign-in refused")
                    continue
                await end_session("relogin")
                session = await factory.create(identity, channel, channel)
                logger.info("Client %s signed in as %s", client_id, identity.memory_key)
                await channel.on_sound(
                    SoundCue.ADMIN_LOGIN if identity.is_privileged else SoundCue.LOGIN
                )
                await session.publish_state()
                spawn(session.greet())
                timers = asyncio.create_task(
                    run_session_timers(session, settings.timer_interval_seconds)
                )
                continue

            if session is not None and session.ended:
                # A lockout ended the session from inside a cycle
                await end_session("lockout")
            if session is None:
                await channel.send_error("Not signed in")
                continue

            if isinstance(message, SubmitMessage):
                spawn(submit(session, message.text))
            elif isinstance(message, MicMessage):
                if message.active:
                    await session.start_listening()
                else:
                    await session.stop_listening()
            elif isinstance(message, InterruptMessage):
                await session.interrupt()
            elif isinstance(message, StudyHubMessage):
                if message.open:
                    await session.open_study_hub()
                else:
                    await session.close_study_hub()
            elif isinstance(message, LateNightMessage):
                if not await session.set_late_night_override(message.enabled):
                    await channel.send_error("Late-night mode is reserved for the administrator")
            elif isinstance(message, LogoutMessage):
                await end_session("user")

    except WebSocketDisconnect:
        logger.info("Client %s disconnected", client_id)
    except Exception as exc:
        logger.error("Unexpected error for %s: %s", client_id, exc, exc_info=True)
    finally:
        manager.disconnect(client_id, channel)
        await end_session("disconnect")
        for task in list(work):
            task.cancel()
        if work:
            await asyncio.gather(*work, return_exceptions=True)


@router.websocket("/ws/{client_id}")
async def voice_socket(websocket: WebSocket, client_id: str) -> None:
    app_state = websocket.app.state

    factory = getattr(app_state, "session_factory", None)
    if factory is None:
        logger.error("Session factory not initialized")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await handle_connection(
        websocket,
        client_id,
        app_state.connection_manager,
        factory,
        app_state.settings,
    )


__all__ = ["handle_connection", "router"]
