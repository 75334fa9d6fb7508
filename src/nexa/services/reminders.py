"""Background timer loop driving session housekeeping."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..interaction.session import ConversationSession

logger = logging.getLogger(__name__)


async def run_session_timers(session: "ConversationSession", interval: float) -> None:
    """Call ``session.tick()`` every ``interval`` seconds until the session ends."""

    while not session.ended:
        try:
            await session.tick()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Session timer run failed: %s", exc)
        await asyncio.sleep(interval)
    logger.debug("Session timers stopped for %s", session.identity.memory_key)


__all__ = ["run_session_timers"]
