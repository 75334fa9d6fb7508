"""Exclusive audio playback with start/end notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from .audio_buffer import AudioBuffer

logger = logging.getLogger(__name__)

PlaybackCallback = Callable[[], Awaitable[None]]


class AudioOutput(Protocol):
    """Sink that plays a buffer and returns once it has finished."""

    async def render(self, buffer: AudioBuffer) -> None: ...


class PlaybackHandle:
    """A single playback started by ``PlaybackController.play``."""

    def __init__(
        self,
        buffer: AudioBuffer,
        on_start: Optional[PlaybackCallback] = None,
        on_end: Optional[PlaybackCallback] = None,
    ) -> None:
        self.buffer = buffer
        self._on_start = on_start
        self._on_end = on_end
        self._task: asyncio.Task[None] | None = None
        self._finishing = False
        self._done = asyncio.Event()

    @property
    def ended(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> None:
        """Block until ``on_end`` has run."""

        await self._done.wait()

    async def _start(self) -> None:
        if self._on_start is not None:
            await self._on_start()

    async def _finish(self) -> None:
        # on_end must run exactly once whatever path ends the playback
        if self._finishing:
            return
        self._finishing = True
        try:
            if self._on_end is not None:
                await self._on_end()
        except Exception:
            logger.exception("Playback end callback failed")
        finally:
            self._done.set()


class PlaybackController:
    """Owns at most one live playback for a session."""

    def __init__(self, output: AudioOutput) -> None:
        self._output = output
        self._current: PlaybackHandle | None = None

    @property
    def is_playing(self) -> bool:
        return self._current is not None and not self._current.ended

    async def play(
        self,
        buffer: AudioBuffer,
        on_start: Optional[PlaybackCallback] = None,
        on_end: Optional[PlaybackCallback] = None,
    ) -> PlaybackHandle:
        """Stop whatever is playing, then start ``buffer``.

        The superseded handle's ``on_end`` completes before the new
        ``on_start`` runs.
        """

        await self.stop()
        handle = PlaybackHandle(buffer, on_start, on_end)
        self._current = handle
        handle._task = asyncio.create_task(self._run(handle))
        logger.debug("Playback started (%.2fs)", buffer.duration)
        return handle

    async def stop(self) -> None:
        """Force-stop the current playback. Safe to call repeatedly."""

        handle = self._current
        if handle is None:
            return
        self._current = None

        task = handle._task
        if task is not None and task is not asyncio.current_task():
            if not handle._finishing:
                task.cancel()
            await asyncio.wait({task})
        # A task cancelled before its first step never reaches its finally
        await handle._finish()
        logger.debug("Playback stopped")

    async def _run(self, handle: PlaybackHandle) -> None:
        try:
            await handle._start()
            await self._output.render(handle.buffer)
        except asyncio.CancelledError:
            logger.debug("Playback cancelled before completion")
        except Exception:
            logger.exception("Audio output failed during playback")
        finally:
            if self._current is handle:
                self._current = None
            await handle._finish()


__all__ = ["AudioOutput", "PlaybackCallback", "PlaybackController", "PlaybackHandle"]
