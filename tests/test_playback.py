from __future__ import annotations

import asyncio

import pytest

from nexa.services.audio_buffer import AudioBuffer
from nexa.services.playback import PlaybackController


class GatedOutput:
    def __init__(self, fail: bool = False) -> None:
        self.gate = asyncio.Event()
        self.fail = fail
        self.rendered = 0

    async def render(self, buffer: AudioBuffer) -> None:
        self.rendered += 1
        if self.fail:
            raise OSError("device unplugged")
        await self.gate.wait()


def recorder(log: list[str], name: str):
    async def callback() -> None:
        log.append(name)

    return callback


@pytest.mark.asyncio
async def test_natural_end_fires_callbacks_once() -> None:
    output = GatedOutput()
    controller = PlaybackController(output)
    log: list[str] = []

    handle = await controller.play(
        AudioBuffer.silence(0.1), recorder(log, "start"), recorder(log, "end")
    )
    await asyncio.sleep(0)
    assert controller.is_playing

    output.gate.set()
    await handle.wait()
    await controller.stop()

    assert log == ["start", "end"]
    assert handle.ended
    assert not controller.is_playing


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    controller = PlaybackController(GatedOutput())
    log: list[str] = []

    handle = await controller.play(AudioBuffer.silence(0.1), on_end=recorder(log, "end"))
    await asyncio.sleep(0)
    await controller.stop()
    await controller.stop()

    assert log == ["end"]
    assert handle.ended


@pytest.mark.asyncio
async def test_stop_before_first_step_still_ends() -> None:
    controller = PlaybackController(GatedOutput())
    log: list[str] = []

    handle = await controller.play(
        AudioBuffer.silence(0.1), recorder(log, "start"), recorder(log, "end")
    )
    await controller.stop()

    assert log == ["end"]
    assert handle.ended


@pytest.mark.asyncio
async def test_superseded_playback_ends_before_next_starts() -> None:
    output = GatedOutput()
    controller = PlaybackController(output)
    log: list[str] = []

    first = await controller.play(
        AudioBuffer.silence(0.1), recorder(log, "start-1"), recorder(log, "end-1")
    )
    await asyncio.sleep(0)
    second = await controller.play(
        AudioBuffer.silence(0.1), recorder(log, "start-2"), recorder(log, "end-2")
    )
    await asyncio.sleep(0)

    assert first.ended
    assert log == ["start-1", "end-1", "start-2"]

    output.gate.set()
    await second.wait()
    assert log[-1] == "end-2"


@pytest.mark.asyncio
async def test_output_failure_still_ends_playback() -> None:
    controller = PlaybackController(GatedOutput(fail=True))
    log: list[str] = []

    handle = await controller.play(AudioBuffer.silence(0.1), on_end=recorder(log, "end"))
    await handle.wait()

    assert log == ["end"]
    assert not controller.is_playing
