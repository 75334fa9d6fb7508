"""
Per-client conversation session.

A ConversationSession ties the directive parser, the interaction state
machine, the speech cache, the synthesis client and the playback controller
together for one signed-in identity.

Each input runs as a single cycle:
    submit -> THINKING -> generate -> parse -> synthesize (or cache hit)
           -> play (SPEAKING + transcript) -> resting state

Only one cycle runs at a time. The processing flag is raised before the
first await and released when the cycle finishes, so overlapping input is
refused rather than queued. Logout and interrupt bump an epoch counter;
any result that arrives for an older epoch is dropped on the floor.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from ..config import Settings
from ..errors import (
    DecodeCorruption,
    EmptyInput,
    GenerationFailure,
    MissingCredential,
    QuotaExceeded,
    UpstreamFailure,
)
from ..schemas.identity import UserProfile
from ..schemas.messages import ConversationMessage
from ..services.audio_buffer import AudioBuffer, decode_pcm
from ..services.credentials import resolve_api_key
from ..services.generation import GeminiTextClient
from ..services.memory_service import ConversationMemory
from ..services.notifications import IncidentNotifier
from ..services.playback import AudioOutput, PlaybackController
from ..services.speech_cache import SpeechCache
from ..services.store import KeyValueStore
from ..services.tts_service import SpeechSynthesisClient
from .directives import IncidentLog, ParsedResponse, parse
from .listener import SessionListener, SoundCue
from .state_machine import (
    ALERT_STATES,
    BUSY_STATES,
    RESTING_STATES,
    Event,
    FollowUpPending,
    GenerationFailed,
    GenerationResolved,
    InteractionState,
    Interrupted,
    LateNightToggled,
    ListeningStarted,
    ListeningStopped,
    PlaybackEnded,
    PlaybackStarted,
    SessionEnded,
    Settled,
    SpeechRequested,
    StudyHubClosed,
    StudyHubOpened,
    UserSubmitted,
    resting_state,
    transition,
)

logger = logging.getLogger(__name__)

WORDS_PER_SECOND = 2.5


class TextGenerator(Protocol):
    async def generate(
        self,
        user_input: str,
        identity: UserProfile,
        *,
        second_pass: bool = False,
        history: Sequence[ConversationMessage] = (),
    ) -> str: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(
        self, text: str, voice_id: Optional[str] = None, *, style: Optional[str] = None
    ) -> str: ...


def greeting_for_hour(hour: int) -> str:
    if 12 <= hour < 18:
        return "Good afternoon"
    if hour >= 18:
        return "Good evening"
    return "Good morning"


class ConversationSession:
    """Owns the interaction state and the speech pipeline for one client."""

    def __init__(
        self,
        identity: UserProfile,
        settings: Settings,
        *,
        generator: TextGenerator,
        synthesizer: SpeechSynthesizer,
        cache: SpeechCache,
        memory: ConversationMemory,
        notifier: IncidentNotifier,
        listener: SessionListener,
        output: AudioOutput,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.identity = identity
        self._settings = settings
        self._generator = generator
        self._synthesizer = synthesizer
        self._cache = cache
        self._memory = memory
        self._notifier = notifier
        self._listener = listener
        self._playback = PlaybackController(output)
        self._clock = clock

        self._late_night_override = False
        self._state = self.resting_state
        self._processing = False
        self._ended = False
        self._epoch = 0
        self._lockout_pending = False
        self._log: list[ConversationMessage] = []
        self._last_reminder_slot: Optional[str] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._log)

    @property
    def late_night_override(self) -> bool:
        return self._late_night_override

    @property
    def resting_state(self) -> InteractionState:
        return resting_state(
            self.identity.is_privileged,
            self._clock().hour,
            self._late_night_override,
            late_night_hour=self._settings.late_night_hour,
        )

    # ------------------------------------------------------------------
    # Conversation cycles
    # ------------------------------------------------------------------
    async def submit(self, text: str) -> bool:
        """Run one input -> response -> speech cycle.

        Returns False without doing anything when the session has ended,
        the text is blank or another cycle is still in flight.
        """

        text = text.strip()
        if self._ended or not text:
            return False
        if self._processing:
            logger.info("Session %s busy; rejecting submission", self.identity.memory_key)
            return False

        self._processing = True
        self._lockout_pending = False
        epoch = self._epoch
        try:
            await self._apply(UserSubmitted())
            history = await self._memory.history_for_prompt(
                self.identity, self._settings.prompt_history_turns
            )
            await self._record(ConversationMessage(role="user", text=text))
            raw = await self._await_completion(
                self._generator.generate(text, self.identity, history=history), epoch
            )
            if raw is None or self._stale(epoch):
                return True
            await self._deliver(parse(raw), epoch, follow_up=text, history=history)
        except Exception:
            logger.exception("Conversation cycle failed for %s", self.identity.memory_key)
            await self._recover(epoch)
        finally:
            if not self._stale(epoch):
                self._processing = False
        return True

    async def speak_system_message(self, text: str) -> bool:
        """Speak a locally authored message (greeting, reminder)."""

        if self._ended or self._processing:
            return False

        self._processing = True
        self._lockout_pending = False
        epoch = self._epoch
        try:
            await self._apply(SpeechRequested())
            await self._deliver(parse(text), epoch, follow_up=None, history=())
        except Exception:
            logger.exception("System message failed for %s", self.identity.memory_key)
            await self._recover(epoch)
        finally:
            if not self._stale(epoch):
                self._processing = False
        return True

    async def greet(self) -> bool:
        hour = self._clock().hour
        name = self.identity.display_name
        intro = (
            "[SFX: Connection established] मैं Nexa हूँ, आपकी Personal AI Assistant. "
            f"{greeting_for_hour(hour)}! बताइए {name}, मैं आपकी किस प्रकार सहायता कर सकती हूँ?"
        )
        if self.identity.is_privileged and await self._notifier.records():
            await self._listener.on_sound(SoundCue.NOTIFICATION)
        return await self.speak_system_message(intro)

    async def _deliver(
        self,
        parsed: ParsedResponse,
        epoch: int,
        *,
        follow_up: Optional[str],
        history: Sequence[ConversationMessage],
    ) -> None:
        for incident in parsed.incidents:
            await self._report_incident(incident)
        for intent in parsed.intents:
            await self._listener.on_intent(intent)
        if parsed.lockout:
            self._lockout_pending = True

        override = parsed.state_override
        alert = override in ALERT_STATES
        # The thinking marker only counts on a first pass
        holding = parsed.thinking and follow_up is not None

        await self._apply(
            GenerationResolved(override, will_speak=bool(parsed.cleaned) or holding)
        )
        if alert:
            await self._listener.on_sound(SoundCue.ALERT)

        pending: Optional[asyncio.Task[str]] = None
        if holding:
            pending = asyncio.create_task(
                self._generator.generate(
                    follow_up or "", self.identity, second_pass=True, history=history
                )
            )

        try:
            if parsed.cleaned:
                message = ConversationMessage(
                    role="assistant",
                    text=parsed.cleaned,
                    is_flagged=alert or bool(parsed.incidents),
                )
                await self._speak(
                    message, epoch, style="sing" if parsed.sing else None, holding=holding
                )
            elif not holding:
                if alert:
                    await asyncio.sleep(self._settings.alert_hold_seconds)
                    if self._stale(epoch):
                        return
                await self._apply(Settled())
                await self._check_lockout()
        except BaseException:
            if pending is not None:
                pending.cancel()
            raise

        if pending is None:
            return
        raw = await self._await_completion(pending, epoch)
        if self._stale(epoch):
            return
        if raw is None:
            # The holding utterance was spoken, so its lockout still applies
            await self._check_lockout()
            return
        await self._deliver(parse(raw), epoch, follow_up=None, history=history)

    async def _await_completion(
        self, completion: Awaitable[str], epoch: int
    ) -> Optional[str]:
        try:
            return await completion
        except (GenerationFailure, MissingCredential) as exc:
            if self._stale(epoch):
                logger.debug("Ignoring failure of a discarded generation: %s", exc)
                return None
            logger.warning("Generation failed for %s: %s", self.identity.memory_key, exc)
            await self._listener.on_sound(SoundCue.ERROR)
            await self._apply(GenerationFailed())
            return None

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------
    async def _speak(
        self,
        message: ConversationMessage,
        epoch: int,
        *,
        style: Optional[str] = None,
        holding: bool = False,
    ) -> None:
        buffer, cue = await self._prepare_audio(message.text, style)
        if self._stale(epoch):
            logger.debug("Discarding synthesized speech from a previous epoch")
            return
        if cue is not None:
            await self._listener.on_sound(cue)

        if buffer is None:
            # Nothing speakable: show the transcript and settle without audio
            await self._record(message)
            await self._utterance_finished(epoch, holding, ended=Settled())
            return

        async def on_start() -> None:
            await self._apply(PlaybackStarted())
            await self._record(message)

        async def on_end() -> None:
            await self._utterance_finished(epoch, holding)

        handle = await self._playback.play(buffer, on_start, on_end)
        await handle.wait()
        if holding or self._stale(epoch):
            return
        if self._state in BUSY_STATES or self._state in ALERT_STATES:
            # on_end failed before the session could settle
            logger.warning("Playback ended without settling; forcing resting state")
            await self._apply(Settled())
            await self._check_lockout()

    async def _utterance_finished(
        self, epoch: int, holding: bool, *, ended: Optional[Event] = None
    ) -> None:
        if self._stale(epoch):
            return
        if holding:
            await self._apply(FollowUpPending())
            return
        await self._apply(ended or PlaybackEnded())
        await self._check_lockout()

    async def _prepare_audio(
        self, text: str, style: Optional[str]
    ) -> tuple[Optional[AudioBuffer], Optional[SoundCue]]:
        """Return the buffer to play and an optional cue to sound first.

        A None buffer means the text has nothing speakable. Synthesis
        failures fall back to silent playback sized to the text so the
        transcript and SPEAKING state still happen.
        """

        voice = self._settings.tts_voice
        cache_text = text if style is None else f"[{style}] {text}"

        entry = await self._cache.lookup(cache_text, voice)
        if entry is not None:
            try:
                return decode_pcm(entry.encoded_audio), None
            except DecodeCorruption as exc:
                logger.warning("Cached speech unusable, re-synthesizing: %s", exc)
                await self._cache.remove(cache_text, voice)

        try:
            encoded = await asyncio.wait_for(
                self._synthesizer.synthesize(text, voice, style=style),
                timeout=self._settings.tts_timeout,
            )
        except EmptyInput:
            logger.debug("Nothing speakable in %r", text[:50])
            return None, None
        except (MissingCredential, QuotaExceeded) as exc:
            logger.warning("Speech unavailable (%s); using visual fallback", exc)
            return self._visual_fallback(text), SoundCue.ERROR
        except UpstreamFailure as exc:
            logger.warning("Speech synthesis failed (%s); using visual fallback", exc)
            return self._visual_fallback(text), None
        except asyncio.TimeoutError:
            logger.warning(
                "Speech synthesis exceeded %.1fs; using visual fallback",
                self._settings.tts_timeout,
            )
            return self._visual_fallback(text), None

        try:
            buffer = decode_pcm(encoded)
        except DecodeCorruption as exc:
            logger.warning("Synthesized audio could not be decoded: %s", exc)
            return self._visual_fallback(text), None

        await self._cache.store(cache_text, voice, encoded)
        return buffer, None

    def _visual_fallback(self, text: str) -> AudioBuffer:
        words = len(text.split(" "))
        seconds = min(
            max(words / WORDS_PER_SECOND, self._settings.visual_fallback_min_seconds),
            self._settings.visual_fallback_max_seconds,
        )
        return AudioBuffer.silence(seconds)

    # ------------------------------------------------------------------
    # User controls
    # ------------------------------------------------------------------
    async def start_listening(self) -> bool:
        """Open the microphone, or interrupt when a cycle is in flight."""

        if self._ended:
            return False
        if self._state in BUSY_STATES:
            await self.interrupt()
            return False
        if await self._apply(ListeningStarted()) is not InteractionState.LISTENING:
            return False
        await self._listener.on_sound(SoundCue.MIC_ON)
        return True

    async def stop_listening(self) -> bool:
        if self._ended or self._state is not InteractionState.LISTENING:
            return False
        await self._apply(ListeningStopped())
        await self._listener.on_sound(SoundCue.MIC_OFF)
        return True

    async def open_study_hub(self) -> None:
        if not self._ended:
            await self._apply(StudyHubOpened())

    async def close_study_hub(self) -> None:
        if not self._ended:
            await self._apply(StudyHubClosed())

    async def set_late_night_override(self, enabled: bool) -> bool:
        if self._ended or not self.identity.is_privileged:
            logger.info("Late-night override ignored for %s", self.identity.memory_key)
            return False
        self._late_night_override = enabled
        await self._apply(LateNightToggled(enabled))
        return True

    async def refresh_resting_state(self) -> None:
        """Re-evaluate the resting state, e.g. when the clock passes 23:00."""

        if not self._ended and self._state in RESTING_STATES:
            await self._apply(Settled())

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Periodic housekeeping: resting state and scheduled reminders."""

        if self._ended:
            return
        await self.refresh_resting_state()
        if not self.identity.is_privileged:
            return

        slot = (now or self._clock()).strftime("%H:%M")
        if slot == self._last_reminder_slot:
            return
        due = [r for r in self._settings.reminders if r.time == slot]
        if not due:
            return
        self._last_reminder_slot = slot
        for reminder in due:
            logger.info("Speaking scheduled reminder for %s", slot)
            await self.speak_system_message(reminder.text)

    async def interrupt(self) -> None:
        """Stop playback and drop whatever the current cycle still produces."""

        if self._ended:
            return
        self._epoch += 1
        self._processing = False
        self._lockout_pending = False
        await self._playback.stop()
        await self._apply(Interrupted())

    async def logout(self, reason: str = "user") -> None:
        if self._ended:
            return
        logger.info("Session %s ending (%s)", self.identity.memory_key, reason)
        self._ended = True
        self._epoch += 1
        self._processing = False
        self._lockout_pending = False
        await self._playback.stop()
        self._log.clear()
        await self._apply(SessionEnded())
        await self._listener.on_logout(reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    async def _apply(self, event: Event) -> InteractionState:
        new_state = transition(self._state, event, self.resting_state)
        if new_state is not self._state:
            logger.debug(
                "Session %s: %s -> %s on %s",
                self.identity.memory_key,
                self._state.value,
                new_state.value,
                type(event).__name__,
            )
            self._state = new_state
            await self._listener.on_state(new_state)
        return new_state

    async def _record(self, message: ConversationMessage) -> None:
        self._log.append(message)
        await self._memory.append(self.identity, message)
        await self._listener.on_transcript(message)

    async def _report_incident(self, incident: IncidentLog) -> None:
        try:
            await self._notifier.notify(self.identity, incident)
        except Exception:
            logger.exception("Failed to record incident %s", incident.kind)

    async def _check_lockout(self) -> None:
        if self._lockout_pending and not self._ended:
            self._lockout_pending = False
            logger.warning("Lockout requested for %s", self.identity.memory_key)
            await self.logout("lockout")

    async def _recover(self, epoch: int) -> None:
        if self._stale(epoch) or self._ended:
            return
        self._lockout_pending = False
        await self._playback.stop()
        await self._listener.on_sound(SoundCue.ERROR)
        await self._apply(GenerationFailed())

    async def publish_state(self) -> None:
        await self._listener.on_state(self._state)


class SessionFactory:
    """Build sessions wired to shared stores and per-identity clients."""

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        *,
        cache: SpeechCache,
        memory: ConversationMemory,
        notifier: IncidentNotifier,
    ) -> None:
        self._settings = settings
        self._store = store
        self._cache = cache
        self._memory = memory
        self._notifier = notifier

    async def create(
        self, identity: UserProfile, channel: SessionListener, output: AudioOutput
    ) -> ConversationSession:
        api_key = await resolve_api_key(identity, self._store, self._settings)
        if api_key is None:
            logger.warning(
                "No API key configured for %s; generation will fail", identity.memory_key
            )
        return ConversationSession(
            identity,
            self._settings,
            generator=GeminiTextClient(self._settings, api_key),
            synthesizer=SpeechSynthesisClient(self._settings, api_key),
            cache=self._cache,
            memory=self._memory,
            notifier=self._notifier,
            listener=channel,
            output=output,
        )


__all__ = [
    "ConversationSession",
    "SessionFactory",
    "SpeechSynthesizer",
    "TextGenerator",
    "greeting_for_hour",
]
