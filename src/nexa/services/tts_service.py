"""Speech synthesis against the Gemini text-to-speech model."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

import httpx
from fastapi import status

from ..config import Settings
from ..errors import EmptyInput, MissingCredential, QuotaExceeded, UpstreamFailure

logger = logging.getLogger(__name__)

# Spellings the voice model pronounces correctly
PRONUNCIATIONS: tuple[tuple[str, str], ...] = (
    ("Lohave", "लोहवे"),
    ("Chandan", "चंदन"),
)

NORMALIZATION: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[*#_`~]"), ""),
    *(
        (re.compile(re.escape(word), re.IGNORECASE), spoken)
        for word, spoken in PRONUNCIATIONS
    ),
    (re.compile("[\U00010000-\U0010FFFF]"), ""),
    # Keep ASCII word characters, Devanagari and basic punctuation only
    (re.compile(r"[^\w\s\u0900-\u097F.,!?'\"-]", re.ASCII), ""),
    (re.compile(r"\s{2,}"), " "),
)

STYLE_PROMPTS: dict[str, str] = {
    "sing": "Sing the following softly, with a gentle melody: ",
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


def normalize_for_speech(text: str) -> str:
    """Apply the pronunciation and symbol filters in order."""

    for pattern, replacement in NORMALIZATION:
        text = pattern.sub(replacement, text)
    return text.strip()


def _extract_error_detail(raw: bytes) -> Any:
    if not raw:
        return "Speech upstream returned an empty error response."
    text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict):
        return payload.get("error") or payload
    return payload


class SpeechSynthesisClient:
    """
    Turns cleaned transcript text into base64 PCM audio.

    One client is built per session with that identity's API key. The
    underlying httpx.AsyncClient is shared across instances for connection
    pooling and closed on application shutdown.

    Transport errors and 5xx responses are retried ``tts_retries`` times,
    ``tts_retry_delay`` seconds apart; the first request after a cold start
    frequently fails. Quota (429) and other 4xx responses are not retried.
    """

    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Settings,
        api_key: Optional[str],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._api_key = api_key
        self._override_client = http_client

    @classmethod
    def get_http_client(cls, timeout: float) -> httpx.AsyncClient:
        """Get the shared HTTP client, creating it on first use."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=5.0)
            )
            logger.info("Created shared httpx.AsyncClient for speech synthesis")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed speech synthesis HTTP client")

    @property
    def _client(self) -> httpx.AsyncClient:
        if self._override_client is not None:
            return self._override_client
        return self.get_http_client(self._settings.tts_timeout)

    @property
    def _endpoint(self) -> str:
        base = str(self._settings.gemini_base_url).rstrip("/")
        return f"{base}/models/{self._settings.tts_model}:generateContent"

    def _build_payload(self, text: str, voice_id: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_id}}
                },
            },
            "safetySettings": SAFETY_SETTINGS,
        }

    async def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        *,
        style: Optional[str] = None,
    ) -> str:
        """Return base64-encoded 24 kHz mono PCM for ``text``."""

        if not self._api_key:
            raise MissingCredential("No speech synthesis key configured for this identity")

        prepared = normalize_for_speech(text)
        if not prepared:
            raise EmptyInput("Nothing speakable remains after normalization")

        if style is not None:
            prefix = STYLE_PROMPTS.get(style)
            if prefix is None:
                logger.debug("Unknown speech style %r; speaking plainly", style)
            else:
                prepared = f"{prefix}{prepared}"

        voice = voice_id or self._settings.tts_voice
        payload = self._build_payload(prepared, voice)

        attempts = self._settings.tts_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                body = await self._request(payload)
                break
            except QuotaExceeded:
                raise
            except UpstreamFailure as exc:
                if exc.status_code < 500 or attempt == attempts:
                    raise
                logger.info(
                    "Speech synthesis attempt %d/%d failed (%s); retrying",
                    attempt,
                    attempts,
                    exc,
                )
                await asyncio.sleep(self._settings.tts_retry_delay)

        encoded = self._extract_audio(body)
        logger.info(
            "Synthesized %d chars of speech (%d base64 chars, voice=%s)",
            len(prepared),
            len(encoded),
            voice,
        )
        return encoded

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "x-goog-api-key": self._api_key or "",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(
                self._endpoint,
                headers=headers,
                json=payload,
                timeout=self._settings.tts_timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamFailure(
                status.HTTP_504_GATEWAY_TIMEOUT, f"Speech synthesis timed out: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamFailure(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
            raise QuotaExceeded(
                response.status_code, _extract_error_detail(response.content)
            )
        if response.status_code >= 400:
            raise UpstreamFailure(
                response.status_code, _extract_error_detail(response.content)
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailure(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    @staticmethod
    def _extract_audio(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        candidate = candidates[0] if candidates else {}

        finish_reason = candidate.get("finishReason")
        if finish_reason and finish_reason != "STOP":
            raise UpstreamFailure(
                status.HTTP_502_BAD_GATEWAY,
                f"Speech synthesis refused (finishReason={finish_reason})",
            )

        parts = (candidate.get("content") or {}).get("parts") or []
        inline = (parts[0].get("inlineData") or {}) if parts else {}
        data = inline.get("data")
        if not data:
            raise UpstreamFailure(
                status.HTTP_502_BAD_GATEWAY, "Speech synthesis returned no audio"
            )
        return data


__all__ = [
    "NORMALIZATION",
    "PRONUNCIATIONS",
    "STYLE_PROMPTS",
    "SpeechSynthesisClient",
    "normalize_for_speech",
]
