"""Gemini text generation client used for each conversational turn."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx
from fastapi import status

from ..config import Settings
from ..errors import GenerationFailure, MissingCredential
from ..schemas.identity import UserProfile
from ..schemas.messages import ConversationMessage
from .tts_service import SAFETY_SETTINGS

logger = logging.getLogger(__name__)

_THINK_PREFIX = re.compile(r"^think:\s*", re.IGNORECASE)

BASE_INSTRUCTION = (
    "Your name is NEXA. Reply in natural, conversational Hinglish and keep "
    "answers concise unless asked for detail."
)

HOLDING_INSTRUCTION = (
    "If a request needs research or long reasoning, first reply with one short "
    "holding sentence followed by the tag [THINKING]."
)

SECOND_PASS_INSTRUCTION = (
    "This is the detailed follow-up to your holding message. Give the full "
    "answer now and do not emit [THINKING]."
)


def build_system_instruction(
    identity: UserProfile, *, second_pass: bool = False, now: Optional[datetime] = None
) -> str:
    moment = now or datetime.now()
    lines = [
        BASE_INSTRUCTION,
        f"Current user: {identity.display_name} (role: {identity.role.value}).",
        f"Current time: {moment.strftime('%I:%M %p, %A %d %B')}.",
        SECOND_PASS_INSTRUCTION if second_pass else HOLDING_INSTRUCTION,
    ]
    return "\n".join(lines)


class GeminiTextClient:
    """Client for single-shot Gemini ``generateContent`` completions."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[float, httpx.AsyncClient] = {}

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

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._override_client is not None:
            return self._override_client

        key = float(self._settings.generation_timeout)
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.generation_timeout, connect=10.0)
                limits = httpx.Limits(max_connections=20, max_keepalive_connections=10)
                client = httpx.AsyncClient(timeout=timeout, limits=limits)
                self.__class__._client_pool[key] = client
        return client

    @classmethod
    async def close_http_clients(cls) -> None:
        """Close pooled clients. Call on app shutdown."""

        clients = list(cls._client_pool.values())
        cls._client_pool.clear()
        for client in clients:
            await client.aclose()

    @property
    def _base_url(self) -> str:
        return str(self._settings.gemini_base_url).rstrip("/")

    def _build_payload(
        self,
        user_input: str,
        identity: UserProfile,
        *,
        second_pass: bool,
        history: Sequence[ConversationMessage],
        thinking: bool,
    ) -> dict[str, Any]:
        contents: list[dict[str, Any]] = [
            {
                "role": "model" if message.role == "assistant" else "user",
                "parts": [{"text": message.text}],
            }
            for message in history
        ]
        contents.append({"role": "user", "parts": [{"text": user_input}]})

        generation_config: dict[str, Any] = {
            "temperature": self._settings.generation_temperature,
        }
        if thinking:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": self._settings.thinking_budget
            }

        return {
            "systemInstruction": {
                "parts": [
                    {
                        "text": build_system_instruction(
                            identity, second_pass=second_pass
                        )
                    }
                ]
            },
            "contents": contents,
            "tools": [{"googleSearch": {}}],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }

    async def generate(
        self,
        user_input: str,
        identity: UserProfile,
        *,
        second_pass: bool = False,
        history: Sequence[ConversationMessage] = (),
    ) -> str:
        """Return the raw completion text for ``user_input``.

        Inputs starting with ``think:`` are routed to the thinking model with
        a reasoning budget; the prefix itself is not sent.
        """

        if not self._api_key:
            raise MissingCredential("No generation key configured for this identity")

        thinking = bool(_THINK_PREFIX.match(user_input))
        prompt = _THINK_PREFIX.sub("", user_input) if thinking else user_input
        model = self._settings.thinking_model if thinking else self._settings.text_model

        payload = self._build_payload(
            prompt,
            identity,
            second_pass=second_pass,
            history=history,
            thinking=thinking,
        )

        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self._base_url}/models/{model}:generateContent",
                headers={
                    "x-goog-api-key": self._api_key,
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise GenerationFailure(str(exc), status.HTTP_502_BAD_GATEWAY) from exc

        if response.status_code >= 400:
            raise GenerationFailure(
                self._extract_error_detail(response.content), response.status_code
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GenerationFailure(str(exc), status.HTTP_502_BAD_GATEWAY) from exc

        text = self._extract_text(body)
        if not text:
            raise GenerationFailure("Generation returned no text", status.HTTP_502_BAD_GATEWAY)

        logger.info(
            "Generated %d chars with %s (second_pass=%s)", len(text), model, second_pass
        )
        return text

    @staticmethod
    def _extract_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        # Thought summaries are flagged and never part of the reply
        return "".join(
            part.get("text", "")
            for part in parts
            if isinstance(part, dict) and not part.get("thought")
        ).strip()

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = ["GeminiTextClient", "build_system_instruction"]
