from __future__ import annotations

import json
from datetime import datetime

import httpx
import pytest

from nexa.errors import GenerationFailure, MissingCredential
from nexa.schemas.messages import ConversationMessage
from nexa.services.generation import GeminiTextClient, build_system_instruction


def _reply(*parts: dict) -> dict:
    return {"candidates": [{"content": {"parts": list(parts)}, "finishReason": "STOP"}]}


def _client(settings, handler, api_key: str | None = "test-key") -> GeminiTextClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiTextClient(settings, api_key, http_client=http_client)


@pytest.mark.asyncio
async def test_generate_sends_history_with_gemini_roles(settings, user) -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_reply({"text": "Haan bilkul."}))

    client = _client(settings, handler)
    history = [
        ConversationMessage(role="user", text="hi"),
        ConversationMessage(role="assistant", text="hello"),
    ]

    text = await client.generate("kaise ho?", user, history=history)

    assert text == "Haan bilkul."
    assert captured["url"].endswith(f"/models/{settings.text_model}:generateContent")
    assert captured["headers"]["x-goog-api-key"] == "test-key"
    body = captured["body"]
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert body["contents"][-1]["parts"][0]["text"] == "kaise ho?"
    assert body["tools"] == [{"googleSearch": {}}]
    assert "thinkingConfig" not in body["generationConfig"]


@pytest.mark.asyncio
async def test_think_prefix_routes_to_thinking_model(settings, user) -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=_reply({"text": "pondering", "thought": True}, {"text": "Answer."}),
        )

    client = _client(settings, handler)

    text = await client.generate("Think: why is the sky blue?", user)

    assert text == "Answer."
    assert f"/models/{settings.thinking_model}:" in captured["url"]
    assert captured["body"]["contents"][-1]["parts"][0]["text"] == "why is the sky blue?"
    assert captured["body"]["generationConfig"]["thinkingConfig"] == {
        "thinkingBudget": settings.thinking_budget
    }


@pytest.mark.asyncio
async def test_second_pass_changes_system_instruction(settings, user) -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_reply({"text": "Full answer."}))

    await _client(settings, handler).generate("research", user, second_pass=True)

    instruction = captured["body"]["systemInstruction"]["parts"][0]["text"]
    assert "do not emit [THINKING]" in instruction


@pytest.mark.asyncio
async def test_missing_key_fails_before_request(settings, user) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    with pytest.raises(MissingCredential):
        await _client(settings, handler, api_key=None).generate("hello", user)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "expected_status"),
    [
        (httpx.Response(500, json={"error": {"message": "boom"}}), 500),
        (httpx.Response(200, json={"candidates": []}), 502),
        (httpx.Response(200, content=b"not json"), 502),
    ],
)
async def test_upstream_errors_raise_generation_failure(
    settings, user, response, expected_status
) -> None:
    client = _client(settings, lambda request: response)

    with pytest.raises(GenerationFailure) as exc_info:
        await client.generate("hello", user)

    assert exc_info.value.status_code == expected_status


@pytest.mark.asyncio
async def test_transport_error_maps_to_bad_gateway(settings, user) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GenerationFailure) as exc_info:
        await _client(settings, handler).generate("hello", user)

    assert exc_info.value.status_code == 502


def test_system_instruction_names_the_identity(admin) -> None:
    text = build_system_instruction(admin, now=datetime(2026, 10, 18, 21, 5))

    assert "Chandan sir" in text
    assert "ADMIN" in text
    assert "09:05 PM" in text
    assert "[THINKING]" in text
