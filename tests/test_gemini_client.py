from __future__ import annotations

import json

import httpx
import pytest

from assessor import gemini_client
from assessor.errors import GenerationUnavailable
from assessor.gemini_client import GeminiClient, to_gemini_schema
from assessor.question_bank import build_schema


@pytest.fixture(autouse=True)
def no_fallback(monkeypatch):
    monkeypatch.setattr(gemini_client.settings, "openrouter_api_key", None)
    monkeypatch.setattr(gemini_client.settings, "gemini_provider", "ai_studio")


def _client(handler) -> GeminiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient("test-key", model="gemini-test", http_client=http)


def test_schema_is_converted_for_gemini():
    converted = to_gemini_schema(build_schema(8, 12))
    assert converted["type"] == "OBJECT"
    assert "additionalProperties" not in converted
    questions = converted["properties"]["questions"]
    assert questions["type"] == "ARRAY"
    assert questions["minItems"] == 8
    item = questions["items"]
    assert "additionalProperties" not in item
    assert item["properties"]["correctIndex"]["type"] == "INTEGER"
    assert item["properties"]["options"]["items"]["type"] == "STRING"


def test_missing_key_is_rejected(monkeypatch):
    monkeypatch.setattr(gemini_client.settings, "gemini_api_key", None)
    with pytest.raises(ValueError):
        GeminiClient()


@pytest.mark.asyncio
async def test_generate_json_sends_schema_and_returns_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": '{"questions": []}'}]}}]},
        )

    client = _client(handler)
    raw = await client.generate_json("system text", "prompt text", build_schema(8, 12))

    assert raw == '{"questions": []}'
    assert seen["url"].params["key"] == "test-key"
    assert "gemini-test:generateContent" in seen["url"].path
    body = seen["body"]
    assert body["systemInstruction"]["parts"][0]["text"] == "system text"
    assert body["contents"][0]["parts"][0]["text"] == "prompt text"
    config = body["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"]["type"] == "OBJECT"
    await client.aclose()


@pytest.mark.asyncio
async def test_server_error_without_fallback_is_unavailable():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(GenerationUnavailable):
        await client.generate_json("s", "p", build_schema(8, 12))


@pytest.mark.asyncio
async def test_unexpected_response_shape_is_unavailable():
    client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(GenerationUnavailable) as info:
        await client.generate_json("s", "p", build_schema(8, 12))
    assert "Unexpected Gemini response" in str(info.value.cause)
