import asyncio
import json

import httpx
import pytest

import backend.app.services.ai_client as ai_client


def _use_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        ai_client.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_generate_content_returns_text_and_meta(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_reply('{"score": 77}'))

    _use_transport(monkeypatch, handler)
    text, meta = asyncio.run(
        ai_client.gemini_generate_content(
            api_key="k",
            base_url="https://gemini.test/",
            api_version="v1",
            model="models/gemini-test",
            user_text="Rate this",
            system_text="You are a recruiter.",
        )
    )
    assert text == '{"score": 77}'
    assert meta.model == "models/gemini-test"
    assert meta.status_code == 200
    assert meta.retries == 0
    assert seen["url"] == "https://gemini.test/v1/models/gemini-test:generateContent"
    assert seen["key"] == "k"
    assert seen["body"]["contents"][0]["parts"][0]["text"].startswith("You are a recruiter.\n\nRate this")


def test_generate_content_retries_transient_status(monkeypatch):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, text="overloaded")
        return httpx.Response(200, json=_gemini_reply("81"))

    _use_transport(monkeypatch, handler)
    text, meta = asyncio.run(
        ai_client.gemini_generate_content(api_key="k", base_url="https://gemini.test", model="m", user_text="x", max_retries=1)
    )
    assert text == "81"
    assert meta.retries == 1
    assert calls["n"] == 2


def test_generate_content_client_error_is_not_retried(monkeypatch):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, text="bad request")

    _use_transport(monkeypatch, handler)
    with pytest.raises(ai_client.AIClientHTTPError) as exc:
        asyncio.run(
            ai_client.gemini_generate_content(api_key="k", base_url="https://gemini.test", model="m", user_text="x", max_retries=2)
        )
    assert exc.value.status_code == 400
    assert calls["n"] == 1


def test_generate_content_requires_api_key():
    with pytest.raises(ai_client.AIClientError):
        asyncio.run(ai_client.gemini_generate_content(api_key="", base_url="https://gemini.test", model="m", user_text="x"))


def test_embed_content_returns_values(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url).endswith("/v1/models/text-embedding-004:embedContent")
        return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}})

    _use_transport(monkeypatch, handler)
    values = asyncio.run(
        ai_client.gemini_embed_content(api_key="k", base_url="https://gemini.test", model="text-embedding-004", text="react")
    )
    assert values == [0.1, 0.2, 0.3]


def test_embed_content_without_values_fails(monkeypatch):
    _use_transport(monkeypatch, lambda request: httpx.Response(200, json={"embedding": {}}))
    with pytest.raises(ai_client.AIClientError):
        asyncio.run(ai_client.gemini_embed_content(api_key="k", base_url="https://gemini.test", model="e", text="react"))
