import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.v1.deps import get_http_client
from app.core.config import settings
from app.main import app
from app.middleware.rate_limit import SlidingWindowRateLimiter

GROQ_HOST = "api.groq.com"
DDG_HOST = "api.duckduckgo.com"


class Upstream:
    """Records outbound calls and answers them from per-host handlers."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.groq = lambda request: httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": "model reply"}}]}
        )
        self.ddg = lambda request: httpx.Response(200, json={})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == GROQ_HOST:
            return self.groq(request)
        if request.url.host == DDG_HOST:
            return self.ddg(request)
        return httpx.Response(404)

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]

    def groq_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.host == GROQ_HOST]


@pytest.fixture
def upstream(monkeypatch):
    monkeypatch.setattr(settings, "groq_api_key", "test-groq-key")
    monkeypatch.setattr(settings, "tavily_api_key", "")
    monkeypatch.setattr(settings, "serper_api_key", "")
    fake = Upstream()

    async def client_override():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
            yield client

    app.dependency_overrides[get_http_client] = client_override
    app.state.ai_rate_limiter = SlidingWindowRateLimiter(1000, 60)
    yield fake
    app.dependency_overrides.pop(get_http_client, None)


@pytest.fixture
def client():
    return TestClient(app)


def _chat(client, text, **extra):
    return client.post("/api/ai/chat", json={"messages": [{"role": "user", "content": text}], **extra})


def test_faq_is_answered_without_upstream_calls(client, upstream) -> None:
    res = _chat(client, "Who created you?")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["data"]["model"] == "static"
    assert "Sultan Salauddin Ansari" in body["data"]["content"]
    assert body["data"]["webSearch"] == {"used": False, "provider": None, "sources": []}
    assert upstream.requests == []


@pytest.mark.parametrize("payload", [{}, {"messages": []}, {"messages": "hi"}])
def test_missing_messages_is_rejected(client, upstream, payload) -> None:
    res = client.post("/api/ai/chat", json=payload)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "messages must be a non-empty array"}
    assert upstream.requests == []


def test_null_content_parts_are_ignored(client, upstream) -> None:
    res = client.post(
        "/api/ai/chat",
        json={"messages": [{"role": "user", "content": ["tell me a story", None]}], "webSearchEnabled": False},
    )
    assert res.status_code == 200
    assert res.json()["data"]["model"] == settings.general_model
    assert upstream.groq_bodies()[0]["messages"][0]["content"][0] == "tell me a story"


def test_search_disabled_never_calls_search(client, upstream) -> None:
    res = _chat(client, "latest news today", webSearchEnabled=False)
    assert res.status_code == 200
    assert upstream.hosts() == [GROQ_HOST]
    assert res.json()["data"]["webSearch"]["used"] is False
    assert res.json()["data"]["model"] == settings.general_model


def test_realtime_coding_question_searches_and_cites(client, upstream) -> None:
    upstream.ddg = lambda request: httpx.Response(
        200,
        json={
            "Heading": "Rust (programming language)",
            "AbstractURL": "https://en.wikipedia.org/wiki/Rust_(programming_language)",
            "AbstractText": "Rust is a general-purpose programming language.",
        },
    )

    res = _chat(client, "latest news on rust programming language")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["model"] == settings.coding_model
    assert data["webSearch"]["used"] is True
    assert data["webSearch"]["provider"] == "duckduckgo"
    assert data["webSearch"]["sources"][0]["url"] == "https://en.wikipedia.org/wiki/Rust_(programming_language)"
    assert data["content"].startswith("model reply\n\nSources:\n1. Rust (programming language) - https://")

    (groq_body,) = upstream.groq_bodies()
    assert groq_body["model"] == settings.coding_model
    assert groq_body["messages"][0] == {"role": "user", "content": "latest news on rust programming language"}
    assert groq_body["messages"][-1]["role"] == "system"
    assert "Live web search context" in groq_body["messages"][-1]["content"]


def test_search_with_no_sources_reports_provider_without_context(client, upstream) -> None:
    res = _chat(client, "search for something obscure")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["webSearch"] == {"used": True, "provider": "duckduckgo", "sources": []}
    assert data["content"] == "model reply"
    assert [m["role"] for m in upstream.groq_bodies()[0]["messages"]] == ["user"]


def test_search_failure_degrades_to_plain_completion(client, upstream) -> None:
    upstream.ddg = lambda request: httpx.Response(502, text="bad gateway")

    res = _chat(client, "what is the latest weather in Paris")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["webSearch"] == {"used": False, "provider": None, "sources": []}
    assert data["content"] == "model reply"
    assert upstream.hosts() == [DDG_HOST, GROQ_HOST]


def test_primary_failure_falls_back_once(client, upstream) -> None:
    def groq(request):
        if json.loads(request.content)["model"] == settings.general_model:
            return httpx.Response(500, text="upstream down")
        return httpx.Response(200, json={"choices": [{"message": {"content": "fallback reply"}}]})

    upstream.groq = groq
    res = _chat(client, "tell me a story")
    assert res.status_code == 200
    assert res.json()["data"]["model"] == settings.fallback_model
    assert res.json()["data"]["content"] == "fallback reply"
    assert [b["model"] for b in upstream.groq_bodies()] == [settings.general_model, settings.fallback_model]


def test_both_attempts_failing_returns_502(client, upstream) -> None:
    upstream.groq = lambda request: httpx.Response(503, text="busy")

    res = _chat(client, "tell me a story")
    assert res.status_code == 502
    assert res.json() == {"success": False, "message": "Groq API error 503: busy"}
    assert len(upstream.groq_bodies()) == 2


def test_ineligible_model_fails_immediately(client, upstream, monkeypatch) -> None:
    monkeypatch.setattr(settings, "general_model", "openai/gpt-oss-20b")
    upstream.groq = lambda request: httpx.Response(500, text="nope")

    res = _chat(client, "tell me a story")
    assert res.status_code == 502
    assert len(upstream.groq_bodies()) == 1


def test_malformed_completion_is_502(client, upstream) -> None:
    upstream.groq = lambda request: httpx.Response(200, json={"choices": [{"message": {}}]})

    res = _chat(client, "tell me a story")
    assert res.status_code == 502
    assert res.json()["message"] == "Invalid Groq API response format"
    assert len(upstream.groq_bodies()) == 1


def test_missing_api_key_is_500(client, upstream, monkeypatch) -> None:
    monkeypatch.setattr(settings, "groq_api_key", "")

    res = _chat(client, "Who created you?")
    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "Missing GROQ_API_KEY on server"}
    assert upstream.requests == []


def test_ai_rate_limit_returns_429(client, upstream) -> None:
    app.state.ai_rate_limiter = SlidingWindowRateLimiter(1, 60)

    assert _chat(client, "Who created you?").status_code == 200
    res = _chat(client, "Who created you?")
    assert res.status_code == 429
    assert res.json() == {"success": False, "message": "Too many requests, please try again later"}


def test_unknown_route_is_404_envelope(client) -> None:
    res = client.get("/api/nowhere")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Route not found: /api/nowhere"}


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_only_the_sliding_counter_limits_chat(client, upstream) -> None:
    app.state.ai_rate_limiter = SlidingWindowRateLimiter(200, 60)

    statuses = {_chat(client, "Who created you?").status_code for _ in range(130)}
    assert statuses == {200}
