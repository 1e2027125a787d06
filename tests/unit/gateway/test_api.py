"""
Tests for the gateway HTTP endpoints.
"""

import json

import httpx
import pytest

from conftest import FakeProvider

from grounded_qa.errors import ProviderError
from grounded_qa.gateway.api import RATE_LIMIT_MESSAGE
from grounded_qa.gateway.rate_limit import RateLimitConfig, RateLimiter
from grounded_qa.gateway.schemas import Source
from grounded_qa.providers import EvidenceResult, ProviderKind
from grounded_qa.providers.timeout import TIMEOUT_MESSAGE

CHAT_BODY = {"messages": [{"role": "user", "content": "KVKK kapsamında açık rıza nedir?"}]}


def _sse_events(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.split("\n"))
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestChatEndpoint:

    def test_grounded_answer(self, make_client, grounded_result):
        client = make_client(FakeProvider(result=grounded_result))
        response = client.post("/api/chat", json=CHAT_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["assistantText"] == "Fact one. [1] Fact two. [2][3]"
        assert data["sources"] == [
            {"title": "Mevzuat", "uri": "https://www.mevzuat.gov.tr/kanun/6698", "isTrusted": True},
            {"title": "Blog", "uri": "https://hukukblog.example.com/kvkk", "isTrusted": False},
        ]
        assert "strictModeRejection" not in data
        assert "debug" not in data
        assert response.headers["X-RateLimit-Limit"] == "20"
        assert response.headers["X-RateLimit-Remaining"] == "19"
        assert response.headers["x-correlation-id"]

    def test_correlation_id_echoed(self, make_client):
        client = make_client()
        response = client.post("/api/chat", json=CHAT_BODY, headers={"x-correlation-id": "abc-123"})
        assert response.headers["x-correlation-id"] == "abc-123"

    def test_debug_block_in_debug_mode(self, make_client, grounded_result, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        client = make_client(FakeProvider(result=grounded_result))
        data = client.post("/api/chat", json=CHAT_BODY).json()
        assert data["debug"]["groundingMetadata"]["supports"][0]["evidenceIndices"] == [0]

    def test_strict_mode_rejection(self, make_client):
        result = EvidenceResult(
            answer_text="Claim.",
            sources=[Source(title="Blog", uri="https://blog.example.com/a")],
        )
        client = make_client(FakeProvider(result=result))
        response = client.post("/api/chat", json={**CHAT_BODY, "strictMode": True})

        assert response.status_code == 200
        data = response.json()
        assert data["strictModeRejection"] is True
        assert data["assistantText"].startswith("## Strict Mode")
        assert data["sources"][0]["isTrusted"] is False

    def test_direct_passthrough(self, make_client):
        provider = FakeProvider(result=EvidenceResult(answer_text="Direct.", model="gpt-4o-mini"))
        client = make_client(provider, with_server_key=False)
        response = client.post(
            "/api/chat",
            json={**CHAT_BODY, "provider": "openai", "apiKey": "sk-user", "model": "gpt-4o-mini"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "assistantText": "Direct.",
            "sources": [],
            "provider": "openai",
            "model": "gpt-4o-mini",
        }
        assert provider.selection.kind is ProviderKind.DIRECT
        assert provider.selection.api_key == "sk-user"

    def test_file_search_selected(self, make_client):
        provider = FakeProvider()
        client = make_client(provider)
        client.post("/api/chat", json={**CHAT_BODY, "useFiles": True, "storeId": "fileSearchStores/x"})
        assert provider.selection.kind is ProviderKind.FILE_SEARCH
        assert provider.selection.store_id == "fileSearchStores/x"

    @pytest.mark.parametrize(
        "body",
        [
            {"messages": []},
            {"messages": [{"role": "system", "content": "x"}]},
            {"messages": [{"role": "user", "content": "x" * 8001}]},
            {**CHAT_BODY, "strictMode": "yes"},
            {"conversationId": "c"},
            ["not", "an", "object"],
        ],
    )
    def test_validation_errors(self, make_client, body):
        provider = FakeProvider()
        client = make_client(provider)
        response = client.post("/api/chat", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["error"].startswith("Geçersiz istek: ")
        assert data["details"]
        assert provider.calls == []

    def test_blank_messages_filtered_before_validation(self, make_client):
        client = make_client()
        response = client.post(
            "/api/chat", json={"messages": [{"role": "user", "content": "   "}]}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_invalid_json(self, make_client):
        client = make_client()
        response = client.post(
            "/api/chat", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_rate_limit(self, make_client):
        provider = FakeProvider()
        client = make_client(provider)

        for _ in range(20):
            assert client.post("/api/chat", json=CHAT_BODY).status_code == 200

        response = client.post("/api/chat", json=CHAT_BODY)
        assert response.status_code == 429
        assert response.json() == {"error": RATE_LIMIT_MESSAGE, "code": "RATE_LIMIT_EXCEEDED"}
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert len(provider.calls) == 20

    def test_rate_limit_checked_before_validation(self, make_client):
        limiter = RateLimiter({
            "chat": RateLimitConfig(window_seconds=60, max_requests=1),
            "hourly": RateLimitConfig(window_seconds=3600, max_requests=100),
        })
        client = make_client(limiter=limiter)
        assert client.post("/api/chat", json={"messages": []}).status_code == 400
        assert client.post("/api/chat", json={"messages": []}).status_code == 429

    def test_hourly_bucket(self, make_client):
        limiter = RateLimiter({
            "chat": RateLimitConfig(window_seconds=60, max_requests=100),
            "hourly": RateLimitConfig(window_seconds=3600, max_requests=2),
        })
        client = make_client(limiter=limiter)
        assert client.post("/api/chat", json=CHAT_BODY).status_code == 200
        assert client.post("/api/chat", json=CHAT_BODY).status_code == 200
        assert client.post("/api/chat", json=CHAT_BODY).status_code == 429

    def test_clients_limited_separately(self, make_client):
        limiter = RateLimiter({
            "chat": RateLimitConfig(window_seconds=60, max_requests=1),
            "hourly": RateLimitConfig(window_seconds=3600, max_requests=100),
        })
        client = make_client(limiter=limiter)
        first = client.post("/api/chat", json=CHAT_BODY, headers={"x-forwarded-for": "10.0.0.1"})
        second = client.post("/api/chat", json=CHAT_BODY, headers={"x-forwarded-for": "10.0.0.2"})
        assert first.status_code == 200
        assert second.status_code == 200

    @pytest.mark.parametrize(
        "error,status,code",
        [
            (ProviderError("Geçersiz API anahtarı.", code="INVALID_API_KEY", http_status=401), 401, "INVALID_API_KEY"),
            (ProviderError("Kota aşıldı.", code="INSUFFICIENT_QUOTA", http_status=402), 402, "INSUFFICIENT_QUOTA"),
            (ProviderError("Rate limit.", code="RATE_LIMIT", http_status=429), 429, "RATE_LIMIT"),
            (ProviderError("Gemini hatası."), 502, "PROVIDER_ERROR"),
        ],
    )
    def test_provider_errors(self, make_client, error, status, code):
        client = make_client(FakeProvider(error=error))
        response = client.post("/api/chat", json=CHAT_BODY)
        assert response.status_code == status
        assert response.json() == {"error": error.message, "code": code}

    def test_timeout(self, make_client):
        client = make_client(FakeProvider(delay=2.0), timeout_seconds=0.05)
        response = client.post("/api/chat", json=CHAT_BODY)
        assert response.status_code == 504
        assert response.json() == {"error": TIMEOUT_MESSAGE, "code": "TIMEOUT"}

    def test_missing_server_key(self, make_client):
        client = make_client(with_server_key=False)
        response = client.post("/api/chat", json=CHAT_BODY)
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_API_KEY"

    def test_unexpected_error_is_sanitized(self, make_client):
        client = make_client(FakeProvider(error=RuntimeError("db password=hunter2")))
        response = client.post("/api/chat", json=CHAT_BODY)
        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text
        assert "debug" not in data

    def test_unexpected_error_debug_details(self, make_client, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        client = make_client(FakeProvider(error=RuntimeError("upstream exploded")))
        data = client.post("/api/chat", json=CHAT_BODY).json()
        assert data["debug"]["originalError"] == "upstream exploded"


class TestChatStreamEndpoint:

    def test_stream(self, make_client, grounded_result):
        client = make_client(FakeProvider(result=grounded_result))
        response = client.post("/api/chat/stream", json=CHAT_BODY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = _sse_events(response.text)
        assert [name for name, _ in events] == ["start", "status", "status", "chunk", "complete"]
        assert events[-1][1]["assistantText"] == "Fact one. [1] Fact two. [2][3]"
        assert len(events[-1][1]["sources"]) == 2

    def test_validation_error_as_single_event(self, make_client):
        client = make_client()
        response = client.post("/api/chat/stream", json={"messages": []})

        assert response.status_code == 400
        events = _sse_events(response.text)
        assert len(events) == 1
        assert events[0][0] == "error"
        assert events[0][1]["code"] == "VALIDATION_ERROR"

    def test_missing_key_before_stream(self, make_client):
        client = make_client(with_server_key=False)
        response = client.post("/api/chat/stream", json=CHAT_BODY)

        assert response.status_code == 400
        events = _sse_events(response.text)
        assert len(events) == 1
        assert events[0][0] == "error"
        assert events[0][1]["code"] == "MISSING_API_KEY"

    def test_rate_limited_stream(self, make_client):
        limiter = RateLimiter({
            "chat": RateLimitConfig(window_seconds=60, max_requests=1),
            "hourly": RateLimitConfig(window_seconds=3600, max_requests=100),
        })
        client = make_client(limiter=limiter)
        client.post("/api/chat/stream", json=CHAT_BODY)
        response = client.post("/api/chat/stream", json=CHAT_BODY)

        assert response.status_code == 429
        assert "Retry-After" in response.headers
        assert _sse_events(response.text)[0][1]["code"] == "RATE_LIMIT_EXCEEDED"

    def test_provider_failure_mid_stream(self, make_client):
        client = make_client(FakeProvider(error=ProviderError("Gemini hatası.")))
        response = client.post("/api/chat/stream", json=CHAT_BODY)

        assert response.status_code == 200
        events = _sse_events(response.text)
        assert [name for name, _ in events] == ["start", "status", "error"]
        assert events[-1][1] == {"error": "Gemini hatası.", "code": "PROVIDER_ERROR"}

    def test_timeout_mid_stream(self, make_client):
        client = make_client(FakeProvider(delay=2.0), timeout_seconds=0.05)
        events = _sse_events(client.post("/api/chat/stream", json=CHAT_BODY).text)
        assert events[-1] == ("error", {"error": TIMEOUT_MESSAGE, "code": "TIMEOUT"})


class TestApiKeyEndpoint:

    @pytest.mark.parametrize(
        "body",
        [{}, {"provider": "gemini"}, {"apiKey": "k"}, {"provider": "anthropic", "apiKey": "k"}],
    )
    def test_bad_requests(self, make_client, body):
        response = make_client().post("/api/test-api-key", json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_valid_key(self, make_client):
        def handler(request):
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})

        client = make_client(upstream_transport=httpx.MockTransport(handler))
        response = client.post("/api/test-api-key", json={"provider": "openai", "apiKey": "sk-x"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "provider": "openai", "models": ["gpt-4o"]}

    def test_rejected_key(self, make_client):
        transport = httpx.MockTransport(lambda r: httpx.Response(401, json={}))
        client = make_client(upstream_transport=transport)
        response = client.post("/api/test-api-key", json={"provider": "gemini", "apiKey": "bad"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Geçersiz API key"}


class TestHealthEndpoint:

    def test_basic(self, make_client):
        response = make_client().get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"healthy", "timestamp", "version"}
        assert data["healthy"] is True
        assert data["version"] == "1.0.0"

    def test_detailed(self, make_client):
        data = make_client().get("/api/health?detailed=true").json()
        names = [s["name"] for s in data["services"]]
        assert names == ["credentials", "configuration", "rate_limiter"]
        assert all(s["healthy"] for s in data["services"])

    def test_unhealthy_without_gemini_key(self, make_client):
        data = make_client(with_server_key=False).get("/api/health?detailed=true").json()
        assert data["healthy"] is False
        credentials = next(s for s in data["services"] if s["name"] == "credentials")
        assert credentials["healthy"] is False
        assert credentials["details"] == {"gemini": False, "openai": False}
