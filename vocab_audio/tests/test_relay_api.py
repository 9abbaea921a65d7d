from importlib import reload
from itertools import count

import httpx
import pytest
from fastapi.testclient import TestClient

from vocab_audio.tts.tts_service import UpstreamTtsService


class Upstream:
    """Answers upstream variants in order from a list of ``(status, body)``."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.answers:
            return httpx.Response(503)
        status, body = self.answers.pop(0)
        return httpx.Response(status, content=body, headers={"content-type": "audio/mpeg"})


@pytest.fixture
def reload_server(monkeypatch):
    def _reload(upstream: Upstream | None = None):
        import vocab_audio.api.server as server

        reload(server)
        server.upstream = UpstreamTtsService(
            "http://upstream.test/translate_tts",
            transport=httpx.MockTransport(upstream or Upstream()),
        )
        return server

    for name in ("API_KEY", "ALLOWED_ORIGINS", "MAX_REQUESTS_PER_MINUTE", "LANGUAGES", "REQUEST_ID_HEADER"):
        monkeypatch.delenv(f"VOCAB_AUDIO_{name}", raising=False)
    return _reload


def test_health_lists_languages(reload_server):
    server = reload_server()
    client = TestClient(server.app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "languages": ["en", "zh-CN"]}
    assert response.headers[server.settings.request_id_header]


def test_missing_text_is_rejected(reload_server):
    client = TestClient(reload_server().app)

    assert client.get("/tts-proxy").status_code == 400
    blank = client.get("/tts-proxy", params={"text": "   "})
    assert blank.status_code == 400
    assert blank.json()["detail"] == "Text parameter required"


def test_unsupported_language_is_rejected(reload_server):
    client = TestClient(reload_server().app)

    response = client.get("/tts-proxy", params={"text": "hello", "lang": "fr"})

    assert response.status_code == 400


def test_audio_is_relayed_with_cache_and_cors_headers(reload_server):
    upstream = Upstream((200, b"ID3-hello"))
    server = reload_server(upstream)
    client = TestClient(server.app)

    response = client.get("/tts-proxy", params={"text": "hello", "lang": "en"})

    assert response.status_code == 200
    assert response.content == b"ID3-hello"
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.headers["cache-control"] == "public, max-age=86400"
    assert response.headers["access-control-allow-origin"] == "*"
    sent = upstream.requests[0]
    assert sent.url.params["q"] == "hello"
    assert sent.url.params["client"] == "tw-ob"
    assert "Mozilla" in sent.headers["user-agent"]
    assert server.metrics.value("relay.served") == 1


def test_empty_and_failed_variants_are_skipped(reload_server):
    upstream = Upstream((200, b""), (500, b"oops"), (200, b"third-time"))
    client = TestClient(reload_server(upstream).app)

    response = client.get("/tts-proxy", params={"text": "你好", "lang": "zh-CN"})

    assert response.status_code == 200
    assert response.content == b"third-time"
    assert [request.url.params["tl"] for request in upstream.requests] == ["zh-CN"] * 3
    assert upstream.requests[2].url.params["textlen"] == "2"


def test_all_variants_failing_returns_503(reload_server):
    server = reload_server(Upstream())
    client = TestClient(server.app)

    response = client.get("/tts-proxy", params={"text": "hello"})

    assert response.status_code == 503
    assert response.json() == {"error": "All TTS services failed", "attempted": 4, "text": "hello"}
    assert server.metrics.value("relay.upstream_failed") == 1


def test_head_requests_are_relayed(reload_server):
    client = TestClient(reload_server(Upstream((200, b"audio"))).app)

    response = client.head("/tts-proxy", params={"text": "hello"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=86400"


def test_preflight_is_answered_without_auth(monkeypatch, reload_server):
    monkeypatch.setenv("VOCAB_AUDIO_API_KEY", "secret")
    client = TestClient(reload_server().app)

    response = client.options("/tts-proxy", headers={"origin": "http://game.example"})

    assert response.status_code == 200
    assert "GET" in response.headers["access-control-allow-methods"]


def test_api_key_required_when_configured(monkeypatch, reload_server):
    monkeypatch.setenv("VOCAB_AUDIO_API_KEY", "secret")
    client = TestClient(reload_server(Upstream((200, b"audio"))).app)

    unauthorized = client.get("/tts-proxy", params={"text": "hello"})
    assert unauthorized.status_code == 401

    authorized = client.get("/tts-proxy", params={"text": "hello"}, headers={"x-api-key": "secret"})
    assert authorized.status_code == 200


def test_cors_restricted_to_allowed_origins(monkeypatch, reload_server):
    monkeypatch.setenv("VOCAB_AUDIO_ALLOWED_ORIGINS", "http://game.example")
    client = TestClient(reload_server().app)

    allowed = client.get("/health", headers={"origin": "http://game.example"})
    other = client.get("/health", headers={"origin": "http://elsewhere.example"})

    assert allowed.headers["access-control-allow-origin"] == "http://game.example"
    assert "access-control-allow-origin" not in other.headers


def test_rate_limit_enforced(monkeypatch, reload_server):
    monkeypatch.setenv("VOCAB_AUDIO_MAX_REQUESTS_PER_MINUTE", "2")
    server = reload_server()
    ticks = count()
    server.rate_limiter = server.RateLimiter(2, now=lambda: float(next(ticks)))
    client = TestClient(server.app)

    assert client.get("/health").status_code == 200
    assert client.get("/health").status_code == 200
    blocked = client.get("/health")

    assert blocked.status_code == 429
    assert blocked.json()["detail"] == "rate limit exceeded"
    assert server.metrics.value("relay.rate_limited") == 1


def test_metrics_endpoint_reports_counters(reload_server):
    client = TestClient(reload_server(Upstream((200, b"audio"))).app)

    client.get("/tts-proxy", params={"text": "hello"})
    snapshot = client.get("/metrics").json()["counters"]

    assert snapshot["relay.calls"] == 1
    assert snapshot["relay.served"] == 1
