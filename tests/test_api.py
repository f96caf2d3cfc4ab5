import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import CHALLENGE_HTML, RecordingTransport, make_pipeline
from feedpipe.config import PipelineConfig
from feedpipe.main import app, get_pipeline


def _blocked(request):
    return httpx.Response(403, text=CHALLENGE_HTML)


@pytest.fixture
def api():
    """TestClient mit eigener Pipeline pro Test (ohne Startup-Event)"""

    def install(transport=None, **config_overrides):
        transport = transport or RecordingTransport()
        config = PipelineConfig(credential="env_cookie=1", cache_ttl=60.0, **config_overrides)
        pipeline = make_pipeline(config, transport)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return TestClient(app), transport

    yield install
    app.dependency_overrides.clear()


def test_health_endpoints():
    client = TestClient(app)

    assert client.get("/health/live").json()["status"] == "alive"
    assert client.get("/health/ready").json()["status"] == "ready"


def test_content_success(api):
    client, transport = api()

    response = client.get("/api/content", params={"url": "https://news.example.com/1"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["tier"] == "direct"
    assert body["strategy"] == "primary"
    assert body["html"] == "<p>Full article body</p>"
    assert transport.requests[0].headers["cookie"] == "env_cookie=1"


def test_query_cookie_beats_header_cookie(api):
    client, transport = api()

    client.get("/api/content", params={"url": "https://news.example.com/1", "cookie": "q=1"},
               headers={"Cookie": "h=1"})

    assert transport.requests[0].headers["cookie"] == "q=1"


def test_header_cookie_beats_env(api):
    client, transport = api()

    client.get("/api/content", params={"url": "https://news.example.com/1"}, headers={"Cookie": "h=1"})

    assert transport.requests[0].headers["cookie"] == "h=1"


def test_internal_url_rejected(api):
    client, transport = api()

    response = client.get("/api/content", params={"url": "http://localhost/admin"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "LOCALHOST_NOT_ALLOWED"
    assert transport.requests == []


def test_content_all_tiers_exhausted(api):
    client, _ = api(RecordingTransport(default=_blocked))

    response = client.get("/api/content", params={"url": "https://news.example.com/1"})

    assert response.status_code == 502
    assert response.json()["detail"]["error"]["code"] == "ALL_TIERS_EXHAUSTED"


def test_batch_partial_failure_keeps_order(api):
    transport = RecordingTransport(routes={"https://news.example.com/bad": _blocked})
    client, _ = api(transport)

    response = client.post("/api/batch", json={"urls": [
        "https://news.example.com/good",
        "https://news.example.com/bad",
        "https://news.example.com/also-good",
    ]})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["failed"] == 1
    assert body["credential_source"] == "env"
    assert [item["url"] for item in body["items"]] == [
        "https://news.example.com/good",
        "https://news.example.com/bad",
        "https://news.example.com/also-good",
    ]
    assert body["items"][1]["error"]["code"] == "ALL_TIERS_EXHAUSTED"


def test_batch_drop_empty_and_limit(api):
    transport = RecordingTransport(routes={"https://news.example.com/bad": _blocked})
    client, _ = api(transport)

    response = client.post("/api/batch", json={
        "urls": ["https://news.example.com/bad", "https://news.example.com/1", "https://news.example.com/2"],
        "drop_empty": True,
        "limit": 2,
    })

    body = response.json()
    assert [item["url"] for item in body["items"]] == ["https://news.example.com/1"]
    assert body["failed"] == 1


def test_batch_all_failed(api):
    client, _ = api(RecordingTransport(default=_blocked))

    response = client.post("/api/batch", json={"urls": ["https://news.example.com/1"]})

    assert response.status_code == 502


def test_empty_batch_rejected(api):
    client, _ = api()

    response = client.post("/api/batch", json={"urls": []})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "EMPTY_BATCH"


@pytest.mark.parametrize("limit", [0, -1])
def test_batch_rejects_non_positive_limit(api, limit):
    client, transport = api()

    response = client.post("/api/batch", json={"urls": ["https://news.example.com/1"], "limit": limit})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_LIMIT"
    assert transport.requests == []


def test_missing_pipeline_uses_error_shape():
    client = TestClient(app)

    response = client.get("/api/content", params={"url": "https://news.example.com/1"})

    assert response.status_code == 503
    assert response.json()["detail"]["error"]["code"] == "PIPELINE_UNAVAILABLE"
