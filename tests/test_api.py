import inspect

import pytest
from fastapi.testclient import TestClient

from backend.api import routes
from backend.services.document_store import InMemoryDocumentStore
from tests.conftest import FailingGenerator, FailingStore, RecordingGenerator, make_content


ITEMS = [
    {"headline": "X raises guidance", "source": "CNBC", "sentiment": "positive", "date": "2024-05-01",
     "stockSymbol": "XCO"},
    {"headline": "Y misses estimates", "source": "Twitter", "sentiment": "negative", "date": "2024-05-01",
     "stockSymbol": "YCO"},
]


@pytest.fixture
def client():
    store = InMemoryDocumentStore()
    routes.set_services(store=store, generator=RecordingGenerator(make_content(ITEMS)))
    yield TestClient(routes.app)
    routes.set_services()


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["store"] == "InMemoryDocumentStore"


def test_fetch_news_envelope(client):
    resp = client.post("/api/news/fetch", json={"sources": ["CNBC News", "Twitter"]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["count"] == 2
    assert body["data"]["persisted"] is True
    first = body["data"]["items"][0]
    assert first["source"] == "CNBC"
    assert first["change_tone"] == "positive"
    assert "timestamp" in body["data"]


def test_fetch_requires_sources(client):
    for payload in ({}, {"sources": []}, {"sources": "CNBC"}):
        resp = client.post("/api/news/fetch", json=payload)
        assert resp.status_code == 400
        assert resp.json()["success"] is False


def test_fetch_generator_failure_is_500():
    routes.set_services(store=InMemoryDocumentStore(), generator=FailingGenerator())
    try:
        resp = TestClient(routes.app).post("/api/news/fetch", json={"sources": ["CNBC News"]})
    finally:
        routes.set_services()
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Grok API error: 503 - unavailable"}


class BrokenGenerator:
    def fetch_news(self, sources, tickers=None):
        raise RuntimeError("unexpected parser state")


def test_fetch_unexpected_failure_keeps_envelope():
    routes.set_services(store=InMemoryDocumentStore(), generator=BrokenGenerator())
    try:
        resp = TestClient(routes.app).post("/api/news/fetch", json={"sources": ["CNBC News"]})
    finally:
        routes.set_services()
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to fetch news"}


def test_blocking_handlers_run_in_threadpool():
    for handler in (routes.fetch_news, routes.get_news, routes.get_news_detail, routes.health_check):
        assert not inspect.iscoroutinefunction(handler)


def test_fetch_persistence_failure_is_warning():
    routes.set_services(store=FailingStore(), generator=RecordingGenerator(make_content(ITEMS)))
    try:
        resp = TestClient(routes.app).post("/api/news/fetch", json={"sources": ["CNBC News"]})
    finally:
        routes.set_services()
    data = resp.json()["data"]
    assert resp.status_code == 200
    assert data["count"] == 2
    assert data["persisted"] is False
    assert "store offline" in data["warning"]


def test_list_news_global(client):
    client.post("/api/news/fetch", json={"sources": ["CNBC News"]})

    global_news = client.get("/api/news", params={"date": "2024-05-01"}).json()["data"]
    assert len(global_news) == 2
    assert all(n["owner_id"] is None for n in global_news)

    cnbc_only = client.get("/api/news", params={"date": "2024-05-01", "channels": "CNBC News"}).json()["data"]
    assert [n["source"] for n in cnbc_only] == ["CNBC"]

    assert client.get("/api/news", params={"date": "2024-04-30"}).json()["data"] == []


def test_list_news_owner_scoped(client):
    client.post("/api/news/fetch", json={"sources": ["CNBC News"], "ownerId": "u1", "tickerFilter": ["XCO"]})

    assert client.get("/api/news", params={"date": "2024-05-01"}).json()["data"] == []
    owned = client.get("/api/news", params={"date": "2024-05-01"}, headers={"x-user-id": "u1"}).json()["data"]
    assert len(owned) == 2
    assert all(n["owner_id"] == "u1" for n in owned)
    by_query = client.get("/api/news", params={"date": "2024-05-01", "userId": "u1"}).json()["data"]
    assert len(by_query) == 2


def test_news_detail(client):
    items = client.post("/api/news/fetch", json={"sources": ["CNBC News"]}).json()["data"]["items"]
    resp = client.get(f"/api/news/{items[0]['id']}")
    assert resp.status_code == 200
    detail = resp.json()["data"]
    assert detail["code"] == "XCO"
    assert set(detail["changes"]) == {"1D", "1W", "1M", "1Y"}
    assert detail["expert_review"] == "Positive"


def test_news_detail_not_found(client):
    resp = client.get("/api/news/news_missing")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "News item not found"}
