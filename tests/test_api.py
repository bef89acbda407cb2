import types
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app.api import build_meta, create_app
from app.subscriptions import SubscriptionService
from core import database
from core.config import AppConfig
from core.models import Job

T0 = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def _seed():
    database.upsert_jobs(
        [
            Job(id="a", title="Go backend", published_at=T0, normalized_tags={"backend": True, "golang": True}),
            Job(id="b", title="React", published_at=T0 - timedelta(hours=1), normalized_tags={"frontend": True}),
            Job(id="c", title="Python backend", published_at=T0 - timedelta(hours=2), normalized_tags={"backend": True}),
        ]
    )


class StubScheduler:
    def __init__(self, created=0, error=None):
        self.created = created
        self.error = error
        self.calls = 0

    async def run_once(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.created


def _client(**kw):
    return TestClient(create_app(**kw))


def test_health():
    with _client() as client:
        resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_jobs_paging_headers():
    _seed()
    client = _client()

    first = client.get("/api/jobs", params={"limit": 1})
    assert first.status_code == 200
    assert [j["id"] for j in first.json()] == ["a"]
    assert first.headers["X-Page"] == "1"
    assert first.headers["X-Limit"] == "1"
    assert first.headers["X-Has-More"] == "true"
    assert first.headers["X-Total"] == "3"

    last = client.get("/api/jobs", params={"limit": 1, "page": 3})
    assert [j["id"] for j in last.json()] == ["c"]
    assert last.headers["X-Has-More"] == "false"


def test_jobs_serialized_fields():
    _seed()
    body = _client().get("/api/jobs").json()

    assert [j["id"] for j in body] == ["a", "b", "c"]
    assert body[0]["published_at"].startswith("2024-06-10T12:00:00")
    assert body[0]["normalized_tags"] == {"backend": True, "golang": True}


def test_jobs_tag_filter_requires_every_tag():
    _seed()
    client = _client()

    resp = client.get("/api/jobs?tag=backend")
    assert [j["id"] for j in resp.json()] == ["a", "c"]
    assert resp.headers["X-Total"] == "2"

    resp = client.get("/api/jobs?tags=backend,golang")
    assert [j["id"] for j in resp.json()] == ["a"]

    resp = client.get("/api/jobs?tag=backend&tag=frontend")
    assert resp.json() == []
    assert resp.headers["X-Total"] == "0"


def test_jobs_bad_paging_values_fall_back():
    client = _client()

    resp = client.get("/api/jobs", params={"limit": "abc", "page": "-2"})
    assert resp.headers["X-Limit"] == "20"
    assert resp.headers["X-Page"] == "1"

    resp = client.get("/api/jobs", params={"limit": 1000})
    assert resp.headers["X-Limit"] == "100"


def test_jobs_store_failure_is_500():
    def boom(**kw):
        raise RuntimeError("db down")

    store = types.SimpleNamespace(list_jobs_page=boom, count_jobs=boom)
    resp = _client(store=store, init_schema=False).get("/api/jobs")

    assert resp.status_code == 500
    assert resp.json() == {"error": "db down"}


def test_refresh_runs_a_cycle():
    scheduler = StubScheduler(created=4)
    resp = _client(scheduler=scheduler).post("/api/refresh")

    assert resp.status_code == 200
    assert resp.json() == {"created": 4}
    assert scheduler.calls == 1


def test_refresh_errors():
    resp = _client(scheduler=StubScheduler(error=RuntimeError("fetch jobs: timeout"))).post("/api/refresh")
    assert resp.status_code == 500
    assert resp.json() == {"error": "fetch jobs: timeout"}

    resp = _client().post("/api/refresh")
    assert resp.status_code == 503


def test_meta_lists_filter_options():
    config = AppConfig.from_dict(
        {
            "processor": {"tag_candidates": ["backend", "frontend"], "employment_types": ["full_time"]},
            "subscription": {"allowed_channels": ["email"]},
        }
    )
    resp = _client(config=config).get("/api/meta")

    assert resp.status_code == 200
    assert resp.json() == build_meta(config)
    assert resp.json()["tag_candidates"] == ["backend", "frontend"]
    assert resp.json()["channels"] == ["email"]


def test_subscribe():
    client = _client(subscription_service=SubscriptionService(tag_candidates=["backend"]))

    resp = client.post("/api/subscriptions", json={"email": "reader@example.com", "tags": ["Backend"]})

    assert resp.status_code == 201
    assert resp.json() == {"status": "ok"}
    [sub] = database.list_subscriptions()
    assert sub.tags == {"backend": True}


def test_subscribe_rejections():
    client = _client(subscription_service=SubscriptionService(tag_candidates=["backend"]))

    assert client.post("/api/subscriptions", json={"email": "nope"}).status_code == 400
    assert client.post("/api/subscriptions", json={"email": "a@example.com", "tags": ["x"]}).status_code == 400
    assert client.post("/api/subscriptions", json={"email": "a@example.com", "channel": "sms"}).status_code == 400
    assert client.post("/api/subscriptions", content=b"not json").status_code == 400
    assert client.post("/api/subscriptions", json=["list"]).status_code == 400
    assert database.list_subscriptions() == []

    assert _client().post("/api/subscriptions", json={"email": "a@example.com"}).status_code == 503


def test_subscribe_store_failure_is_json_500():
    class BrokenService:
        def create(self, email, channel, tags):
            raise RuntimeError("db locked")

    resp = _client(subscription_service=BrokenService()).post("/api/subscriptions", json={"email": "a@example.com"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "db locked"}
