import pytest
from fastapi.testclient import TestClient

from helpers import FakeLeaderboards, entry
from trackwatch.api.routes import drivers, map_search
from trackwatch.core.errors import RateLimitedError
from trackwatch.db.session import get_db
from trackwatch.main import app
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.services.driver_notification_service import create_driver_notification
from trackwatch.services.map_search.job_store import create_job

AUTH = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture()
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    # No context manager: the lifespan (scheduler, job resume) stays off in tests
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_start_map_search_returns_job_id(client, monkeypatch, db_session):
    def fake_start(db, username, period):
        create_job(db, "job-1", username, period)
        return "job-1"

    monkeypatch.setattr(map_search, "start_crawl", fake_start)

    r = client.post("/map-search", params={"username": "Mapper", "period": "1w"})

    assert r.status_code == 202
    assert r.json() == {"job_id": "job-1", "status": "pending"}
    job = client.get("/map-search/jobs/job-1").json()
    assert (job["status"], job["period"], job["username"]) == ("pending", "1w", "Mapper")


def test_start_map_search_rejects_bad_period(client):
    r = client.post("/map-search", params={"username": "Mapper", "period": "5d"})
    assert r.status_code == 400


def test_start_map_search_rate_limited(client, monkeypatch):
    def limited(db, username, period):
        raise RateLimitedError("slow down", retry_after=42)

    monkeypatch.setattr(map_search, "start_crawl", limited)

    r = client.post("/map-search", params={"username": "Mapper"})

    assert r.status_code == 429
    assert r.headers["Retry-After"] == "42"


def test_unknown_job_is_404(client):
    assert client.get("/map-search/jobs/nope").status_code == 404


def test_driver_notification_crud(client, monkeypatch, make_user):
    make_user("driver", account_id="acc-d")
    leaderboards = FakeLeaderboards(tops={"M1": [entry("acc-d", 2, score=41000)], "M2": [entry("x", 1)]})
    monkeypatch.setattr(
        drivers,
        "create_driver_notification",
        lambda db, username, map_uid, map_name: create_driver_notification(
            db, username, map_uid, map_name, leaderboards=leaderboards
        ),
    )

    created = client.post("/users/driver/driver-notifications", json={"map_uid": "M1", "map_name": "Summer"})
    assert created.status_code == 201
    assert created.json()["current_position"] == 2

    refused = client.post("/users/driver/driver-notifications", json={"map_uid": "M2"})
    assert refused.status_code == 400

    listed = client.get("/users/driver/driver-notifications").json()["notifications"]
    assert [n["map_uid"] for n in listed] == ["M1"]

    assert client.delete(f"/users/driver/driver-notifications/{listed[0]['id']}").status_code == 200
    assert client.delete(f"/users/driver/driver-notifications/{listed[0]['id']}").status_code == 404
    assert client.get("/users/ghost/driver-notifications").status_code == 404


def test_cron_requires_secret(client):
    assert client.post("/cron/daily").status_code == 401
    assert client.post("/cron/daily", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_admin_override(client, db_session):
    db_session.add(AlertSubscription(username="Mapper", email="m@example.com", alert_type="inaccurate"))
    db_session.commit()

    r = client.put("/admin/alerts/Mapper/type", json={"alert_type": "accurate"}, headers=AUTH)

    assert r.status_code == 200
    assert r.json() == {"username": "Mapper", "alert_type": "accurate", "alert_type_locked": True}
    bad = client.put("/admin/alerts/Mapper/type", json={"alert_type": "fast"}, headers=AUTH)
    assert bad.status_code == 400
