# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from jobmatch.main import create_app

RESUME = "Warehouse associate with forklift and inventory experience, shipping and receiving."
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


def _as(user_id: str, role: str = "jobseeker") -> dict:
    return {"X-User-Id": user_id, "X-User-Role": role}


@pytest.fixture
def client(store, extractor, notifier, settings):
    app = create_app(settings=settings, store=store, extractor=extractor, notifier=notifier)
    with TestClient(app) as c:
        yield c


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_identity_required(client):
    assert client.get("/recommendations").status_code == 401
    res = client.get("/recommendations", headers=_as("u1", "wizard"))
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_personalized_recommendations(client, factory):
    profile = factory.profile()
    job = factory.job()
    res = client.get("/recommendations", params={"type": "personalized", "limit": 5},
                     headers=_as(profile.user_id))
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["type"] == "personalized"
    assert body["metadata"]["algorithm"] == "Hybrid Recommendation Engine"
    assert body["data"]["recommendations"][0]["jobId"] == job.id


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 51}, {"type": "random"}, {"type": "trending",
                                                                                       "timeframe": "1y"}])
def test_bad_recommendation_params(client, params):
    res = client.get("/recommendations", params=params, headers=_as("u1"))
    assert res.status_code == 400
    assert res.json()["error"] == "ValidationError"


def test_trending_and_collaborative(client, factory):
    job = factory.job()
    factory.feedback("u2", job.id, "viewed")
    res = client.get("/recommendations", params={"type": "trending", "timeframe": "24h"}, headers=_as("u1"))
    assert [t["jobId"] for t in res.json()["data"]] == [job.id]

    res = client.get("/recommendations", params={"type": "collaborative"}, headers=_as("u1"))
    assert res.json()["data"]["recommendations"] == []
    res = client.get("/recommendations", params={"type": "collaborative", "userId": "u2"}, headers=_as("u1"))
    assert res.status_code == 403


def test_feedback_roundtrip(client, factory):
    job = factory.job()
    res = client.post("/recommendations", json={"jobId": job.id, "action": "applied", "rating": 5,
                                                 "feedback": "nice"}, headers=_as("u1"))
    assert res.status_code == 200
    assert res.json()["success"] is True
    assert res.json()["weight"] == pytest.approx(1.6667, abs=1e-4)

    assert client.post("/recommendations", json={"jobId": "missing", "action": "viewed"},
                       headers=_as("u1")).status_code == 404
    assert client.post("/recommendations", json={"jobId": job.id, "action": "liked"},
                       headers=_as("u1")).status_code == 400
    assert client.post("/recommendations", json={"jobId": job.id, "action": "saved", "rating": 7},
                       headers=_as("u1")).status_code == 400


def test_resume_upload_then_queue_drain(client):
    res = client.post("/resumes", data={"raw_text": RESUME}, headers=_as("u1"))
    assert res.status_code == 202
    body = res.json()
    assert "forklift" in body["preview"]["skills"]

    assert client.get("/resumes/u1/embedding", headers=_as("u1")).status_code == 404
    res = client.post("/admin/queue/process", json={"batchSize": 10}, headers=ADMIN)
    assert res.json() == {"processed": 1, "successful": 1, "failed": 0}

    emb = client.get("/resumes/u1/embedding", headers=_as("u1")).json()
    assert emb["needsReprocessing"] is False
    assert "forklift" in emb["skills"]
    assert client.get("/resumes/u1/embedding", headers=_as("u2")).status_code == 403


def test_resume_upload_file(client):
    files = {"file": ("resume.txt", RESUME.encode(), "text/plain")}
    res = client.post("/resumes", files=files, headers=_as("u1"))
    assert res.status_code == 202
    assert client.post("/resumes", data={"raw_text": "short"}, headers=_as("u1")).status_code == 400
    assert client.post("/resumes", headers=_as("u1")).status_code == 400


def test_match_routes(client, factory):
    job = factory.job(title="Warehouse Associate - Entry Level",
                      description="no experience needed, spanish a plus", featured=True)
    seeker = factory.profile(skills=["forklift", "bilingual spanish"])

    assert client.get(f"/matches/jobs/{job.id}/candidates", headers=_as(seeker.user_id)).status_code == 403
    res = client.get(f"/matches/jobs/{job.id}/candidates", headers=_as("emp-1", "employer"))
    assert res.json()["matches"][0]["score"] == 5.0

    res = client.get(f"/matches/users/{seeker.user_id}/jobs", headers=_as(seeker.user_id))
    assert [m["jobId"] for m in res.json()["matches"]] == [job.id]

    res = client.get("/matches/score", params={"jobId": job.id, "userId": seeker.user_id},
                     headers=_as(seeker.user_id))
    assert res.json()["match"]["score"] == 5.0
    res = client.get("/matches/score", params={"jobId": "missing", "userId": seeker.user_id},
                     headers=_as(seeker.user_id))
    assert res.json()["match"] is None
    assert client.get("/matches/jobs/missing/candidates", headers=ADMIN).status_code == 404


def test_admin_status_and_tests(client, factory, notifier):
    assert client.get("/admin/matching/status", headers=_as("u1")).status_code == 403
    status = client.get("/admin/matching/status", headers=ADMIN).json()
    assert status["stats"]["jobMatches"] == 0
    assert status["systemHealth"]["matches"] is False

    job = factory.job(title="Warehouse Associate - Entry Level",
                      description="no experience needed, spanish a plus", featured=True)
    factory.profile(skills=["forklift", "bilingual spanish"])

    res = client.post("/admin/matching/test", json={"action": "match_job"}, headers=ADMIN)
    assert res.json()["result"]["matchesFound"] == 1

    res = client.post("/admin/matching/test", json={"action": "full_test"}, headers=ADMIN)
    summary = res.json()["summary"]
    assert summary["featuredJobs"] == 1
    assert summary["recentMatches"] == 1
    # the queued notify task ran inside the bounded drain
    assert summary["processResult"]["successful"] == 1
    assert len(notifier.sent) == 1

    res = client.post("/admin/matching/test", json={"action": "process_resume", "userId": "u5"}, headers=ADMIN)
    assert res.json()["embeddingLength"] > 0
    assert client.post("/admin/matching/test", json={"action": "send_emails"}, headers=ADMIN).status_code == 400
    assert client.post("/admin/matching/test", json={"action": "explode"}, headers=ADMIN).status_code == 400


def test_admin_queue_operations(client):
    res = client.post("/admin/queue/tasks", json={"type": "cleanup_matches"}, headers=ADMIN)
    assert res.status_code == 201
    task_id = res.json()["taskId"]
    assert client.get("/admin/queue/stats", headers=ADMIN).json()["pending"] == 1
    assert client.post("/admin/queue/cancel", headers=ADMIN).json() == {"cancelled": 1}
    assert client.get(f"/admin/queue/tasks/{task_id}", headers=ADMIN).json()["status"] == "cancelled"
    assert client.post(f"/admin/queue/tasks/{task_id}/retry", headers=ADMIN).status_code == 400
    assert client.get("/admin/queue/tasks/999", headers=ADMIN).status_code == 404
    assert client.get("/admin/queue/failed", headers=ADMIN).json() == {"tasks": []}


def test_shutdown_releases_worker_pools(store, extractor, notifier, settings):
    app = create_app(settings=settings, store=store, extractor=extractor, notifier=notifier)
    with TestClient(app) as c:
        assert c.get("/health").status_code == 200
    services = app.state.services
    with pytest.raises(RuntimeError):
        services.resumes._pool.submit(len, "")
    with pytest.raises(RuntimeError):
        services.alerts._pool.submit(len, "")
