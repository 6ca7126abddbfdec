# tests/test_recommendations.py
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.errors import AuthorizationError, NotFoundError, StoreError, ValidationError
from jobmatch.db.models import utcnow
from jobmatch.services.recommendations import confidence_band, preference_signal

RESUME = "Warehouse associate. Forklift operation, inventory, shipping and receiving in a distribution center."


@pytest.mark.parametrize("score,band", [(0.85, "high"), (0.8, "high"), (0.65, "medium"), (0.6, "medium"),
                                        (0.40, "low")])
def test_confidence_bands(score, band):
    assert confidence_band(score) == band


def test_preference_signal_is_centered():
    assert preference_signal(0.0) == 0.5
    assert 0.5 < preference_signal(1.0) < 1.0
    assert 0.0 < preference_signal(-1.0) < 0.5


# ---------- Personalized ----------
def test_personalized_ranks_relevant_job_first(services, factory):
    profile = factory.profile()
    actor = AuthenticatedActor(profile.user_id)
    services.resumes.process_resume_embedding(profile.user_id, RESUME)
    warehouse = factory.job(description="Forklift and inventory work in our distribution center.")
    nurse = factory.job(title="Certified Nursing Assistant", company="Fresno Care", description="Patient care shifts.",
                        location="Fresno, CA", skills=["cna"], job_type="healthcare", industry="healthcare")

    result = services.recommendations.generate_personalized_recommendations(actor, limit=10)
    recs = result["recommendations"]
    assert result["usedResume"] is True
    assert result["totalCandidates"] == 2
    assert [r["jobId"] for r in recs] == [warehouse.id, nurse.id]
    assert recs[0]["score"] >= recs[1]["score"]
    assert recs[0]["components"]["match"] == pytest.approx(0.6)
    assert recs[0]["confidence"] == confidence_band(recs[0]["score"])
    assert all(0.0 <= r["score"] <= 1.0 for r in recs)


def test_personalized_without_resume_renormalizes(services, factory, settings):
    profile = factory.profile()
    factory.job()
    result = services.recommendations.generate_personalized_recommendations(
        AuthenticatedActor(profile.user_id), limit=5
    )
    rec = result["recommendations"][0]
    assert result["usedResume"] is False
    assert rec["components"]["similarity"] == 0.0
    total = settings.W_MATCH + settings.W_PREFERENCE
    expected = settings.W_MATCH / total * 0.6 + settings.W_PREFERENCE / total * 0.5
    assert rec["score"] == pytest.approx(expected, abs=1e-4)


def test_personalized_excludes_applied_unless_asked(services, factory):
    profile = factory.profile()
    actor = AuthenticatedActor(profile.user_id)
    applied = factory.job()
    other = factory.job(title="Shipping Clerk")
    services.recommendations.record_feedback(actor, applied.id, "applied")

    ids = [r["jobId"] for r in services.recommendations.generate_personalized_recommendations(actor)["recommendations"]]
    assert ids == [other.id]
    ids = [r["jobId"] for r in services.recommendations.generate_personalized_recommendations(
        actor, include_applied=True)["recommendations"]]
    assert set(ids) == {applied.id, other.id}


def test_feedback_shifts_personalized_ranking(services, factory):
    actor = AuthenticatedActor("no-profile-user")
    liked = factory.job(title="Barista", company="Bean Co", job_type="food_service", industry="hospitality",
                        skills=["barista"], location="Turlock, CA")
    disliked = factory.job(title="Security Guard", company="Watch Inc", job_type="security", industry="security",
                           skills=["surveillance"], location="Tracy, CA")
    services.recommendations.record_feedback(actor, liked.id, "saved", rating=5)
    services.recommendations.record_feedback(actor, disliked.id, "not_interested")

    recs = services.recommendations.generate_personalized_recommendations(actor)["recommendations"]
    assert [r["jobId"] for r in recs][0] == liked.id
    assert "Matches your past activity" in recs[0]["reasons"]


def test_limit_validation(services):
    actor = AuthenticatedActor("u1")
    with pytest.raises(ValidationError):
        services.recommendations.generate_personalized_recommendations(actor, limit=0)
    with pytest.raises(ValidationError):
        services.recommendations.generate_trending_jobs(limit=500)


# ---------- Trending ----------
def test_trending_ranks_by_velocity_in_region(services, factory):
    hot = factory.job(title="Picker")
    warm = factory.job(title="Packer", location="Stockton, CA")
    far = factory.job(title="Driver", location="Los Angeles, CA")
    stale = factory.job(title="Loader")
    for _ in range(3):
        factory.feedback("v1", hot.id, "viewed")
    factory.feedback("v2", hot.id, "applied")
    factory.feedback("v1", warm.id, "viewed")
    for _ in range(5):
        factory.feedback("v3", far.id, "viewed")
    factory.feedback("v1", stale.id, "viewed", created_at=utcnow() - timedelta(days=3))

    trending = services.recommendations.generate_trending_jobs(region="209", timeframe="24h", limit=10)
    assert [t["jobId"] for t in trending] == [hot.id, warm.id]
    assert trending[0]["views"] == 3 and trending[0]["applications"] == 1
    assert trending[0]["velocity"] == pytest.approx(4 / 24, abs=1e-4)

    week = services.recommendations.generate_trending_jobs(region="209", timeframe="7d")
    assert stale.id in {t["jobId"] for t in week}


def test_trending_rejects_unknown_timeframe(services):
    with pytest.raises(ValidationError):
        services.recommendations.generate_trending_jobs(timeframe="1y")


# ---------- Collaborative ----------
def test_collaborative_surfaces_unseen_jobs_of_similar_users(services, factory):
    j1, j2, j3, j4, j5 = (factory.job(title=f"Job {i}") for i in range(1, 6))
    for job in (j1, j2):
        factory.feedback("alice", job.id, "applied")
    for job in (j1, j3):
        factory.feedback("bob", job.id, "applied")
    factory.feedback("bob", j5.id, "saved")
    factory.feedback("carol", j4.id, "applied")
    factory.feedback("alice", j5.id, "viewed")

    result = services.recommendations.generate_collaborative_insights(AuthenticatedActor("alice"))
    assert result["similarUsers"] == 1
    assert [r["jobId"] for r in result["recommendations"]] == [j3.id]
    assert result["recommendations"][0]["score"] == pytest.approx(0.25)


def test_collaborative_without_history_is_empty(services):
    result = services.recommendations.generate_collaborative_insights(AuthenticatedActor("new-user"))
    assert result == {"userId": "new-user", "similarUsers": 0, "recommendations": []}


def test_collaborative_for_other_user_requires_admin(services, admin):
    with pytest.raises(AuthorizationError):
        services.recommendations.generate_collaborative_insights(AuthenticatedActor("alice"), user_id="bob")
    assert services.recommendations.generate_collaborative_insights(admin, user_id="bob")["userId"] == "bob"


# ---------- Feedback ----------
def test_record_feedback(services, factory, store):
    job = factory.job()
    actor = AuthenticatedActor("u1")
    ack = services.recommendations.record_feedback(actor, job.id, "applied", rating=5, note="great fit")
    assert ack["success"] is True
    assert ack["weight"] == pytest.approx(1.6667, abs=1e-4)

    events = store.feedback_for_user("u1")
    assert [(e.action, e.rating, e.note) for e in events] == [("applied", 5, "great fit")]
    assert services.preferences.get("u1").job_types[0]["weight"] == pytest.approx(5 / 3)


def test_record_feedback_errors(services, factory):
    actor = AuthenticatedActor("u1")
    with pytest.raises(NotFoundError):
        services.recommendations.record_feedback(actor, "missing", "viewed")
    job = factory.job()
    with pytest.raises(ValidationError):
        services.recommendations.record_feedback(actor, job.id, "liked")
    with pytest.raises(ValidationError):
        services.recommendations.record_feedback(actor, job.id, "applied", rating=9)


def test_feedback_event_rolls_back_with_failed_preference_write(services, factory, store, monkeypatch):
    job = factory.job()

    def locked(s, user_id, job, weight):
        raise OperationalError("UPDATE user_preferences", {}, Exception("database is locked"))

    monkeypatch.setattr(services.preferences, "apply_in", locked)
    with pytest.raises(StoreError):
        services.recommendations.record_feedback(AuthenticatedActor("u1"), job.id, "applied")

    assert store.feedback_for_user("u1") == []
    assert services.preferences.get("u1") is None
