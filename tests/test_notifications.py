# tests/test_notifications.py
from datetime import timedelta

import pytest
from sqlalchemy import update

from jobmatch.core.errors import NotFoundError
from jobmatch.db.models import Job, JobMatch, utcnow

IDEAL = dict(
    title="Warehouse Associate - Entry Level",
    description="no experience needed, spanish a plus",
    featured=True,
)


def _seed(factory, n_top=2):
    job = factory.job(**IDEAL)
    top = [factory.profile(skills=["forklift", "bilingual spanish"]) for _ in range(n_top)]
    factory.profile(skills=["forklift"], career_goal="build_career")  # score 3, below the alert bar
    return job, top


def test_featured_task_chain_sends_alerts_once(services, factory, notifier, store):
    job, top = _seed(factory)
    services.queue.enqueue("featured_match", {"jobId": job.id})

    first = services.queue.process_all_pending_jobs(10)
    assert first["successful"] == 1
    # the matching run queued the notify task
    second = services.queue.process_all_pending_jobs(10)
    assert second["successful"] == 1
    assert sorted(u for _, u in notifier.sent) == sorted(p.user_id for p in top)
    assert store.count_matches(email_sent=True) == 2

    # a rerun finds nothing left to send
    services.queue.enqueue("featured_match", {"jobId": job.id})
    services.queue.process_all_pending_jobs(10)
    assert services.queue.process_all_pending_jobs(10)["processed"] == 0
    assert len(notifier.sent) == 2


def test_only_acknowledged_alerts_are_marked_sent(services, factory, notifier, store):
    job, top = _seed(factory)
    services.matching.process_featured_job_matching(job.id)
    notifier.refuse = {top[1].id}

    with pytest.raises(RuntimeError, match="1 of 2"):
        services.alerts.dispatch(job.id)
    assert store.count_matches(email_sent=True) == 1

    notifier.refuse = set()
    assert services.alerts.dispatch(job.id) == {"jobId": job.id, "eligible": 1, "sent": 1}


def test_dispatch_batches(services, factory, notifier, settings):
    settings.NOTIFY_BATCH_SIZE = 2
    job, top = _seed(factory, n_top=5)
    services.matching.process_featured_job_matching(job.id)
    result = services.alerts.dispatch(job.id)
    assert result == {"jobId": job.id, "eligible": 5, "sent": 5}


def test_dispatch_unknown_job(services):
    with pytest.raises(NotFoundError):
        services.alerts.dispatch("missing")


def test_cleanup_task_removes_old_matches_for_closed_jobs(services, factory, store):
    job, _ = _seed(factory)
    services.matching.process_featured_job_matching(job.id)
    open_job = factory.job(**IDEAL)
    services.matching.process_featured_job_matching(open_job.id)

    old = utcnow() - timedelta(days=120)
    with store.session("test.age") as s:
        s.execute(update(JobMatch).values(created_at=old))
        s.execute(update(Job).where(Job.id == job.id).values(status="closed"))

    services.queue.cancel_pending_tasks("notify")
    services.queue.enqueue("cleanup_matches", {})
    services.queue.process_all_pending_jobs(10)
    assert store.list_job_matches(job.id) == []
    assert len(store.list_job_matches(open_job.id)) == 3
