# jobmatch/services/diagnostics.py
import logging
from datetime import timedelta

from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.errors import NotFoundError, ValidationError
from jobmatch.db.models import utcnow
from jobmatch.services.container import Services

logger = logging.getLogger(__name__)

SAMPLE_RESUME = """
Maria Lopez
Warehouse Associate

EXPERIENCE
Warehouse Associate at Central Valley Distribution (2021-2024)
- Operated forklift and pallet jack, shipping and receiving
- Inventory counts and picking/packing for retail orders

Cashier at Valley Market (2019-2021)
- Cash handling, point of sale, customer service

EDUCATION
High School Diploma, Modesto High School

SKILLS
Forklift, inventory, customer service, bilingual spanish, first aid
""".strip()


def run_full_test(services: Services, actor: AuthenticatedActor, batch_size: int = 5) -> dict:
    """Queue stats, a bounded drain, and counts of pending work and recent matches."""
    actor.require_admin()
    steps: list[str] = []

    steps.append("Checking queue statistics...")
    queue_stats = services.queue.get_queue_stats()
    steps.append(f"Queue stats: {queue_stats}")

    steps.append("Processing pending queue jobs...")
    process_result = services.queue.process_all_pending_jobs(batch_size)
    steps.append(f"Processed {process_result['processed']} jobs ({process_result['successful']} successful)")

    steps.append("Checking users needing resume processing...")
    needing = services.resumes.get_users_needing_processing(batch_size)
    steps.append(f"Found {len(needing)} users needing processing")

    steps.append("Checking featured jobs...")
    featured = services.store.count_featured_jobs()
    steps.append(f"Found {featured} active featured jobs")

    steps.append("Checking recent matches...")
    recent = services.store.count_matches(since=utcnow() - timedelta(hours=24))
    steps.append(f"Found {recent} matches in last 24 hours")

    logger.info("full matching system test completed by %s", actor.id)
    return {
        "message": "Full system test completed successfully",
        "steps": steps,
        "summary": {
            "queueStats": queue_stats,
            "processResult": process_result,
            "usersNeedingProcessing": len(needing),
            "featuredJobs": featured,
            "recentMatches": recent,
        },
    }


def system_status(services: Services, actor: AuthenticatedActor) -> dict:
    actor.require_admin()
    store = services.store
    stats = {
        "resumeEmbeddings": store.count_resume_embeddings(),
        "jobMatches": store.count_matches(),
        "queueJobs": store.count_queue_tasks(),
        "featuredJobs": store.count_featured_jobs(active_only=False),
        "recentMatches": store.count_matches(since=utcnow() - timedelta(days=7)),
        "emailsSent": store.count_matches(email_sent=True),
    }
    return {
        "message": "Matching system status",
        "stats": stats,
        "queueStats": services.queue.get_queue_stats(),
        "systemHealth": {
            "embeddings": stats["resumeEmbeddings"] > 0,
            "matches": stats["jobMatches"] > 0,
            "recentActivity": stats["recentMatches"] > 0,
            "emailsWorking": stats["emailsSent"] > 0,
        },
    }


def check_resume_processing(services: Services, actor: AuthenticatedActor,
                           user_id: str | None, resume_text: str | None = None) -> dict:
    actor.require_admin()
    if not user_id:
        raise ValidationError("userId is required for resume processing test")
    row = services.resumes.process_resume_embedding(user_id, resume_text or SAMPLE_RESUME)
    return {
        "message": "Resume processing test completed",
        "extractedData": {
            "skills": row.skills,
            "jobTitles": row.job_titles,
            "industries": row.industries,
            "education": row.education,
        },
        "embeddingLength": row.dim,
    }


def check_job_matching(services: Services, actor: AuthenticatedActor, job_id: str | None) -> dict:
    actor.require_admin()
    if not job_id:
        featured = services.store.list_active_jobs(limit=1, featured_only=True)
        if not featured:
            raise NotFoundError("featured job", "any")
        job_id = featured[0].id
    return {
        "message": "Job matching test completed",
        "result": services.matching.process_featured_job_matching(job_id),
    }


def check_email_sending(services: Services, actor: AuthenticatedActor, job_id: str | None) -> dict:
    actor.require_admin()
    if not job_id:
        raise ValidationError("jobId is required for email sending test")
    return {
        "message": "Email sending test completed",
        "result": services.alerts.dispatch(job_id),
    }
