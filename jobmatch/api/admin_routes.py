# jobmatch/api/admin_routes.py
from fastapi import APIRouter, Depends, Query

from jobmatch.api.deps import get_actor, get_services
from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.errors import NotFoundError
from jobmatch.db.models import QueueTask
from jobmatch.schemas.requests import AdminTestIn, EnqueueIn, QueueProcessIn
from jobmatch.services import diagnostics
from jobmatch.services.container import Services

router = APIRouter(prefix="/admin", tags=["admin"])


def _task_out(t: QueueTask) -> dict:
    return {
        "id": t.id,
        "type": t.type,
        "status": t.status,
        "payload": t.payload,
        "attempts": t.attempts,
        "maxAttempts": t.max_attempts,
        "lastError": t.last_error,
        "result": t.result,
        "scheduledFor": t.scheduled_for.isoformat() if t.scheduled_for else None,
        "completedAt": t.completed_at.isoformat() if t.completed_at else None,
    }


# ---------- Matching system ----------
@router.get("/matching/status")
def matching_status(
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return diagnostics.system_status(services, actor)


@router.post("/matching/test")
def matching_test(
    body: AdminTestIn,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    if body.action == "process_resume":
        return diagnostics.check_resume_processing(services, actor, body.userId, body.resumeText)
    if body.action == "match_job":
        return diagnostics.check_job_matching(services, actor, body.jobId)
    if body.action == "send_emails":
        return diagnostics.check_email_sending(services, actor, body.jobId)
    return diagnostics.run_full_test(services, actor)


# ---------- Queue ----------
@router.post("/queue/process")
def queue_process(
    body: QueueProcessIn,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    return services.queue.process_all_pending_jobs(body.batchSize)


@router.post("/queue/tasks", status_code=201)
def queue_enqueue(
    body: EnqueueIn,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    task_id = services.queue.enqueue(body.type, body.payload, delay_seconds=body.delaySeconds)
    return {"taskId": task_id}


@router.get("/queue/stats")
def queue_stats(
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    return services.queue.get_queue_stats()


@router.get("/queue/failed")
def queue_failed(
    limit: int = Query(50, ge=1, le=500),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    return {"tasks": [_task_out(t) for t in services.queue.list_failed_tasks(limit)]}


@router.get("/queue/tasks/{task_id}")
def queue_task(
    task_id: int,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    task = services.queue.get_task(task_id)
    if task is None:
        raise NotFoundError("task", str(task_id))
    return _task_out(task)


@router.post("/queue/tasks/{task_id}/retry")
def queue_retry(
    task_id: int,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    services.queue.retry_failed_task(task_id)
    return {"success": True, "taskId": task_id}


@router.post("/queue/cancel")
def queue_cancel(
    type: str | None = Query(None),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_admin()
    return {"cancelled": services.queue.cancel_pending_tasks(type)}
