# jobmatch/api/resume_routes.py
from fastapi import APIRouter, Depends, File, Form, UploadFile

from jobmatch.api.deps import get_actor, get_services
from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.errors import NotFoundError, ValidationError
from jobmatch.nlp.extractors import clean_resume_text, extract_resume_entities, sniff_and_extract_text
from jobmatch.services.container import Services
from jobmatch.services.resume_embedding import MIN_RESUME_CHARS

router = APIRouter(prefix="/resumes", tags=["resumes"])


@router.post("", status_code=202)
async def upload_resume(
    userId: str | None = Form(None),
    file: UploadFile = File(None),
    raw_text: str | None = Form(None),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    user_id = userId or actor.id
    actor.require_self_or_admin(user_id)
    if not file and not raw_text:
        raise ValidationError("Provide a file or raw_text")

    if file:
        data = await file.read()
        text = sniff_and_extract_text(file.filename or "", data)
    else:
        text = raw_text or ""

    text = clean_resume_text(text, services.settings.RESUME_MAX_CHARS)
    if len(text) < MIN_RESUME_CHARS:
        raise ValidationError("Resume text too short or unreadable")

    services.store.save_resume_text(user_id, text)
    task_id = services.queue.enqueue("resume_embedding", {"userId": user_id})
    entities = extract_resume_entities(text)

    return {
        "success": True,
        "userId": user_id,
        "taskId": task_id,
        "preview": {
            "chars": len(text),
            "skills": entities["skills"],
            "jobTitles": entities["job_titles"],
            "education": entities["education"],
        },
    }


@router.get("/{user_id}/embedding")
def get_embedding(
    user_id: str,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_self_or_admin(user_id)
    row = services.resumes.get_resume_embedding(user_id)
    if row is None:
        raise NotFoundError("resume embedding", user_id)
    return {
        "userId": user_id,
        "model": row.model,
        "dim": row.dim,
        "skills": row.skills,
        "jobTitles": row.job_titles,
        "industries": row.industries,
        "education": row.education,
        "updatedAt": row.updated_at.isoformat(),
        "needsReprocessing": services.resumes.needs_reprocessing(user_id),
    }
