# jobmatch/api/match_routes.py
from fastapi import APIRouter, Depends, Query

from jobmatch.api.deps import get_actor, get_services
from jobmatch.core.actor import AuthenticatedActor
from jobmatch.services.container import Services

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("/jobs/{job_id}/candidates")
def job_candidates(
    job_id: str,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_role("employer")
    results = services.matching.find_matching_job_seekers(job_id)
    return {"jobId": job_id, "matches": [r.to_dict() for r in results]}


@router.get("/jobs/{job_id}")
def job_matches(
    job_id: str,
    minScore: float = Query(0.0, ge=0, le=5),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_role("employer")
    return {
        "jobId": job_id,
        "matches": services.matching.get_job_matches(job_id, minScore),
        "stats": services.matching.get_matching_stats(job_id),
    }


@router.get("/users/{user_id}/jobs")
def user_jobs(
    user_id: str,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_self_or_admin(user_id)
    results = services.matching.find_matching_jobs(user_id)
    return {"userId": user_id, "matches": [r.to_dict() for r in results]}


@router.get("/users/{user_id}")
def user_matches(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_self_or_admin(user_id)
    return {"userId": user_id, "matches": services.matching.get_user_matches(user_id, limit)}


@router.get("/score")
def pair_score(
    jobId: str,
    userId: str,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    actor.require_self_or_admin(userId)
    result = services.matching.get_job_match_score(jobId, userId)
    return {"jobId": jobId, "userId": userId, "match": result.to_dict() if result else None}
