# jobmatch/api/recommend_routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from jobmatch.api.deps import get_actor, get_services
from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.config import settings
from jobmatch.core.errors import ValidationError
from jobmatch.db.models import utcnow
from jobmatch.schemas.requests import FeedbackIn
from jobmatch.services.container import Services
from jobmatch.services.recommendations import ALGORITHM

router = APIRouter(prefix="/recommendations", tags=["recommendations"])

TYPES = ("personalized", "trending", "collaborative")


@router.get("")
def get_recommendations(
    type: str = Query("personalized"),
    limit: int = Query(10, ge=1, le=settings.MAX_RECOMMENDATION_LIMIT),
    region: str = Query("209"),
    timeframe: str = Query("7d"),
    includeApplied: bool = Query(False),
    userId: Optional[str] = Query(None, description="Collaborative insights for another user (admin only)"),
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    engine = services.recommendations
    if type == "personalized":
        data = engine.generate_personalized_recommendations(actor, limit=limit, include_applied=includeApplied)
    elif type == "trending":
        data = engine.generate_trending_jobs(region=region, timeframe=timeframe, limit=limit)
    elif type == "collaborative":
        data = engine.generate_collaborative_insights(actor, user_id=userId, limit=limit)
    else:
        raise ValidationError(f"type must be one of {', '.join(TYPES)}")

    return {
        "success": True,
        "type": type,
        "data": data,
        "generatedAt": utcnow().isoformat(),
        "metadata": {**ALGORITHM, "limit": limit, "region": region, "timeframe": timeframe},
    }


@router.post("")
def post_feedback(
    payload: FeedbackIn,
    actor: AuthenticatedActor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return services.recommendations.record_feedback(
        actor, payload.jobId, payload.action, rating=payload.rating, note=payload.feedback,
    )
