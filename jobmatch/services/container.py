# jobmatch/services/container.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import NotFoundError, ValidationError
from jobmatch.db.models import utcnow
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import EmbeddingExtractor
from jobmatch.services.matching import MatchingEngine
from jobmatch.services.notifications import LoggingNotifier, MatchAlertDispatcher, Notifier
from jobmatch.services.preferences import PreferenceModel
from jobmatch.services.queue import JobQueue
from jobmatch.services.recommendations import RecommendationEngine
from jobmatch.services.resume_embedding import ResumeEmbeddingService


@dataclass
class Services:
    settings: Settings
    store: ProfileStore
    extractor: EmbeddingExtractor
    queue: JobQueue
    matching: MatchingEngine
    resumes: ResumeEmbeddingService
    preferences: PreferenceModel
    recommendations: RecommendationEngine
    alerts: MatchAlertDispatcher

    def close(self) -> None:
        """Release the worker pools held by the extractor and notifier wrappers."""
        self.resumes.close()
        self.alerts.close()


def _require(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not value:
        raise ValidationError(f"payload is missing {key}")
    return str(value)


def build_services(
    store: ProfileStore,
    extractor: EmbeddingExtractor,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    settings = settings or default_settings
    queue = JobQueue(store, settings, clock=clock)
    matching = MatchingEngine(store, settings)
    matching.queue = queue
    resumes = ResumeEmbeddingService(store, extractor, settings)
    preferences = PreferenceModel(store)
    recommendations = RecommendationEngine(store, extractor, matching, preferences, settings)
    alerts = MatchAlertDispatcher(store, notifier or LoggingNotifier(), settings)

    # ---------- Task handlers ----------
    def handle_resume_embedding(payload: dict) -> dict:
        user_id = _require(payload, "userId")
        text = payload.get("resumeText")
        if not text:
            profile = store.get_profile_by_user(user_id)
            if profile is None or not profile.resume_text:
                raise NotFoundError("resume", user_id)
            text = profile.resume_text
        row = resumes.process_resume_embedding(user_id, text)
        return {"userId": user_id, "dim": row.dim}

    def handle_featured_match(payload: dict) -> dict:
        return matching.process_featured_job_matching(_require(payload, "jobId"))

    def handle_notify(payload: dict) -> dict:
        return alerts.dispatch(_require(payload, "jobId"))

    def handle_cleanup(payload: dict) -> dict:
        days = int(payload.get("daysOld") or settings.MATCH_RETENTION_DAYS)
        return {"deleted": store.delete_stale_matches(clock() - timedelta(days=days))}

    queue.register("resume_embedding", handle_resume_embedding)
    queue.register("featured_match", handle_featured_match)
    queue.register("notify", handle_notify)
    queue.register("cleanup_matches", handle_cleanup)

    return Services(
        settings=settings,
        store=store,
        extractor=extractor,
        queue=queue,
        matching=matching,
        resumes=resumes,
        preferences=preferences,
        recommendations=recommendations,
        alerts=alerts,
    )
