# jobmatch/services/recommendations.py
import logging
import math
from collections import defaultdict
from datetime import timedelta

import numpy as np

from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import NotFoundError, ValidationError
from jobmatch.db.models import Job, utcnow
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import EmbeddingExtractor, cosine, job_text
from jobmatch.services.matching import MAX_SCORE, MatchingEngine
from jobmatch.services.preferences import ACTIONS, PreferenceModel, feedback_weight

logger = logging.getLogger(__name__)

ALGORITHM = {
    "algorithm": "Hybrid Recommendation Engine",
    "version": "2.0",
    "features": ["Content-based filtering", "Collaborative filtering", "Semantic matching", "Trend analysis"],
}

TIMEFRAMES = {"24h": 24, "7d": 7 * 24, "30d": 30 * 24}
ENGAGED_ACTIONS = ("applied", "saved")


def confidence_band(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    return "low"


def preference_signal(raw: float) -> float:
    """Squash a signed preference sum into [0, 1]; 0.5 means no opinion."""
    return (math.tanh(raw) + 1.0) / 2.0


def _job_card(job: Job) -> dict:
    return {
        "jobId": job.id,
        "title": job.title,
        "company": job.company,
        "location": job.location,
        "jobType": job.job_type,
        "industry": job.industry,
        "salaryMin": job.salary_min,
        "salaryMax": job.salary_max,
        "featured": job.featured,
        "postedAt": job.posted_at.isoformat() if job.posted_at else None,
    }


class RecommendationEngine:
    def __init__(
        self,
        store: ProfileStore,
        extractor: EmbeddingExtractor,
        matching: MatchingEngine,
        preferences: PreferenceModel,
        settings: Settings | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self.matching = matching
        self.preferences = preferences
        self.settings = settings or default_settings

    # ---------- Helpers ----------
    def _check_limit(self, limit: int) -> None:
        if not 1 <= limit <= self.settings.MAX_RECOMMENDATION_LIMIT:
            raise ValidationError(f"limit must be between 1 and {self.settings.MAX_RECOMMENDATION_LIMIT}")

    def _job_vector(self, job: Job) -> np.ndarray:
        cached = self.store.get_cached_vector("job", job.id)
        if cached is not None:
            return cached
        vec = self.extractor.embed_text(job_text(job))
        self.store.put_cached_vector("job", job.id, vec, self.extractor.model_name)
        return np.asarray(vec, dtype=np.float32)

    def _resume_vector(self, user_id: str) -> np.ndarray | None:
        row = self.store.get_resume_embedding(user_id)
        if row is None:
            return None
        return np.frombuffer(row.vector, dtype=np.float32)

    def _weights(self, has_vector: bool) -> tuple[float, float, float]:
        wm, ws, wp = self.settings.W_MATCH, self.settings.W_SIMILARITY, self.settings.W_PREFERENCE
        if not has_vector:
            ws = 0.0
        total = wm + ws + wp
        if total <= 0:
            return 0.0, 0.0, 0.0
        return wm / total, ws / total, wp / total

    # ---------- Personalized ----------
    def generate_personalized_recommendations(
        self, actor: AuthenticatedActor, limit: int = 20, include_applied: bool = False,
    ) -> dict:
        self._check_limit(limit)
        user_id = actor.id

        exclude: set[str] = set()
        if not include_applied:
            exclude = {e.job_id for e in self.store.feedback_for_user(user_id, ["applied"])}
        jobs = self.store.list_active_jobs(
            limit=self.settings.RECOMMENDATION_POOL_SIZE, exclude_ids=sorted(exclude)
        )

        profile = self.store.get_profile_by_user(user_id)
        pref = self.preferences.get(user_id)
        resume_vec = self._resume_vector(user_id)
        wm, ws, wp = self._weights(resume_vec is not None)

        items = []
        for job in jobs:
            match_score, reasons = 0.0, []
            if profile is not None:
                m = self.matching.score(job, profile)
                match_score, reasons = m.score, list(m.reasons)
            similarity = max(cosine(resume_vec, self._job_vector(job)), 0.0) if resume_vec is not None else 0.0
            pref_raw = self.preferences.affinity(pref, job)
            pref_sig = preference_signal(pref_raw)

            blended = wm * (match_score / MAX_SCORE) + ws * similarity + wp * pref_sig
            blended = max(0.0, min(1.0, blended))
            if similarity >= 0.5:
                reasons.append("Similar to your resume")
            if pref_raw > 0:
                reasons.append("Matches your past activity")
            items.append({
                **_job_card(job),
                "score": round(blended, 4),
                "confidence": confidence_band(blended),
                "components": {
                    "match": round(match_score / MAX_SCORE, 4),
                    "similarity": round(similarity, 4),
                    "preference": round(pref_sig, 4),
                },
                "reasons": reasons,
            })

        items.sort(key=lambda r: (-r["score"], r["jobId"]))
        return {
            "userId": user_id,
            "recommendations": items[:limit],
            "totalCandidates": len(jobs),
            "usedResume": resume_vec is not None,
        }

    # ---------- Trending ----------
    def _in_region(self, job: Job, region: str) -> bool:
        loc = (job.location or "").lower()
        if not region:
            return True
        cities = self.settings.REGIONS.get(region, [])
        return region.lower() in loc or any(c.lower() in loc for c in cities)

    def generate_trending_jobs(self, region: str = "209", timeframe: str = "7d", limit: int = 10) -> list[dict]:
        self._check_limit(limit)
        if timeframe not in TIMEFRAMES:
            raise ValidationError(f"timeframe must be one of {', '.join(TIMEFRAMES)}")
        hours = TIMEFRAMES[timeframe]
        engagement = self.store.engagement_since(utcnow() - timedelta(hours=hours))
        jobs = self.store.get_jobs(list(engagement))

        ranked = []
        for job_id, counts in engagement.items():
            job = jobs.get(job_id)
            if job is None or job.status != "active" or job.deleted_at is not None:
                continue
            if not self._in_region(job, region):
                continue
            total = counts["views"] + counts["applications"]
            if total <= 0:
                continue
            ranked.append({
                **_job_card(job),
                "views": counts["views"],
                "applications": counts["applications"],
                "velocity": round(total / hours, 4),
            })
        # newest first among equals
        ranked.sort(key=lambda r: r["postedAt"] or "", reverse=True)
        ranked.sort(key=lambda r: (-r["velocity"], -r["applications"]))
        return ranked[:limit]

    # ---------- Collaborative ----------
    def generate_collaborative_insights(self, actor: AuthenticatedActor, user_id: str | None = None,
                                        limit: int = 10) -> dict:
        self._check_limit(limit)
        target = user_id or actor.id
        actor.require_self_or_admin(target)

        seen = self.store.feedback_for_user(target)
        mine = {e.job_id for e in seen if e.action in ENGAGED_ACTIONS}
        seen_ids = {e.job_id for e in seen}
        empty = {"userId": target, "similarUsers": 0, "recommendations": []}
        if not mine:
            return empty

        # users who engaged with any of the same jobs
        neighbours = {e.user_id for e in self.store.feedback_for_jobs(sorted(mine), ENGAGED_ACTIONS)}
        neighbours.discard(target)
        if not neighbours:
            return empty

        theirs: dict[str, set[str]] = defaultdict(set)
        for e in self.store.feedback_by_users(sorted(neighbours), ENGAGED_ACTIONS):
            theirs[e.user_id].add(e.job_id)

        similarity = {
            u: len(mine & jobs) / len(mine | jobs)
            for u, jobs in theirs.items() if mine & jobs
        }
        top = sorted(similarity.items(), key=lambda kv: (-kv[1], kv[0]))[: self.settings.COLLABORATIVE_NEIGHBORS]

        scores: dict[str, float] = defaultdict(float)
        supporters: dict[str, int] = defaultdict(int)
        for u, sim in top:
            for job_id in theirs[u] - seen_ids:
                scores[job_id] += sim
                supporters[job_id] += 1

        jobs = self.store.get_jobs(list(scores))
        recs = []
        for job_id, s in scores.items():
            job = jobs.get(job_id)
            if job is None or job.status != "active" or job.deleted_at is not None:
                continue
            recs.append({**_job_card(job), "score": round(s, 4), "similarUsers": supporters[job_id]})
        recs.sort(key=lambda r: (-r["score"], r["jobId"]))
        return {"userId": target, "similarUsers": len(top), "recommendations": recs[:limit]}

    # ---------- Feedback ----------
    def record_feedback(
        self,
        actor: AuthenticatedActor,
        job_id: str,
        action: str,
        rating: int | None = None,
        note: str | None = None,
    ) -> dict:
        if action not in ACTIONS:
            raise ValidationError(f"action must be one of {', '.join(ACTIONS)}")
        weight = feedback_weight(action, rating)
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)

        def write(s):
            # the event and its preference update commit together
            self.store.add_feedback(s, actor.id, job_id, action, rating, note)
            self.preferences.apply_in(s, actor.id, job, weight)

        self.preferences.run_atomic("feedback.record", write)
        logger.info("feedback %s on job %s from %s (weight %.3f)", action, job_id, actor.id, weight)
        return {
            "success": True,
            "message": "Feedback recorded successfully",
            "weight": round(weight, 4),
        }
