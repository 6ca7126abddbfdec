# jobmatch/db/store.py
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Sequence

import numpy as np
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobmatch.core.errors import StoreError
from jobmatch.db.base import Base
from jobmatch.db.models import (
    CandidateProfile, Embedding, FeedbackEvent, Job, JobMatch, QueueTask,
    ResumeEmbedding, UserPreference, utcnow,
)

logger = logging.getLogger(__name__)


class ProfileStore:
    """Read/write contract over profiles, jobs and the matching artifacts.

    Every write is a single-row upsert keyed by a natural key (user id, or
    the (job id, profile id) pair). Persistence failures surface as
    StoreError after being logged with the operation name.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self._session_factory.kw["bind"])

    @contextmanager
    def session(self, operation: str, allow_conflict: bool = False) -> Iterator[Session]:
        s = self._session_factory()
        try:
            yield s
            s.commit()
        except IntegrityError as exc:
            s.rollback()
            if allow_conflict:
                # the caller resolves unique-key races itself
                raise
            logger.error("store operation %s failed", operation, exc_info=True)
            raise StoreError(operation, str(exc)) from exc
        except SQLAlchemyError as exc:
            s.rollback()
            logger.error("store operation %s failed", operation, exc_info=True)
            raise StoreError(operation, str(exc)) from exc
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # ---------- Profiles ----------
    def get_profile_by_user(self, user_id: str) -> CandidateProfile | None:
        with self.session("get_profile_by_user") as s:
            return s.execute(
                select(CandidateProfile).where(CandidateProfile.user_id == user_id)
            ).scalars().first()

    def get_profile(self, profile_id: str) -> CandidateProfile | None:
        with self.session("get_profile") as s:
            return s.get(CandidateProfile, profile_id)

    def list_alert_profiles(self) -> list[CandidateProfile]:
        with self.session("list_alert_profiles") as s:
            return list(s.execute(
                select(CandidateProfile)
                .where(CandidateProfile.opt_in_email_alerts.is_(True))
                .order_by(CandidateProfile.id)
            ).scalars())

    def save_resume_text(self, user_id: str, text: str) -> CandidateProfile:
        with self.session("save_resume_text") as s:
            profile = s.execute(
                select(CandidateProfile).where(CandidateProfile.user_id == user_id)
            ).scalars().first()
            if profile is None:
                profile = CandidateProfile(user_id=user_id)
                s.add(profile)
            profile.resume_text = text
            profile.resume_updated_at = utcnow()
            s.flush()
            return profile

    # ---------- Jobs ----------
    def get_job(self, job_id: str) -> Job | None:
        with self.session("get_job") as s:
            return s.get(Job, job_id)

    def get_jobs(self, job_ids: Sequence[str]) -> dict[str, Job]:
        if not job_ids:
            return {}
        with self.session("get_jobs") as s:
            rows = s.execute(select(Job).where(Job.id.in_(list(job_ids)))).scalars()
            return {j.id: j for j in rows}

    def list_active_jobs(
        self,
        limit: int,
        posted_since: datetime | None = None,
        exclude_ids: Sequence[str] = (),
        featured_only: bool = False,
    ) -> list[Job]:
        q = select(Job).where(Job.status == "active", Job.deleted_at.is_(None))
        if posted_since is not None:
            q = q.where(Job.posted_at >= posted_since)
        if exclude_ids:
            q = q.where(Job.id.notin_(list(exclude_ids)))
        if featured_only:
            q = q.where(Job.featured.is_(True))
        q = q.order_by(Job.posted_at.desc(), Job.id).limit(limit)
        with self.session("list_active_jobs") as s:
            return list(s.execute(q).scalars())

    def count_featured_jobs(self, active_only: bool = True) -> int:
        q = select(func.count()).select_from(Job).where(Job.featured.is_(True))
        if active_only:
            q = q.where(Job.status == "active", Job.deleted_at.is_(None))
        with self.session("count_featured_jobs") as s:
            return int(s.execute(q).scalar_one())

    # ---------- Resume embeddings ----------
    def get_resume_embedding(self, user_id: str) -> ResumeEmbedding | None:
        with self.session("get_resume_embedding") as s:
            return s.execute(
                select(ResumeEmbedding).where(ResumeEmbedding.user_id == user_id)
            ).scalars().first()

    def upsert_resume_embedding(
        self,
        user_id: str,
        vector: np.ndarray,
        model: str,
        skills: list[str],
        job_titles: list[str],
        industries: list[str],
        education: list[str],
        processed_text: str | None = None,
    ) -> ResumeEmbedding:
        vec = np.asarray(vector, dtype=np.float32).ravel()
        values = {
            "model": model,
            "dim": int(vec.shape[0]),
            "vector": vec.tobytes(),
            "skills": list(skills),
            "job_titles": list(job_titles),
            "industries": list(industries),
            "education": list(education),
            "processed_text": processed_text,
            "updated_at": utcnow(),
        }
        try:
            return self._upsert_resume_embedding(user_id, values)
        except IntegrityError:
            # a concurrent writer inserted first; overwrite theirs
            return self._upsert_resume_embedding(user_id, values)

    def _upsert_resume_embedding(self, user_id: str, values: dict) -> ResumeEmbedding:
        with self.session("upsert_resume_embedding", allow_conflict=True) as s:
            row = s.execute(
                select(ResumeEmbedding).where(ResumeEmbedding.user_id == user_id)
            ).scalars().first()
            if row is None:
                row = ResumeEmbedding(user_id=user_id, **values)
                s.add(row)
            else:
                for k, v in values.items():
                    setattr(row, k, v)
            s.flush()
            return row

    def count_resume_embeddings(self) -> int:
        with self.session("count_resume_embeddings") as s:
            return int(s.execute(select(func.count()).select_from(ResumeEmbedding)).scalar_one())

    def users_needing_processing(self, limit: int) -> list[str]:
        """User ids with resume text but no embedding, or one older than the last resume edit."""
        stale = or_(
            ResumeEmbedding.id.is_(None),
            ResumeEmbedding.updated_at < CandidateProfile.resume_updated_at,
        )
        q = (
            select(CandidateProfile.user_id)
            .outerjoin(ResumeEmbedding, ResumeEmbedding.user_id == CandidateProfile.user_id)
            .where(CandidateProfile.resume_text.is_not(None), stale)
            # oldest resume edit first
            .order_by(CandidateProfile.resume_updated_at.asc(), CandidateProfile.user_id)
            .limit(limit)
        )
        with self.session("users_needing_processing") as s:
            return list(s.execute(q).scalars())

    # ---------- Job vectors ----------
    def get_cached_vector(self, ref_type: str, ref_id: str) -> np.ndarray | None:
        with self.session("get_cached_vector") as s:
            row = s.execute(
                select(Embedding).where(Embedding.ref_type == ref_type, Embedding.ref_id == ref_id)
            ).scalars().first()
            if not row:
                return None
            return np.frombuffer(row.vector, dtype=np.float32)

    def put_cached_vector(self, ref_type: str, ref_id: str, vec: np.ndarray, model: str) -> None:
        vec = np.asarray(vec, dtype=np.float32).ravel()
        with self.session("put_cached_vector") as s:
            # Delete any existing row for this ref (all models)
            s.execute(delete(Embedding).where(Embedding.ref_type == ref_type, Embedding.ref_id == ref_id))
            s.add(Embedding(ref_type=ref_type, ref_id=ref_id, model=model,
                            dim=int(vec.shape[0]), vector=vec.tobytes()))

    # ---------- Job matches ----------
    def upsert_job_match(self, job_id: str, profile_id: str, score: float, reasons: list[str]) -> JobMatch:
        try:
            return self._upsert_job_match(job_id, profile_id, score, reasons)
        except IntegrityError:
            return self._upsert_job_match(job_id, profile_id, score, reasons)

    def _upsert_job_match(self, job_id, profile_id, score, reasons) -> JobMatch:
        with self.session("upsert_job_match", allow_conflict=True) as s:
            row = s.execute(
                select(JobMatch).where(JobMatch.job_id == job_id, JobMatch.profile_id == profile_id)
            ).scalars().first()
            if row is None:
                row = JobMatch(job_id=job_id, profile_id=profile_id, score=score, reasons=list(reasons))
                s.add(row)
            else:
                row.score = score
                row.reasons = list(reasons)
                row.updated_at = utcnow()
            s.flush()
            return row

    def list_job_matches(self, job_id: str, min_score: float = 0.0) -> list[JobMatch]:
        with self.session("list_job_matches") as s:
            return list(s.execute(
                select(JobMatch)
                .where(JobMatch.job_id == job_id, JobMatch.score >= min_score)
                .order_by(JobMatch.score.desc(), JobMatch.id)
            ).scalars())

    def list_profile_matches(self, profile_id: str, limit: int) -> list[tuple[JobMatch, Job]]:
        with self.session("list_profile_matches") as s:
            rows = s.execute(
                select(JobMatch, Job)
                .join(Job, Job.id == JobMatch.job_id)
                .where(JobMatch.profile_id == profile_id, Job.status == "active", Job.featured.is_(True))
                .order_by(JobMatch.score.desc(), JobMatch.created_at.desc())
                .limit(limit)
            ).all()
            return [(m, j) for m, j in rows]

    def unsent_matches(self, job_id: str, min_score: float) -> list[JobMatch]:
        with self.session("unsent_matches") as s:
            return list(s.execute(
                select(JobMatch)
                .where(JobMatch.job_id == job_id, JobMatch.email_sent.is_(False), JobMatch.score >= min_score)
                .order_by(JobMatch.score.desc(), JobMatch.id)
            ).scalars())

    def mark_emails_sent(self, job_id: str, profile_ids: Sequence[str]) -> int:
        if not profile_ids:
            return 0
        with self.session("mark_emails_sent") as s:
            res = s.execute(
                update(JobMatch)
                .where(JobMatch.job_id == job_id, JobMatch.profile_id.in_(list(profile_ids)))
                .values(email_sent=True, email_sent_at=utcnow())
            )
            return res.rowcount or 0

    def count_matches(self, since: datetime | None = None, email_sent: bool | None = None) -> int:
        q = select(func.count()).select_from(JobMatch)
        if since is not None:
            q = q.where(JobMatch.created_at >= since)
        if email_sent is not None:
            q = q.where(JobMatch.email_sent.is_(email_sent))
        with self.session("count_matches") as s:
            return int(s.execute(q).scalar_one())

    def delete_stale_matches(self, before: datetime) -> int:
        inactive_jobs = select(Job.id).where(or_(Job.status != "active", Job.deleted_at.is_not(None)))
        with self.session("delete_stale_matches") as s:
            res = s.execute(
                delete(JobMatch).where(
                    and_(JobMatch.created_at < before, JobMatch.job_id.in_(inactive_jobs))
                )
            )
            return res.rowcount or 0

    # ---------- Feedback ----------
    def add_feedback(
        self, s: Session, user_id: str, job_id: str, action: str,
        rating: int | None = None, note: str | None = None,
    ) -> FeedbackEvent:
        """Append a feedback event inside the caller's transaction."""
        ev = FeedbackEvent(user_id=user_id, job_id=job_id, action=action, rating=rating, note=note)
        s.add(ev)
        s.flush()
        return ev

    def feedback_for_user(self, user_id: str, actions: Sequence[str] | None = None) -> list[FeedbackEvent]:
        q = select(FeedbackEvent).where(FeedbackEvent.user_id == user_id)
        if actions:
            q = q.where(FeedbackEvent.action.in_(list(actions)))
        with self.session("feedback_for_user") as s:
            return list(s.execute(q.order_by(FeedbackEvent.created_at, FeedbackEvent.id)).scalars())

    def feedback_for_jobs(self, job_ids: Sequence[str], actions: Sequence[str]) -> list[FeedbackEvent]:
        if not job_ids:
            return []
        with self.session("feedback_for_jobs") as s:
            return list(s.execute(
                select(FeedbackEvent)
                .where(FeedbackEvent.job_id.in_(list(job_ids)), FeedbackEvent.action.in_(list(actions)))
            ).scalars())

    def feedback_by_users(self, user_ids: Sequence[str], actions: Sequence[str]) -> list[FeedbackEvent]:
        if not user_ids:
            return []
        with self.session("feedback_by_users") as s:
            return list(s.execute(
                select(FeedbackEvent)
                .where(FeedbackEvent.user_id.in_(list(user_ids)), FeedbackEvent.action.in_(list(actions)))
            ).scalars())

    def engagement_since(self, since: datetime) -> dict[str, dict[str, int]]:
        """{job_id: {"views": n, "applications": m}} for events after `since`."""
        with self.session("engagement_since") as s:
            rows = s.execute(
                select(FeedbackEvent.job_id, FeedbackEvent.action, func.count())
                .where(FeedbackEvent.created_at >= since, FeedbackEvent.action.in_(["viewed", "applied"]))
                .group_by(FeedbackEvent.job_id, FeedbackEvent.action)
            ).all()
        out: dict[str, dict[str, int]] = {}
        for job_id, action, n in rows:
            bucket = out.setdefault(job_id, {"views": 0, "applications": 0})
            bucket["views" if action == "viewed" else "applications"] += int(n)
        return out

    # ---------- Preferences ----------
    def get_preference(self, user_id: str) -> UserPreference | None:
        with self.session("get_preference") as s:
            return s.get(UserPreference, user_id)

    # ---------- Queue ----------
    def count_queue_tasks(self) -> int:
        with self.session("count_queue_tasks") as s:
            return int(s.execute(select(func.count()).select_from(QueueTask)).scalar_one())
