# jobmatch/services/preferences.py
import logging
from typing import Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobmatch.core.errors import ValidationError
from jobmatch.db.models import Job, UserPreference, utcnow
from jobmatch.db.store import ProfileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

BASE_WEIGHTS = {
    "applied": 1.0,
    "saved": 0.8,
    "viewed": 0.3,
    "dismissed": -0.5,
    "not_interested": -1.0,
}
ACTIONS = tuple(BASE_WEIGHTS)

BUCKETS = ("job_types", "industries", "locations", "companies", "skills")


def feedback_weight(action: str, rating: int | None = None) -> float:
    """Signed weight of one feedback event: base(action) * (rating or 3) / 3."""
    if action not in BASE_WEIGHTS:
        raise ValidationError(f"unknown feedback action: {action}")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")
    return BASE_WEIGHTS[action] * (rating if rating is not None else 3) / 3


def _key(value: str) -> str:
    return value.strip().lower()


def bump_bucket(bucket: list[dict] | None, value: str | None, weight: float) -> list[dict]:
    """Return a new bucket list with `weight` added to `value`'s entry."""
    out = [dict(e) for e in (bucket or [])]
    if not value or not value.strip():
        return out
    for entry in out:
        if _key(entry["value"]) == _key(value):
            entry["weight"] = entry["weight"] + weight
            return out
    out.append({"value": value.strip(), "weight": weight})
    return out


def bump_salary(current: dict | None, lo: float | None, hi: float | None, weight: float) -> dict:
    cur = dict(current or {})
    if lo is None and hi is None:
        return cur
    old_w = cur.get("weight", 0.0)
    if weight > 0:
        # positive signals pull the band toward this job's band
        prior = max(old_w, 0.0)
        for k, v in (("min", lo), ("max", hi)):
            if v is None:
                continue
            if cur.get(k) is None or prior == 0:
                cur[k] = float(v)
            else:
                cur[k] = (cur[k] * prior + float(v) * weight) / (prior + weight)
    cur.setdefault("min", lo)
    cur.setdefault("max", hi)
    cur["weight"] = old_w + weight
    return cur


def _distinct(values) -> list[str]:
    out, seen = [], set()
    for v in values:
        if not v or not v.strip() or _key(v) in seen:
            continue
        seen.add(_key(v))
        out.append(v)
    return out


def job_features(job: Job) -> dict:
    """Feature values per bucket, one entry per bucket key."""
    return {
        "job_types": _distinct([job.job_type]),
        "industries": _distinct([job.industry]),
        "locations": _distinct([job.location]),
        "companies": _distinct([job.company]),
        "skills": _distinct(job.skills or []),
    }


class PreferenceModel:
    def __init__(self, store: ProfileStore):
        self.store = store

    def get(self, user_id: str) -> UserPreference | None:
        return self.store.get_preference(user_id)

    def apply(self, user_id: str, job: Job, weight: float) -> UserPreference:
        """Add `weight` to every bucket the job touches. Weights accumulate and may go negative."""
        return self.run_atomic("preferences.apply", lambda s: self.apply_in(s, user_id, job, weight))

    def run_atomic(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run `work` in one transaction, retrying once if a concurrent first write won."""
        try:
            with self.store.session(operation, allow_conflict=True) as s:
                return work(s)
        except IntegrityError:
            # concurrent first write for this user; the row exists now
            with self.store.session(operation) as s:
                return work(s)

    def apply_in(self, s: Session, user_id: str, job: Job, weight: float) -> UserPreference:
        """Same as apply, inside the caller's transaction."""
        features = job_features(job)
        pref = s.execute(
            select(UserPreference).where(UserPreference.user_id == user_id).with_for_update()
        ).scalars().first()
        if pref is None:
            pref = UserPreference(user_id=user_id, job_types=[], industries=[], locations=[],
                                  companies=[], skills=[], salary_range={})
            s.add(pref)
        for bucket in BUCKETS:
            updated = getattr(pref, bucket) or []
            for value in features[bucket]:
                updated = bump_bucket(updated, value, weight)
            # assign a fresh list so the JSON column is flagged dirty
            setattr(pref, bucket, updated)
        pref.salary_range = bump_salary(pref.salary_range, job.salary_min, job.salary_max, weight)
        pref.updated_at = utcnow()
        s.flush()
        logger.debug("preferences for %s updated by %.3f from job %s", user_id, weight, job.id)
        return pref

    @staticmethod
    def affinity(pref: UserPreference | None, job: Job) -> float:
        """Raw sum of bucket weights the job hits (unbounded, signed)."""
        if pref is None:
            return 0.0
        features = job_features(job)
        total = 0.0
        for bucket in BUCKETS:
            weights = {_key(e["value"]): e["weight"] for e in (getattr(pref, bucket) or [])}
            total += sum(weights.get(_key(v), 0.0) for v in features[bucket])
        band = pref.salary_range or {}
        if band.get("weight") and (job.salary_min is not None or job.salary_max is not None):
            lo = job.salary_min if job.salary_min is not None else job.salary_max
            hi = job.salary_max if job.salary_max is not None else job.salary_min
            pmin = band.get("min") if band.get("min") is not None else float("-inf")
            pmax = band.get("max") if band.get("max") is not None else float("inf")
            if lo <= pmax and hi >= pmin:
                total += band["weight"]
        return total

    @staticmethod
    def as_dict(pref: UserPreference | None) -> dict:
        if pref is None:
            return {b: [] for b in BUCKETS} | {"salary_range": {}}
        return {b: list(getattr(pref, b) or []) for b in BUCKETS} | {"salary_range": dict(pref.salary_range or {})}
