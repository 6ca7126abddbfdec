# jobmatch/services/matching.py
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Sequence

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import NotFoundError, ValidationError
from jobmatch.db.models import CandidateProfile, Job, utcnow
from jobmatch.db.store import ProfileStore

logger = logging.getLogger(__name__)

MAX_SCORE = 5.0

JOB_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "warehouse": ("warehouse", "logistics", "distribution"),
    "retail": ("retail", "sales", "customer service"),
    "food_service": ("food", "restaurant", "hospitality"),
    "customer_service": ("customer service", "support", "call center"),
    "healthcare": ("healthcare", "medical", "nursing"),
    "manufacturing": ("manufacturing", "production", "factory"),
    "construction": ("construction", "trades", "building"),
    "transportation": ("transportation", "delivery", "driving"),
    "office_admin": ("office", "administrative", "clerical"),
    "security": ("security", "guard", "safety"),
}

LANGUAGE_SIGNALS = ("spanish", "bilingual")
ENTRY_LEVEL_SIGNALS = ("entry level", "entry-level", "no experience")
GROWTH_SIGNALS = ("growth", "advancement", "career")
LEARNING_SIGNALS = ("training", "learn")

# (increment, reason or None)
RuleResult = tuple[float, str | None]


@dataclass(frozen=True)
class RuleContext:
    home_region_cities: tuple[str, ...]


Rule = Callable[[Job, CandidateProfile, RuleContext], RuleResult]


@dataclass(frozen=True)
class MatchResult:
    job_id: str
    profile_id: str
    score: float
    reasons: tuple[str, ...] = field(default_factory=tuple)

    @property
    def normalized(self) -> float:
        """Score on the 0-100 scale used by alert thresholds."""
        return self.score / MAX_SCORE * 100.0

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "profileId": self.profile_id,
            "score": self.score,
            "reasons": list(self.reasons),
        }


def _lower(*parts: str | None) -> str:
    return " ".join(p.lower() for p in parts if p)


def _contains_any(text: str, needles: Sequence[str]) -> bool:
    return any(n in text for n in needles)


# ---------- Rules ----------
def skills_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    profile_skills = [s.lower() for s in (profile.skills or []) if s]
    matched = [
        skill for skill in (job.skills or [])
        if skill and any(skill.lower() in ps or ps in skill.lower() for ps in profile_skills)
    ]
    if not matched:
        return 0.0, None
    return 1.0, f"Skills match: {', '.join(matched)}"


def job_type_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    text = _lower(job.title, job.description)
    for declared in profile.job_types or []:
        keywords = JOB_TYPE_KEYWORDS.get(declared, (declared.replace("_", " ").lower(),))
        if _contains_any(text, keywords):
            return 1.0, "Job type matches your interests"
    return 0.0, None


def region_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    if not profile.zip_code or not job.location:
        return 0.0, None
    if _contains_any(job.location.lower(), ctx.home_region_cities):
        return 1.0, "Job is in your preferred area"
    return 0.0, None


def bilingual_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    if not _contains_any(_lower(job.title, job.description, job.requirements), LANGUAGE_SIGNALS):
        return 0.0, None
    speaks = any(_contains_any(s.lower(), LANGUAGE_SIGNALS) for s in (profile.skills or []) if s)
    if speaks:
        return 1.0, "Spanish language skills match"
    return 0.0, None


def entry_level_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    entry = "entry" in (job.title or "").lower() or _contains_any(
        (job.description or "").lower(), ENTRY_LEVEL_SIGNALS
    )
    if entry and profile.career_goal == "need_job_asap":
        return 1.0, "Entry-level position matches your immediate job needs"
    return 0.0, None


def career_growth_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    if profile.career_goal != "build_career":
        return 0.0, None
    desc = (job.description or "").lower()
    if _contains_any(desc, GROWTH_SIGNALS) or "training" in (job.benefits or "").lower():
        return 0.5, "Offers career growth opportunities"
    return 0.0, None


def exploring_rule(job: Job, profile: CandidateProfile, ctx: RuleContext) -> RuleResult:
    if profile.career_goal != "exploring_fields":
        return 0.0, None
    desc = (job.description or "").lower()
    if _contains_any(desc, LEARNING_SIGNALS) or "training" in (job.benefits or "").lower():
        return 0.5, "Provides training and learning opportunities"
    return 0.0, None


DEFAULT_RULES: tuple[Rule, ...] = (
    skills_rule,
    job_type_rule,
    region_rule,
    bilingual_rule,
    entry_level_rule,
    career_growth_rule,
    exploring_rule,
)


def score(
    job: Job,
    profile: CandidateProfile,
    rules: Sequence[Rule] = DEFAULT_RULES,
    home_region_cities: Sequence[str] | None = None,
) -> MatchResult:
    """Sum the rule increments and clamp to [0, 5]. Pure and deterministic."""
    cities = home_region_cities if home_region_cities is not None else default_settings.HOME_REGION_CITIES
    ctx = RuleContext(home_region_cities=tuple(c.lower() for c in cities))
    total = 0.0
    reasons: list[str] = []
    for rule in rules:
        inc, reason = rule(job, profile, ctx)
        total += inc
        if reason:
            reasons.append(reason)
    return MatchResult(
        job_id=job.id,
        profile_id=profile.id,
        score=max(0.0, min(MAX_SCORE, total)),
        reasons=tuple(reasons),
    )


def _ranked(results: list[MatchResult]) -> list[MatchResult]:
    return sorted(results, key=lambda r: (-r.score, r.job_id, r.profile_id))


class MatchingEngine:
    def __init__(self, store: ProfileStore, settings: Settings | None = None,
                 rules: Sequence[Rule] = DEFAULT_RULES):
        self.store = store
        self.settings = settings or default_settings
        self.rules = tuple(rules)
        self.queue = None  # wired by the service container

    def score(self, job: Job, profile: CandidateProfile) -> MatchResult:
        return score(job, profile, self.rules, self.settings.HOME_REGION_CITIES)

    @property
    def alert_min_score(self) -> float:
        return self.settings.ALERT_MIN_NORMALIZED_SCORE / 100.0 * MAX_SCORE

    def find_matching_job_seekers(self, job_id: str) -> list[MatchResult]:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        results = []
        for profile in self.store.list_alert_profiles():
            r = self.score(job, profile)
            if r.score >= self.settings.SEEKER_MIN_SCORE:
                results.append(r)
        return _ranked(results)

    def find_matching_jobs(self, user_id: str) -> list[MatchResult]:
        profile = self.store.get_profile_by_user(user_id)
        if profile is None:
            raise NotFoundError("profile", user_id)
        since = utcnow() - timedelta(days=self.settings.RECENT_JOB_DAYS)
        jobs = self.store.list_active_jobs(limit=self.settings.RECENT_JOB_LIMIT, posted_since=since)
        results = []
        for job in jobs:
            r = self.score(job, profile)
            if r.score >= self.settings.JOB_MIN_SCORE:
                results.append(r)
        return _ranked(results)

    def get_job_match_score(self, job_id: str, user_id: str) -> MatchResult | None:
        job = self.store.get_job(job_id)
        if job is None:
            return None
        profile = self.store.get_profile_by_user(user_id)
        if profile is None:
            return None
        return self.score(job, profile)

    # ---------- Featured jobs ----------
    def process_featured_job_matching(self, job_id: str) -> dict:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        if not job.featured:
            raise ValidationError(f"job {job_id} is not featured")

        logger.info("featured matching started for job %s", job_id)
        matches = self.find_matching_job_seekers(job_id)
        for m in matches:
            self.store.upsert_job_match(m.job_id, m.profile_id, m.score, list(m.reasons))

        eligible = self.store.unsent_matches(job_id, self.alert_min_score)
        queued = False
        if eligible and self.queue is not None:
            self.queue.enqueue("notify", {"jobId": job_id})
            queued = True

        logger.info(
            "featured matching for job %s: %d matches, %d alert-eligible, notify queued=%s",
            job_id, len(matches), len(eligible), queued,
        )
        return {
            "jobId": job_id,
            "matchesFound": len(matches),
            "alertsEligible": len(eligible),
            "notificationQueued": queued,
        }

    # ---------- Persisted matches ----------
    def get_job_matches(self, job_id: str, min_score: float = 0.0) -> list[dict]:
        return [
            {
                "jobId": m.job_id,
                "profileId": m.profile_id,
                "score": m.score,
                "reasons": list(m.reasons or []),
                "emailSent": m.email_sent,
                "createdAt": m.created_at.isoformat(),
            }
            for m in self.store.list_job_matches(job_id, min_score)
        ]

    def get_user_matches(self, user_id: str, limit: int = 20) -> list[dict]:
        profile = self.store.get_profile_by_user(user_id)
        if profile is None:
            return []
        return [
            {
                "jobId": j.id,
                "title": j.title,
                "company": j.company,
                "location": j.location,
                "jobType": j.job_type,
                "salaryMin": j.salary_min,
                "salaryMax": j.salary_max,
                "score": m.score,
                "reasons": list(m.reasons or []),
            }
            for m, j in self.store.list_profile_matches(profile.id, limit)
        ]

    def get_matching_stats(self, job_id: str) -> dict:
        rows = self.store.list_job_matches(job_id)
        high = 0.9 * MAX_SCORE
        scores = [m.score for m in rows]
        return {
            "totalCandidates": len(rows),
            "highScoreMatches": sum(1 for s in scores if s >= high),
            "emailsSent": sum(1 for m in rows if m.email_sent),
            "averageScore": sum(scores) / len(scores) if scores else 0.0,
            "topScore": max(scores) if scores else 0.0,
        }
