# tests/conftest.py
import os

# keep the module-level app in jobmatch.main off the working directory
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import itertools
import re
import threading
import zlib
from datetime import datetime, timedelta

import numpy as np
import pytest

from jobmatch.core.actor import AuthenticatedActor
from jobmatch.core.config import Settings
from jobmatch.db.models import CandidateProfile, FeedbackEvent, Job, utcnow
from jobmatch.db.session import make_engine, make_session_factory
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import ExtractedResume
from jobmatch.nlp.extractors import extract_resume_entities
from jobmatch.services.container import build_services

_TOKEN = re.compile(r"[a-z]+")


class FakeExtractor:
    """Hashed bag-of-words vectors; deterministic across runs."""

    model_name = "fake-hash-32"

    def __init__(self, dim: int = 32):
        self.dim = dim
        self.calls = 0

    def embed_text(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dim, dtype=np.float32)
        for tok in _TOKEN.findall(text.lower()):
            vec[zlib.crc32(tok.encode()) % self.dim] += 1.0
        n = float(np.linalg.norm(vec))
        return vec / n if n else vec

    def extract(self, text: str) -> ExtractedResume:
        self.calls += 1
        return ExtractedResume(vector=self.embed_text(text), **extract_resume_entities(text))


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.refuse: set[str] = set()   # profile ids that are never acknowledged
        self._lock = threading.Lock()

    def send_match_alerts(self, job, alerts):
        acked = []
        with self._lock:
            for a in alerts:
                if a.profile_id in self.refuse:
                    continue
                self.sent.append((job.id, a.user_id))
                acked.append(a.profile_id)
        return acked


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class Factory:
    def __init__(self, store: ProfileStore):
        self.store = store
        self._seq = itertools.count(1)

    def job(self, **kw) -> Job:
        values = dict(
            title="Warehouse Associate",
            company="Valley Logistics",
            description="Loading and unloading trucks.",
            location="Modesto, CA",
            skills=["forklift"],
            job_type="warehouse",
            industry="logistics",
            status="active",
            featured=False,
            posted_at=utcnow(),
        )
        values.update(kw)
        with self.store.session("test.job") as s:
            job = Job(**values)
            s.add(job)
            s.flush()
        return job

    def profile(self, **kw) -> CandidateProfile:
        n = next(self._seq)
        values = dict(
            user_id=f"user-{n}",
            zip_code="95351",
            availability_days=[],
            availability_shifts=[],
            job_types=["warehouse"],
            skills=["forklift"],
            career_goal="need_job_asap",
            opt_in_email_alerts=True,
            opt_in_sms_alerts=False,
        )
        values.update(kw)
        with self.store.session("test.profile") as s:
            profile = CandidateProfile(**values)
            s.add(profile)
            s.flush()
        return profile

    def feedback(self, user_id: str, job_id: str, action: str, created_at: datetime | None = None):
        with self.store.session("test.feedback") as s:
            s.add(FeedbackEvent(user_id=user_id, job_id=job_id, action=action,
                                created_at=created_at or utcnow()))


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        LOG_LEVEL="WARNING",
        QUEUE_RETRY_DELAYS_SECONDS=[5, 15, 60],
        EXTRACTOR_TIMEOUT_SECONDS=5.0,
        NOTIFY_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'jobmatch.db'}")
    store = ProfileStore(make_session_factory(engine))
    store.create_all()
    yield store
    engine.dispose()


@pytest.fixture
def factory(store):
    return Factory(store)


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services(store, extractor, notifier, settings):
    built = build_services(store, extractor, notifier=notifier, settings=settings)
    yield built
    built.close()


@pytest.fixture
def admin():
    return AuthenticatedActor(id="admin-1", role="admin")
