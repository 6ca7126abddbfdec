# jobmatch/services/resume_embedding.py
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

import numpy as np

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.errors import ExtractionError, ValidationError
from jobmatch.db.models import ResumeEmbedding
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import EmbeddingExtractor, ExtractedResume
from jobmatch.nlp.extractors import (
    MAX_EDUCATION, MAX_INDUSTRIES, MAX_SKILLS, MAX_TITLES, clean_resume_text,
)

logger = logging.getLogger(__name__)

MIN_RESUME_CHARS = 20


def _str_list(value, cap: int) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ExtractionError(f"expected a list, got {type(value).__name__}")
    return [str(v).strip() for v in value if str(v).strip()][:cap]


def validate_extraction(result: ExtractedResume | None) -> ExtractedResume:
    if result is None:
        raise ExtractionError("extractor returned no output")
    try:
        vec = np.asarray(result.vector, dtype=np.float32).ravel()
    except (TypeError, ValueError) as exc:
        raise ExtractionError(f"unusable vector: {exc}") from exc
    if vec.size == 0:
        raise ExtractionError("extractor returned an empty vector")
    if not np.all(np.isfinite(vec)):
        raise ExtractionError("extractor returned non-finite vector values")
    return ExtractedResume(
        vector=vec,
        skills=_str_list(result.skills, MAX_SKILLS),
        job_titles=_str_list(result.job_titles, MAX_TITLES),
        industries=_str_list(result.industries, MAX_INDUSTRIES),
        education=_str_list(result.education, MAX_EDUCATION),
    )


class ResumeEmbeddingService:
    def __init__(self, store: ProfileStore, extractor: EmbeddingExtractor,
                 settings: Settings | None = None):
        self.store = store
        self.extractor = extractor
        self.settings = settings or default_settings
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="extractor")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _call_extractor(self, text: str) -> ExtractedResume:
        future = self._pool.submit(self.extractor.extract, text)
        try:
            return future.result(timeout=self.settings.EXTRACTOR_TIMEOUT_SECONDS)
        except FutureTimeout as exc:
            future.cancel()
            raise ExtractionError(
                f"extractor timed out after {self.settings.EXTRACTOR_TIMEOUT_SECONDS}s"
            ) from exc
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"extractor failed: {exc}") from exc

    def process_resume_embedding(self, user_id: str, resume_text: str) -> ResumeEmbedding:
        if not user_id:
            raise ValidationError("user id is required")
        text = clean_resume_text(resume_text, self.settings.RESUME_MAX_CHARS)
        if len(text) < MIN_RESUME_CHARS:
            raise ValidationError("Resume text too short or unreadable")

        logger.info("processing resume embedding for user %s", user_id)
        try:
            extracted = validate_extraction(self._call_extractor(text))
        except ExtractionError:
            logger.warning("resume extraction failed for user %s", user_id, exc_info=True)
            raise

        row = self.store.upsert_resume_embedding(
            user_id,
            extracted.vector,
            model=self.extractor.model_name,
            skills=extracted.skills,
            job_titles=extracted.job_titles,
            industries=extracted.industries,
            education=extracted.education,
            processed_text=text,
        )
        logger.info("resume embedding stored for user %s (dim=%d)", user_id, row.dim)
        return row

    def get_resume_embedding(self, user_id: str) -> ResumeEmbedding | None:
        return self.store.get_resume_embedding(user_id)

    def get_resume_vector(self, user_id: str) -> np.ndarray | None:
        row = self.store.get_resume_embedding(user_id)
        if row is None:
            return None
        return np.frombuffer(row.vector, dtype=np.float32)

    def get_users_needing_processing(self, limit: int = 50) -> list[str]:
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        return self.store.users_needing_processing(limit)

    def needs_reprocessing(self, user_id: str) -> bool:
        profile = self.store.get_profile_by_user(user_id)
        row = self.store.get_resume_embedding(user_id)
        if row is None:
            return True
        if profile is None or profile.resume_updated_at is None:
            return False
        return row.updated_at < profile.resume_updated_at
