# jobmatch/nlp/embeddings.py
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from sentence_transformers import SentenceTransformer

from jobmatch.core.config import settings
from jobmatch.nlp.extractors import extract_resume_entities

# ---------- Model cache ----------
_models: dict[str, SentenceTransformer] = {}

def get_model(name: str | None = None) -> SentenceTransformer:
    name = name or settings.EMBEDDING_MODEL
    if name not in _models:
        _models[name] = SentenceTransformer(name)
    return _models[name]


@dataclass
class ExtractedResume:
    vector: np.ndarray
    skills: list[str] = field(default_factory=list)
    job_titles: list[str] = field(default_factory=list)
    industries: list[str] = field(default_factory=list)
    education: list[str] = field(default_factory=list)


class EmbeddingExtractor(Protocol):
    """Boundary to the text-embedding service."""
    model_name: str

    def extract(self, text: str) -> ExtractedResume: ...

    def embed_text(self, text: str) -> np.ndarray: ...


class SentenceTransformerExtractor:
    """Lexicon extraction plus a local sentence-transformers vector."""

    def __init__(self, model_name: str | None = None):
        self.model_name = model_name or settings.EMBEDDING_MODEL

    def embed_texts(self, texts: list[str]) -> np.ndarray:
        """
        Returns np.float32 array of shape (N, D), L2-normalized.
        """
        M = get_model(self.model_name)
        X = M.encode(texts, normalize_embeddings=True)
        return np.asarray(X, dtype=np.float32)

    def embed_text(self, text: str) -> np.ndarray:
        return self.embed_texts([text])[0]

    def extract(self, text: str) -> ExtractedResume:
        entities = extract_resume_entities(text)
        return ExtractedResume(vector=self.embed_text(text), **entities)


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    if a.shape != b.shape:
        return 0.0
    na, nb = float(np.linalg.norm(a)), float(np.linalg.norm(b))
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


def job_text(job) -> str:
    skills = " ".join(job.skills or [])
    return f"{job.title}. {job.description or ''} {skills}".strip()
