# jobmatch/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

HOME_REGION_CITIES = ["modesto", "stockton", "fresno", "merced", "turlock", "tracy", "manteca"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    APP_NAME: str = "jobmatch"
    APP_ENV: str = "dev"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # SQLite connection string (read from .env)
    DATABASE_URL: str = "sqlite:///./jobmatch.db"

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # ---------- Embedding extractor ----------
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EXTRACTOR_TIMEOUT_SECONDS: float = 30.0
    RESUME_MAX_CHARS: int = 32000

    # ---------- Matching ----------
    SEEKER_MIN_SCORE: float = 3.0
    JOB_MIN_SCORE: float = 2.0
    RECENT_JOB_DAYS: int = 30
    RECENT_JOB_LIMIT: int = 100
    HOME_REGION_CITIES: list[str] = HOME_REGION_CITIES
    ALERT_MIN_NORMALIZED_SCORE: float = 80.0   # 0-100 scale

    # ---------- Queue ----------
    QUEUE_MAX_ATTEMPTS: int = 5
    QUEUE_RETRY_DELAYS_SECONDS: list[int] = [5, 15, 60]
    QUEUE_CLAIM_TIMEOUT_SECONDS: int = 600
    QUEUE_MAX_WORKERS: int = 4
    QUEUE_DEFAULT_BATCH: int = 100
    NOTIFY_BATCH_SIZE: int = 50
    NOTIFY_TIMEOUT_SECONDS: float = 30.0
    MATCH_RETENTION_DAYS: int = 90

    # ---------- Recommendations ----------
    W_MATCH: float = 0.45        # heuristic match score / 5
    W_SIMILARITY: float = 0.35   # resume vector <-> job vector
    W_PREFERENCE: float = 0.20   # learned preference buckets
    RECOMMENDATION_POOL_SIZE: int = 200
    MAX_RECOMMENDATION_LIMIT: int = 50
    COLLABORATIVE_NEIGHBORS: int = 20
    REGIONS: dict[str, list[str]] = {"209": HOME_REGION_CITIES}


settings = Settings()
