# jobmatch/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from jobmatch.core.config import Settings, settings as default_settings
from jobmatch.core.logging import configure_logging
from jobmatch.db.session import make_engine, make_session_factory
from jobmatch.db.store import ProfileStore
from jobmatch.nlp.embeddings import EmbeddingExtractor, SentenceTransformerExtractor
from jobmatch.services.container import build_services
from jobmatch.services.notifications import Notifier

# Routers
from jobmatch.api.routes import router as api_router
from jobmatch.api.recommend_routes import router as recommend_router
from jobmatch.api.resume_routes import router as resume_router
from jobmatch.api.match_routes import router as match_router
from jobmatch.api.admin_routes import router as admin_router
from jobmatch.api.errors import register_exception_handlers

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: ProfileStore | None = None,
    extractor: EmbeddingExtractor | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    # worker pools are released when the app shuts down
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.services.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    # Root -> redirect to Swagger UI
    @app.get("/", include_in_schema=False)
    def root():
        return RedirectResponse(url="/docs")

    # CORS
    origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if store is None:
        store = ProfileStore(make_session_factory(make_engine(settings.DATABASE_URL)))
    # Ensure tables exist
    store.create_all()

    app.state.services = build_services(
        store,
        extractor or SentenceTransformerExtractor(settings.EMBEDDING_MODEL),
        notifier=notifier,
        settings=settings,
    )

    register_exception_handlers(app)
    app.include_router(api_router)        # /health
    app.include_router(recommend_router)  # /recommendations
    app.include_router(resume_router)     # /resumes
    app.include_router(match_router)      # /matches/*
    app.include_router(admin_router)      # /admin/*

    logger.info("%s started (env=%s)", settings.APP_NAME, settings.APP_ENV)
    return app


app = create_app()
