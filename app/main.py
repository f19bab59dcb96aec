# =============================================================================
# Knowledge Desk - FastAPI Application
# =============================================================================
#
# Run with:
#   uvicorn app.main:app --reload
#   celery -A app.workers.celery_app worker --loglevel=info
#
# STARTUP:  configure logging, create missing tables (CREATE_TABLES_ON_STARTUP)
# SHUTDOWN: dispose the pooled database engine
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import chat, ingest, sources, upload
from app.config import Settings, get_settings
from app.db.engine import create_tables, dispose_engine, get_async_engine
from app.models.responses import HealthResponse

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; `settings` replaces the cached settings when given."""
    app_settings = settings or get_settings()
    configure_logging(app_settings.log_level)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if app_settings.create_tables_on_startup:
            await create_tables(get_async_engine())
            logger.info("Database tables ready")
        logger.info("%s %s started", app_settings.app_name, app_settings.app_version)
        yield
        await dispose_engine()
        logger.info("Database engine disposed")

    application = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description=(
            "Upload documents or point the service at folders of PDFs, "
            "spreadsheets and text files, then ask questions answered from "
            "the whole collection with streamed replies."
        ),
        lifespan=lifespan,
    )

    if settings is not None:
        application.dependency_overrides[get_settings] = lambda: settings

    @application.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=app_settings.app_version,
            service=app_settings.app_name,
        )

    application.include_router(chat.router)
    application.include_router(upload.router)
    application.include_router(sources.router)
    application.include_router(ingest.router)
    return application


app = create_app()
