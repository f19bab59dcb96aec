# =============================================================================
# Celery Task Definitions - Directory Ingestion Runs
# =============================================================================
#
# `run_ingestion` walks every configured source directory and upserts each
# accepted file into the knowledge store, then returns the run report.
#
# Celery workers are synchronous, while the store is async. Each task
# therefore drives the pipeline with asyncio.run() on a dedicated engine
# using NullPool: pooled connections must not outlive the event loop that
# created them.
#
# No Celery retries: a failed file is reported and the pass continues, and
# an unavailable store is reported as store_failed for the operator to
# re-trigger.
# =============================================================================

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.db.engine import create_engine_for_url, create_session_factory, create_tables
from app.services.ingestion import IngestionPipeline, IngestionReport
from app.services.sources import ContentSource, sources_from_settings
from app.services.store import KnowledgeStore
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_configured_ingestion(
    database_url: str,
    sources: Iterable[ContentSource],
    threshold: int,
    ensure_tables: bool = True,
) -> IngestionReport:
    """
    One ingestion pass against `database_url` on a throwaway engine.

    A database that cannot be reached at all yields a report flagged
    store_failed instead of an exception.
    """
    engine = create_engine_for_url(database_url, use_null_pool=True)
    try:
        if ensure_tables:
            try:
                await create_tables(engine)
            except (SQLAlchemyError, OSError) as exc:
                logger.error("Knowledge store unavailable: %s", exc)
                return IngestionReport(results=[], store_error=str(exc))

        store = KnowledgeStore(create_session_factory(engine))
        pipeline = IngestionPipeline(store, threshold=threshold)
        return await pipeline.run(sources)
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="run_ingestion")
def run_ingestion(self) -> dict:
    """
    Ingest every configured source directory.

    Returns:
        dict with upserted/skipped/failed counts and per-file outcomes.
    """
    task_id = self.request.id
    sources = sources_from_settings(settings)
    logger.info("[%s] Starting ingestion run over %d sources", task_id, len(sources))

    report = asyncio.run(
        run_configured_ingestion(
            settings.database_url,
            sources,
            threshold=settings.acceptance_threshold,
            ensure_tables=settings.create_tables_on_startup,
        )
    )
    summary = report.as_dict()
    logger.info(
        "[%s] Ingestion run finished: upserted=%d skipped=%d failed=%d",
        task_id, report.upserted, report.skipped, report.failed,
    )
    return summary
