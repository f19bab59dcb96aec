# =============================================================================
# Ingestion API - Background Directory Runs
# =============================================================================
#
#   POST /ingest/run         - queue a full pass over INGEST_SOURCES (202)
#   GET  /ingest/{task_id}   - poll the run (PENDING → SUCCESS/FAILURE)
#
# A run walks every configured directory and upserts each accepted file.
# It can take minutes for large PDF collections, so it runs in a Celery
# worker and the client polls for the report.
#
# 202 Accepted signals the run was queued but has not finished yet.
# =============================================================================

import logging

from celery.result import AsyncResult
from fastapi import APIRouter

from app.models.responses import IngestRunResponse, IngestStatusResponse
from app.workers.tasks import run_ingestion

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


@router.post(
    "/ingest/run",
    response_model=IngestRunResponse,
    status_code=202,
    summary="Re-ingest every configured source directory",
    description=(
        "Queues one ingestion pass over the configured directories. Files are "
        "upserted by (name, category), so repeated runs do not duplicate."
    ),
)
async def run_ingestion_endpoint() -> IngestRunResponse:
    task = run_ingestion.delay()
    logger.info("Dispatched ingestion run: task_id=%s", task.id)
    return IngestRunResponse(task_id=task.id)


@router.get(
    "/ingest/{task_id}",
    response_model=IngestStatusResponse,
    summary="Check an ingestion run",
)
async def get_ingest_status(task_id: str) -> IngestStatusResponse:
    """
    Celery task states:
    - PENDING: not yet picked up (or unknown task id)
    - STARTED: worker is ingesting
    - SUCCESS: report available
    - FAILURE: the run itself crashed (see error)
    """
    result = AsyncResult(task_id, app=run_ingestion.app)
    status = result.status

    report: dict | None = None
    error: str | None = None

    if status == "SUCCESS":
        report = result.result or {}
    elif status == "FAILURE":
        error = str(result.result) if result.result else "Unknown error"

    return IngestStatusResponse(task_id=task_id, status=status, report=report, error=error)
