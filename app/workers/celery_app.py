# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs full ingestion passes over the configured source directories
# in the background, so POST /ingest/run returns immediately.
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌───────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ Redis │
# │ (producer)│    │(broker)│    │ (consumer)    │    │(result)│
# └──────────┘     └───────┘     └──────────────┘     └───────┘
#    db 0 ──────────┘                                    └── db 1
#
# The broker (Redis db 0) queues runs. Results (the run report) are kept in
# Redis db 1 for GET /ingest/{task_id}.
# =============================================================================

from celery import Celery

from app.config import settings

celery_app = Celery(
    "knowledge_desk",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # JSON only; the run report is a plain dict.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Re-queue a run if the worker dies mid-pass. Upserts make a repeated
    # pass harmless.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # PDF conversion of a large directory can take a while.
    task_soft_time_limit=1800,
    task_time_limit=3600,

    result_expires=3600,

    include=["app.workers.tasks"],
)
