# =============================================================================
# Workers Package - Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: Full ingestion pass over the configured source directories
# =============================================================================
