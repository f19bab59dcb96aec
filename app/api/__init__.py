# =============================================================================
# API Package - FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - chat.py: Streamed answers over the whole knowledge base
#   - upload.py: Single-file upload into the "uploads" category
#   - sources.py: Listing and deleting stored documents
#   - ingest.py: Background ingestion runs over configured directories
#   - deps.py: Shared dependencies (store, generator, orchestrator)
# =============================================================================
