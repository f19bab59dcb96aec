# =============================================================================
# Knowledge Desk
# =============================================================================
# A document question-answering service. Documents (PDF, spreadsheets, text)
# are extracted to plain text and stored whole; every question is answered
# by sending the entire collection as context to an LLM and streaming the
# reply back.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (chat, upload, sources, ingest)
#   ├── db/           → Async engine, sessions and the knowledge_documents table
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Extraction, store, ingestion, context assembly,
#   │                    LLM providers and the answer orchestrator
#   └── workers/      → Celery task for background ingestion runs
# =============================================================================
