# =============================================================================
# Services Package - Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - extractor.py: Text extraction (Docling for PDF, pandas for sheets)
#   - store.py: KnowledgeStore over the knowledge_documents table
#   - sources.py: Directory and in-memory content sources
#   - ingestion.py: Extraction + upsert pipeline with per-file outcomes
#   - context.py: Whole-corpus context assembly
#   - llm.py: Streaming answer generators (Anthropic, OpenAI-compatible)
#   - orchestrator.py: Retry/backoff state machine around one streamed answer
#   - prompt_config.py / export.py: Prompt settings file and JSONL snapshots
# =============================================================================
