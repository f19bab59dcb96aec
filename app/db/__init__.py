# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, session factory and ORM model.
#
# Key exports:
#   - create_engine_for_url / get_session_factory: engine and sessions
#   - Base: SQLAlchemy declarative base
#   - KnowledgeDocument: one extracted file, unique per (source, category)
# =============================================================================
