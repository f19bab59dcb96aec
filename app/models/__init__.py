# =============================================================================
# Models Package - Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, separate from the ORM model in
# app/db/models.py. Listing responses never include document content.
# =============================================================================
