# =============================================================================
# API Response Models - Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API. Document
# content is never returned by listing endpoints; only its length.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health - confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class UploadResponse(BaseModel):
    """
    Response for POST /upload.

    Serialised with camelCase `fileName` for existing front-end clients.
    """

    success: bool = True
    file_name: str = Field(serialization_alias="fileName")

    model_config = ConfigDict(populate_by_name=True)


class SourceFile(BaseModel):
    """One stored document as shown in source listings."""

    id: int
    name: str
    category: str
    count: int = Field(description="Length of the stored content in characters")


class CategorySummary(BaseModel):
    name: str
    count: int = Field(description="Number of documents in this category")
    files: list[SourceFile]


class SourcesResponse(BaseModel):
    """Response for GET /sources."""

    categories: list[CategorySummary]
    sources: list[SourceFile]


class DeleteResponse(BaseModel):
    """Response for DELETE /sources/... endpoints."""

    deleted: int = Field(description="Number of documents removed")
    category: str


class IngestRunResponse(BaseModel):
    """Response for POST /ingest/run - a background ingestion run was queued."""

    task_id: str = Field(description="Celery task ID for polling")
    status: str = "processing"
    message: str = "Ingestion run queued."


class IngestStatusResponse(BaseModel):
    """Response for GET /ingest/{task_id}."""

    task_id: str
    status: str = Field(description="Task status: PENDING, STARTED, SUCCESS, FAILURE")
    report: dict | None = Field(
        default=None,
        description="Run summary (upserted/skipped/failed) once the task succeeded",
    )
    error: str | None = None
