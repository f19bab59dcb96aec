# =============================================================================
# Upload API - Single-File Ingestion
# =============================================================================
#
#   POST /upload   multipart field `file` → {"success": true, "fileName": ...}
#
# The file is extracted and upserted synchronously into the "uploads"
# category. A copy is also written to UPLOAD_DIR; that copy is never
# removed automatically.
#
# ERRORS:
#   400 - no file, empty file, unsupported extension
#   422 - no text could be extracted (or too little to keep)
#   500 - knowledge store unavailable
# =============================================================================

import asyncio
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.api.deps import get_knowledge_store
from app.config import Settings, get_settings
from app.models.responses import UploadResponse
from app.services.errors import ExtractionFailure, StoreUnavailable, UnsupportedFileType
from app.services.extractor import detect_format
from app.services.ingestion import IngestionPipeline
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


def _save_copy(upload_dir: str, filename: str, data: bytes) -> Path:
    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_bytes(data)
    return path


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload one document into the knowledge base",
    description=(
        "Upload a PDF, spreadsheet (xlsx/xls) or text file (txt/md). The text "
        "is extracted immediately and stored under the 'uploads' category. "
        "Re-uploading a file with the same name replaces its content."
    ),
)
async def upload_endpoint(
    file: UploadFile | None = File(
        default=None,
        description="Document to ingest (.pdf, .xlsx, .xls, .txt, .md)",
    ),
    store: KnowledgeStore = Depends(get_knowledge_store),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    # Drop any client-supplied directory components
    filename = Path(file.filename).name

    if detect_format(filename) is None:
        raise HTTPException(status_code=400, detail="Unsupported file type")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    saved_path = await asyncio.to_thread(_save_copy, settings.upload_dir, filename, data)
    logger.info("Saved upload: %s (%d bytes) → %s", filename, len(data), saved_path)

    pipeline = IngestionPipeline(store, threshold=settings.acceptance_threshold)
    try:
        await pipeline.ingest_upload(filename, data)
    except UnsupportedFileType as e:
        raise HTTPException(status_code=400, detail="Unsupported file type") from e
    except ExtractionFailure as e:
        logger.warning("Upload extraction failed: %s", e)
        raise HTTPException(
            status_code=422,
            detail="Failed to extract text from file",
        ) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return UploadResponse(success=True, file_name=filename)
