# =============================================================================
# Sources API - Listing and Administrative Deletes
# =============================================================================
#
#   GET    /sources                → every document (no content), grouped
#   DELETE /sources/uploads        → remove the whole "uploads" category
#   DELETE /sources/{document_id}  → remove one uploaded document
#
# Only "uploads" documents can be deleted here; directory-backed documents
# come back on the next ingestion run anyway. Files on disk are untouched.
# =============================================================================

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_knowledge_store
from app.db.models import UPLOADS_CATEGORY
from app.models.responses import (
    CategorySummary,
    DeleteResponse,
    SourceFile,
    SourcesResponse,
)
from app.services.errors import DocumentNotFound, StoreUnavailable
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sources"])


@router.get(
    "/sources",
    response_model=SourcesResponse,
    summary="List stored documents grouped by category",
)
async def list_sources(
    store: KnowledgeStore = Depends(get_knowledge_store),
) -> SourcesResponse:
    try:
        documents = await store.list_all()
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail="Failed to fetch sources") from e

    sources = [
        SourceFile(id=doc.id, name=doc.source, category=doc.category, count=len(doc.content))
        for doc in documents
    ]

    grouped: dict[str, list[SourceFile]] = {}
    for source in sources:
        grouped.setdefault(source.category, []).append(source)

    categories = [
        CategorySummary(name=name, count=len(files), files=files)
        for name, files in grouped.items()
    ]
    return SourcesResponse(categories=categories, sources=sources)


@router.delete(
    "/sources/uploads",
    response_model=DeleteResponse,
    summary="Delete every uploaded document",
)
async def delete_uploads(
    store: KnowledgeStore = Depends(get_knowledge_store),
) -> DeleteResponse:
    try:
        removed = await store.delete_category(UPLOADS_CATEGORY)
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return DeleteResponse(deleted=removed, category=UPLOADS_CATEGORY)


@router.delete(
    "/sources/{document_id}",
    response_model=DeleteResponse,
    summary="Delete one uploaded document",
)
async def delete_source(
    document_id: int,
    store: KnowledgeStore = Depends(get_knowledge_store),
) -> DeleteResponse:
    try:
        doc = await store.get(document_id)
        if doc.category != UPLOADS_CATEGORY:
            raise HTTPException(
                status_code=403,
                detail=(
                    f"Document {document_id} belongs to '{doc.category}'. "
                    "Only uploaded documents can be deleted."
                ),
            )
        await store.delete_by_id(document_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return DeleteResponse(deleted=1, category=UPLOADS_CATEGORY)
