# =============================================================================
# Context Assembler - Knowledge Store → One Bounded Text Block
# =============================================================================
#
# Every stored document becomes one record:
#
#   [Document 1]
#   Source: sales_review.pdf
#   Category: material
#   Content:
#   <content>
#   -----------------------------------
#
# Records are joined by a blank line and the result is cut at
# context_max_chars. The cut is a safety bound only.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable

from app.config import settings
from app.db.models import KnowledgeDocument
from app.services.errors import StoreUnavailable
from app.services.store import KnowledgeStore

logger = logging.getLogger(__name__)

RECORD_DELIMITER = "-" * 35


def _format_record(index: int, doc: KnowledgeDocument) -> str:
    return (
        f"[Document {index}]\n"
        f"Source: {doc.source}\n"
        f"Category: {doc.category}\n"
        f"Content:\n"
        f"{doc.content}\n"
        f"{RECORD_DELIMITER}"
    )


def format_context(documents: Iterable[KnowledgeDocument], max_chars: int) -> str:
    """Render documents in the given order and truncate to max_chars."""
    context = "\n\n".join(
        _format_record(index, doc) for index, doc in enumerate(documents, start=1)
    )
    if len(context) > max_chars:
        logger.warning(
            "Assembled context truncated from %d to %d characters",
            len(context), max_chars,
        )
        context = context[:max_chars]
    return context


async def assemble_context(store: KnowledgeStore, max_chars: int | None = None) -> str:
    """
    Read every document from the store and render the context block.

    Returns "" when the store is unavailable.
    """
    budget = settings.context_max_chars if max_chars is None else max_chars
    try:
        documents = await store.list_all()
    except StoreUnavailable as exc:
        logger.error("Error reading knowledge base from DB: %s", exc)
        return ""

    return format_context(documents, budget)
