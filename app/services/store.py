# =============================================================================
# Knowledge Store - Durable Documents Keyed by (source, category)
# =============================================================================
#
# The only persistent shared resource. Guarantees:
#   - at most one row per (source, category) - upsert, last write wins
#   - every upsert refreshes updated_at, even when content is unchanged
#   - persistence outages surface as StoreUnavailable, never as raw
#     driver errors
#
# Each operation runs in its own session and transaction, so a store
# instance can be shared by concurrent requests.
#
# CONCURRENT UPSERTS ON ONE KEY:
# Two writers may both see "no row" and both INSERT. The unique constraint
# rejects the second one (IntegrityError); it then re-reads and updates.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import KnowledgeDocument
from app.services.errors import DocumentNotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Async repository over the knowledge_documents table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with a transaction; commits on exit, rolls back on error."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Knowledge store unavailable: %s", exc)
            raise StoreUnavailable(f"Knowledge store unavailable: {exc}") from exc

    # ---------------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------------

    async def upsert(self, source: str, category: str, content: str) -> KnowledgeDocument:
        """
        Insert a document or replace the content of the existing one.

        Returns the resulting row with a refreshed updated_at.
        """
        try:
            return await self._upsert_once(source, category, content)
        except IntegrityError:
            logger.info(
                "Concurrent insert on (%s, %s); retrying as update",
                source, category,
            )
            return await self._upsert_once(source, category, content)

    async def _upsert_once(
        self, source: str, category: str, content: str
    ) -> KnowledgeDocument:
        now = datetime.now(UTC)
        async with self._transaction() as session:
            stmt = select(KnowledgeDocument).where(
                KnowledgeDocument.source == source,
                KnowledgeDocument.category == category,
            )
            doc = (await session.execute(stmt)).scalar_one_or_none()

            if doc is None:
                doc = KnowledgeDocument(
                    source=source,
                    category=category,
                    content=content,
                    created_at=now,
                    updated_at=now,
                )
                session.add(doc)
                await session.flush()
                logger.debug("Inserted document %d (%s, %s)", doc.id, source, category)
            else:
                logger.info(
                    "Replacing content of '%s' in '%s' (last updated %s)",
                    source, category, doc.updated_at,
                )
                doc.content = content
                doc.updated_at = now
                await session.flush()

        return doc

    async def delete_by_id(self, document_id: int) -> bool:
        """
        Delete one document.

        Raises:
            DocumentNotFound: No document has this id.
        """
        async with self._transaction() as session:
            doc = await session.get(KnowledgeDocument, document_id)
            if doc is None:
                raise DocumentNotFound(document_id)
            await session.delete(doc)

        logger.info("Deleted document %d (%s, %s)", document_id, doc.source, doc.category)
        return True

    async def delete_category(self, category: str) -> int:
        """Delete every document in `category`; returns the number removed."""
        async with self._transaction() as session:
            result = await session.execute(
                delete(KnowledgeDocument).where(KnowledgeDocument.category == category)
            )
        removed = result.rowcount or 0
        logger.info("Deleted %d documents from category '%s'", removed, category)
        return removed

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------

    async def list_all(self) -> list[KnowledgeDocument]:
        """Every document, ordered by id."""
        async with self._transaction() as session:
            result = await session.execute(
                select(KnowledgeDocument).order_by(KnowledgeDocument.id)
            )
            return list(result.scalars().all())

    async def get(self, document_id: int) -> KnowledgeDocument:
        async with self._transaction() as session:
            doc = await session.get(KnowledgeDocument, document_id)
        if doc is None:
            raise DocumentNotFound(document_id)
        return doc

    async def count(self) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                select(func.count()).select_from(KnowledgeDocument)
            )
            return int(result.scalar_one())
