# =============================================================================
# Database Models - SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────────────────────┐
# │  knowledge_documents                         │
# ├──────────────────────────────────────────────┤
# │ id (PK)                                      │
# │ source        ─┐                             │
# │ category      ─┴─ UNIQUE (source, category)  │
# │ content (text)                               │
# │ created_at                                   │
# │ updated_at                                   │
# └──────────────────────────────────────────────┘
#
# One row per (source, category). Re-ingesting a file replaces `content`
# and refreshes `updated_at`; it never adds a second row.
# =============================================================================

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

UPLOADS_CATEGORY = "uploads"


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class KnowledgeDocument(Base):
    """
    A single ingested unit of knowledge: one file's normalised text.

    `source` is the original file name, `category` the directory label
    (or "uploads" for files submitted through the API).
    """

    __tablename__ = "knowledge_documents"
    __table_args__ = (
        UniqueConstraint(
            "source", "category", name="uq_knowledge_documents_source_category"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Original file name (e.g., "sales_call_transcript.pdf")
    source: Mapped[str] = mapped_column(String(500), nullable=False)

    # Directory label or "uploads"
    category: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Extracted, whitespace-normalised text
    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<KnowledgeDocument(id={self.id}, source='{self.source}', "
            f"category='{self.category}')>"
        )
